"""
Booking confirmation / cancellation messages.

Sinks are best effort: the coordinator calls them after commit and a failing
sink never undoes a booking.
"""
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol, Tuple

from slotbook.config import Settings
from slotbook.schemas import BookingView

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def booking_confirmed(self, booking: BookingView) -> None: ...

    def booking_cancelled(self, booking: BookingView) -> None: ...


class LoggingNotificationSink:
    def booking_confirmed(self, booking: BookingView) -> None:
        logger.info(
            "Booking confirmation queued",
            extra={"event": "notify_confirmed", "booking_reference": booking.booking_reference},
        )

    def booking_cancelled(self, booking: BookingView) -> None:
        logger.info(
            "Booking cancellation queued",
            extra={"event": "notify_cancelled", "booking_reference": booking.booking_reference},
        )


def _describe(booking: BookingView) -> str:
    title = booking.experience_title or "your experience"
    when = f"{booking.booking_date.isoformat()} at {booking.booking_time.strftime('%H:%M')}"
    return (
        f"{title}\n"
        f"When: {when}\n"
        f"Participants: {booking.participants}\n"
        f"Total: {booking.total_amount} {booking.currency}\n"
        f"Reference: {booking.booking_reference}\n"
    )


class SmtpNotificationSink:
    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.from_email = settings.smtp_from_email or settings.smtp_username
        self.use_tls = settings.smtp_use_tls

    def send(self, to_email: str, subject: str, body: str) -> Tuple[bool, Optional[str]]:
        if not self.host or not self.from_email:
            return False, "Email not configured"

        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
            return True, None
        except (smtplib.SMTPException, OSError) as exc:
            return False, str(exc)

    def _deliver(self, booking: BookingView, subject: str, intro: str) -> None:
        body = f"Hi {booking.customer_name},\n\n{intro}\n\n{_describe(booking)}"
        ok, error = self.send(booking.customer_email, subject, body)
        if not ok:
            logger.warning(
                "Booking email not sent",
                extra={"event": "notify_failed", "booking_reference": booking.booking_reference, "error": error},
            )

    def booking_confirmed(self, booking: BookingView) -> None:
        self._deliver(booking, f"Booking confirmed: {booking.booking_reference}", "Your booking is confirmed.")

    def booking_cancelled(self, booking: BookingView) -> None:
        self._deliver(booking, f"Booking cancelled: {booking.booking_reference}", "Your booking has been cancelled.")


def build_notification_sink(settings: Settings) -> NotificationSink:
    if settings.smtp_host:
        return SmtpNotificationSink(settings)
    return LoggingNotificationSink()
