"""
Booking transaction coordinator.

create: availability pre-check -> duplicate guard -> price lookup ->
conditional capacity reserve -> booking insert -> commit.
cancel: ownership/status check -> conditional status flip -> capacity
release -> commit.

Each operation is one database transaction. Any error before commit rolls
the whole thing back, so a booking never exists without its reserved
capacity and capacity is never reserved without a booking. Transient store
failures retry the whole transaction; business errors never retry.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slotbook.config import Settings, get_settings
from slotbook.db import begin_write
from slotbook.errors import (
    AlreadyCancelled, AlreadyCompleted, BookingError, BookingNotFound, ConstraintViolation,
    DuplicateBooking, ExperienceNotFound, InsufficientCapacity, InvalidState, SlotNotFound,
    TransientStoreError, ValidationError,
)
from slotbook.integrations.catalog import ExperienceCatalog, SqlExperienceCatalog
from slotbook.integrations.notifications import LoggingNotificationSink, NotificationSink
from slotbook.models import Booking, CONTACT_FIELDS, PAYMENT_STATUSES
from slotbook.schemas import BookingView, Contact
from slotbook.services import availability, duplicate_guard, ledger, slot_store
from slotbook.services.references import generate_booking_reference
from slotbook.services.retry import with_store_retry

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 5
RESERVE_ATTEMPTS = 3


class BookingCoordinator:
    def __init__(
        self,
        db: Session,
        catalog: Optional[ExperienceCatalog] = None,
        notifier: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.catalog = catalog or SqlExperienceCatalog(db, self.settings.default_currency)
        self.notifier = notifier or LoggingNotificationSink()

    # ---------- read path ----------

    def check_availability(self, slot_id: str, participants: int) -> dict:
        try:
            slot = availability.check_availability(self.db, slot_id, participants)
            return slot_store.slot_to_dict(slot)
        finally:
            self.db.rollback()

    def get_booking(self, booking_id: str, user_id: Optional[str] = None) -> Optional[BookingView]:
        try:
            return ledger.get_booking_view(self.db, booking_id, user_id)
        finally:
            self.db.rollback()

    def list_user_bookings(
        self, user_id: str, status: Optional[str] = None, upcoming_only: bool = False
    ) -> List[BookingView]:
        try:
            return ledger.list_user_bookings(self.db, user_id, status=status, upcoming_only=upcoming_only)
        finally:
            self.db.rollback()

    def count_upcoming_bookings(self, user_id: str) -> int:
        try:
            return ledger.count_upcoming_bookings(self.db, user_id)
        finally:
            self.db.rollback()

    # ---------- create ----------

    def create_booking(
        self,
        user_id: str,
        experience_id: str,
        slot_id: str,
        participants: int,
        contact: Contact,
    ) -> BookingView:
        limit = self.settings.max_participants_per_booking
        if isinstance(participants, int) and participants > limit:
            raise ValidationError(
                f"Participants must be between 1 and {limit}", details={"participants": participants}
            )

        view = self._run(
            "create_booking",
            lambda: self._create_once(user_id, experience_id, slot_id, participants, contact),
        )
        logger.info(
            "Booking created",
            extra={
                "event": "booking_created",
                "booking_reference": view.booking_reference,
                "slot_id": slot_id,
                "user_id": user_id,
                "participants": participants,
            },
        )
        self._notify("booking_confirmed", view)
        return view

    def _create_once(self, user_id, experience_id, slot_id, participants, contact) -> BookingView:
        db = self.db
        slot = availability.check_availability(db, slot_id, participants)
        duplicate_guard.ensure_no_duplicate(db, user_id, slot_id)

        experience = self.catalog.get(experience_id)
        if experience is None:
            raise ExperienceNotFound(experience_id)
        if slot.experience_id != experience.id:
            raise SlotNotFound(slot_id)

        _reserve(db, slot_id, participants)

        total = Decimal(experience.price) * participants
        booking_id = str(uuid.uuid4())
        for _ in range(REFERENCE_ATTEMPTS):
            booking = Booking(
                id=booking_id,
                booking_reference=generate_booking_reference(),
                user_id=user_id,
                experience_id=experience.id,
                slot_id=slot_id,
                booking_date=slot.date,
                booking_time=slot.start_time,
                participants=participants,
                total_amount=total,
                currency=experience.currency,
                customer_name=contact.customer_name,
                customer_email=contact.customer_email,
                customer_phone=contact.customer_phone,
                status="confirmed",
                payment_status="pending",
            )
            try:
                ledger.insert_booking(db, booking)
                break
            except IntegrityError as exc:
                if duplicate_guard.is_active_slot_conflict(exc):
                    raise DuplicateBooking(slot_id)
                if not duplicate_guard.is_reference_conflict(exc):
                    raise
                logger.info("Booking reference collision, regenerating", extra={"event": "reference_retry"})
        else:
            raise TransientStoreError("allocate_booking_reference")

        view = ledger.get_booking_view(db, booking_id)
        db.commit()
        return view

    # ---------- cancel ----------

    def cancel_booking(self, booking_id: str, user_id: str) -> BookingView:
        view = self._run("cancel_booking", lambda: self._cancel_once(booking_id, user_id))
        logger.info(
            "Booking cancelled",
            extra={
                "event": "booking_cancelled",
                "booking_reference": view.booking_reference,
                "slot_id": view.slot_id,
                "participants": view.participants,
            },
        )
        self._notify("booking_cancelled", view)
        return view

    def _cancel_once(self, booking_id: str, user_id: str) -> BookingView:
        db = self.db
        booking = ledger.get_booking(db, booking_id, user_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        _ensure_cancellable(booking)

        if not ledger.mark_cancelled(db, booking_id):
            # Someone else changed the status first
            current = ledger.get_booking(db, booking_id, user_id)
            if current is None:
                raise BookingNotFound(booking_id)
            _ensure_cancellable(current)
            raise ConstraintViolation(
                "Booking status flip refused for a cancellable booking",
                details={"booking_id": booking_id},
            )

        if not slot_store.release_capacity(db, booking.slot_id, booking.participants):
            logger.critical(
                "Slot counter would underflow on cancellation",
                extra={
                    "event": "slot_release_underflow",
                    "slot_id": booking.slot_id,
                    "booking_id": booking_id,
                    "participants": booking.participants,
                },
            )
            raise ConstraintViolation(
                "Slot has fewer booked participants than the booking being cancelled",
                details={"slot_id": booking.slot_id, "booking_id": booking_id},
            )

        view = ledger.get_booking_view(db, booking_id, user_id)
        db.commit()
        return view

    # ---------- contact update / delete ----------

    def update_booking_contact(self, booking_id: str, user_id: str, fields: dict) -> BookingView:
        updates = {k: v for k, v in fields.items() if k in CONTACT_FIELDS and v is not None}
        if not updates:
            raise ValidationError("No valid fields to update")

        def _update_once():
            if not ledger.update_contact(self.db, booking_id, user_id, updates):
                booking = ledger.get_booking(self.db, booking_id, user_id)
                if booking is None:
                    raise BookingNotFound(booking_id)
                raise InvalidState(
                    "Cannot update a cancelled or completed booking",
                    details={"booking_id": booking_id, "status": booking.status},
                )
            view = ledger.get_booking_view(self.db, booking_id, user_id)
            self.db.commit()
            return view

        return self._run("update_booking_contact", _update_once)

    def delete_booking(self, booking_id: str, user_id: str) -> None:
        def _delete_once():
            booking = ledger.get_booking(self.db, booking_id, user_id)
            if booking is None:
                raise BookingNotFound(booking_id)
            if booking.status != "cancelled" or not ledger.delete_cancelled(self.db, booking_id):
                raise InvalidState(
                    "Can only delete cancelled bookings. Please cancel first.",
                    code="must_be_cancelled_first",
                    details={"booking_id": booking_id, "status": booking.status},
                )
            self.db.commit()

        self._run("delete_booking", _delete_once)
        logger.info("Booking deleted", extra={"event": "booking_deleted", "booking_id": booking_id})

    # ---------- out-of-band updates ----------

    def record_payment_status(self, booking_reference: str, payment_status: str) -> BookingView:
        """Payment provider callback; never touches capacity."""
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(
                "Unknown payment status", details={"payment_status": payment_status}
            )

        def _record_once():
            if not ledger.set_payment_status(self.db, booking_reference, payment_status):
                raise BookingNotFound(booking_reference)
            view = ledger.get_booking_view_by_reference(self.db, booking_reference)
            self.db.commit()
            return view

        return self._run("record_payment_status", _record_once)

    def complete_past_bookings(self, today: Optional[date] = None) -> int:
        today = today or datetime.now().date()

        def _complete_once():
            count = ledger.complete_past(self.db, today)
            self.db.commit()
            return count

        count = self._run("complete_past_bookings", _complete_once)
        logger.info("Completed past bookings", extra={"event": "bookings_completed", "count": count})
        return count

    # ---------- plumbing ----------

    def _run(self, op_name: str, attempt):
        def _attempt():
            try:
                begin_write(self.db)
                return attempt()
            except Exception:
                self.db.rollback()
                raise

        try:
            return with_store_retry(op_name, _attempt, max_attempts=self.settings.store_retry_attempts)
        except BookingError as exc:
            if isinstance(exc, ConstraintViolation):
                logger.critical(
                    "Booking integrity violation",
                    extra={"event": "integrity_violation", "op": op_name, "details": exc.details},
                )
            else:
                logger.info(
                    "Booking operation rejected",
                    extra={"event": "booking_rejected", "op": op_name, "code": exc.code},
                )
            raise

    def _notify(self, event: str, view: BookingView) -> None:
        try:
            getattr(self.notifier, event)(view)
        except Exception:
            logger.warning(
                "Notification sink failed",
                exc_info=True,
                extra={"event": "notify_failed", "booking_reference": view.booking_reference},
            )


def _ensure_cancellable(booking: Booking) -> None:
    if booking.status == "cancelled":
        raise AlreadyCancelled(booking.id)
    if booking.status == "completed":
        raise AlreadyCompleted(booking.id)


def _reserve(db: Session, slot_id: str, participants: int) -> None:
    slot = None
    for _ in range(RESERVE_ATTEMPTS):
        if slot_store.reserve_capacity(db, slot_id, participants):
            return
        # Lost the race since the pre-check. Report what the winner left, or
        # go again if a cancellation has freed room since the refused update.
        slot = availability.evaluate(slot_store.get_slot(db, slot_id), slot_id, participants)
    raise InsufficientCapacity(slot_id, slot.remaining, participants)
