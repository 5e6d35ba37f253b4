"""
Booking domain errors.

Every error carries a message, a stable code and optional details so the
HTTP layer can render them the same way. Capacity and duplicate errors are
expected business outcomes; ConstraintViolation means the capacity
bookkeeping itself is broken and must never be hidden.
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class ValidationError(BookingError):
    status_code = 400


class Unauthorized(BookingError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class NotFound(BookingError):
    status_code = 404


class SlotNotFound(NotFound):
    def __init__(self, slot_id: str) -> None:
        super().__init__("Availability slot not found", details={"slot_id": slot_id})


class ExperienceNotFound(NotFound):
    def __init__(self, experience_id: str) -> None:
        super().__init__("Experience not found", details={"experience_id": experience_id})


class BookingNotFound(NotFound):
    def __init__(self, booking_id: str) -> None:
        # Same message whether the booking is missing or owned by someone else
        super().__init__(
            "Booking not found or you do not have permission to access it",
            details={"booking_id": booking_id},
        )


class SlotUnavailable(BookingError):
    status_code = 409

    def __init__(self, slot_id: str) -> None:
        super().__init__("This time slot is no longer available", details={"slot_id": slot_id})


class InsufficientCapacity(BookingError):
    status_code = 409

    def __init__(self, slot_id: str, remaining: int, requested: int) -> None:
        self.remaining = remaining
        super().__init__(
            f"Only {remaining} spot(s) remaining in this slot",
            details={"slot_id": slot_id, "remaining": remaining, "requested": requested},
        )


class DuplicateBooking(BookingError):
    status_code = 409

    def __init__(self, slot_id: str) -> None:
        super().__init__("You already have a booking for this slot", details={"slot_id": slot_id})


class InvalidState(BookingError):
    status_code = 400


class AlreadyCancelled(InvalidState):
    def __init__(self, booking_id: str) -> None:
        super().__init__("Booking is already cancelled", details={"booking_id": booking_id})


class AlreadyCompleted(InvalidState):
    def __init__(self, booking_id: str) -> None:
        super().__init__("Cannot cancel a completed booking", details={"booking_id": booking_id})


class TransientStoreError(BookingError):
    status_code = 503

    def __init__(self, op_name: str) -> None:
        super().__init__(
            "The booking service is busy, please try again",
            details={"operation": op_name},
        )


class ConstraintViolation(BookingError):
    """Capacity bookkeeping is inconsistent; not a user-facing condition."""

    status_code = 500
