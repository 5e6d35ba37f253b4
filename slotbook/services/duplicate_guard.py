from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slotbook.errors import DuplicateBooking
from slotbook.models import Booking

ACTIVE_SLOT_INDEX = "uq_bookings_active_user_slot"


def has_active_booking(db: Session, user_id: str, slot_id: str) -> bool:
    found = db.execute(
        select(Booking.id)
        .where(Booking.user_id == user_id, Booking.slot_id == slot_id, Booking.status != "cancelled")
        .limit(1)
    ).first()
    return found is not None


def ensure_no_duplicate(db: Session, user_id: str, slot_id: str) -> None:
    if has_active_booking(db, user_id, slot_id):
        raise DuplicateBooking(slot_id)


def is_active_slot_conflict(exc: IntegrityError) -> bool:
    """True when the partial unique index rejected a second active booking."""
    message = str(exc.orig)
    # postgres names the index, sqlite lists the columns
    return ACTIVE_SLOT_INDEX in message or "bookings.slot_id, bookings.user_id" in message


def is_reference_conflict(exc: IntegrityError) -> bool:
    return "booking_reference" in str(exc.orig)
