"""
Booking ledger persistence.

Callers own the transaction; nothing here commits. Status changes go
through conditional UPDATEs so a concurrent writer that got there first is
reported through the rowcount instead of being overwritten.
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Date, DateTime, bindparam, func, select, text
from sqlalchemy.orm import Session

from slotbook.models import Booking, CONTACT_FIELDS, Experience, Slot
from slotbook.schemas import BookingView


def insert_booking(db: Session, booking: Booking) -> Booking:
    # Savepoint so a reference collision doesn't undo the capacity reservation
    with db.begin_nested():
        db.add(booking)
        db.flush()
    return booking


def get_booking(db: Session, booking_id: str, user_id: Optional[str] = None) -> Optional[Booking]:
    q = select(Booking).where(Booking.id == booking_id)
    if user_id is not None:
        q = q.where(Booking.user_id == user_id)
    return db.execute(q.execution_options(populate_existing=True)).scalar_one_or_none()


def _joined():
    return (
        select(Booking, Slot, Experience)
        .outerjoin(Slot, Slot.id == Booking.slot_id)
        .outerjoin(Experience, Experience.id == Booking.experience_id)
    )


def to_view(booking: Booking, slot: Optional[Slot], exp: Optional[Experience]) -> BookingView:
    view = BookingView.model_validate(booking)
    if exp is not None:
        view.experience_title = exp.title
        view.experience_location = exp.location
        view.experience_price = exp.price
    if slot is not None:
        view.slot_date = slot.date
        view.slot_start_time = slot.start_time
        view.slot_end_time = slot.end_time
        view.slot_max_participants = slot.max_participants
        view.slot_booked_participants = slot.booked_participants
    return view


def get_booking_view(db: Session, booking_id: str, user_id: Optional[str] = None) -> Optional[BookingView]:
    q = _joined().where(Booking.id == booking_id)
    if user_id is not None:
        q = q.where(Booking.user_id == user_id)
    row = db.execute(q.execution_options(populate_existing=True)).first()
    return to_view(*row) if row else None


def get_booking_view_by_reference(db: Session, booking_reference: str) -> Optional[BookingView]:
    q = _joined().where(Booking.booking_reference == booking_reference)
    row = db.execute(q.execution_options(populate_existing=True)).first()
    return to_view(*row) if row else None


def list_user_bookings(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    upcoming_only: bool = False,
    today: Optional[date] = None,
) -> List[BookingView]:
    q = _joined().where(Booking.user_id == user_id)
    if status:
        q = q.where(Booking.status == status)
    if upcoming_only:
        q = q.where(Slot.date >= (today or date.today()))
    q = q.order_by(Slot.date.desc(), Slot.start_time.desc(), Booking.created_at.desc())
    return [to_view(*row) for row in db.execute(q)]


def count_upcoming_bookings(db: Session, user_id: str, today: Optional[date] = None) -> int:
    q = (
        select(func.count(Booking.id))
        .join(Slot, Slot.id == Booking.slot_id)
        .where(
            Booking.user_id == user_id,
            Booking.status == "confirmed",
            Slot.date >= (today or date.today()),
        )
    )
    return db.execute(q).scalar_one()


def active_participants(db: Session, slot_id: str) -> int:
    """Sum of participants over non-cancelled bookings on a slot."""
    q = select(func.coalesce(func.sum(Booking.participants), 0)).where(
        Booking.slot_id == slot_id, Booking.status != "cancelled"
    )
    return db.execute(q).scalar_one()


def update_contact(db: Session, booking_id: str, user_id: str, fields: dict) -> bool:
    """Apply contact changes unless the booking is already cancelled or completed."""
    names = [name for name in CONTACT_FIELDS if name in fields]
    assignments = "".join(f"{name} = :{name}, " for name in names)
    res = db.execute(text(f"""
        UPDATE bookings
        SET {assignments}updated_at = :now
        WHERE id = :booking_id
          AND user_id = :user_id
          AND status IN ('pending', 'confirmed')
    """).bindparams(bindparam("now", type_=DateTime)),
        {**{name: fields[name] for name in names}, "booking_id": booking_id, "user_id": user_id,
         "now": datetime.utcnow()},
    )
    return res.rowcount == 1


def mark_cancelled(db: Session, booking_id: str) -> bool:
    res = db.execute(text("""
        UPDATE bookings
        SET status = 'cancelled', cancelled_at = :now, updated_at = :now
        WHERE id = :booking_id
          AND status IN ('pending', 'confirmed')
    """).bindparams(bindparam("now", type_=DateTime)),
        {"booking_id": booking_id, "now": datetime.utcnow()},
    )
    return res.rowcount == 1


def delete_cancelled(db: Session, booking_id: str) -> bool:
    res = db.execute(
        text("DELETE FROM bookings WHERE id = :booking_id AND status = 'cancelled'"),
        {"booking_id": booking_id},
    )
    return res.rowcount == 1


def set_payment_status(db: Session, booking_reference: str, payment_status: str) -> bool:
    res = db.execute(text("""
        UPDATE bookings
        SET payment_status = :payment_status, updated_at = :now
        WHERE booking_reference = :ref
    """).bindparams(bindparam("now", type_=DateTime)),
        {"ref": booking_reference, "payment_status": payment_status, "now": datetime.utcnow()},
    )
    return res.rowcount == 1


def complete_past(db: Session, today: date) -> int:
    """Flip confirmed bookings whose slot day has passed to completed."""
    res = db.execute(text("""
        UPDATE bookings
        SET status = 'completed', updated_at = :now
        WHERE status = 'confirmed'
          AND booking_date < :today
    """).bindparams(bindparam("today", type_=Date), bindparam("now", type_=DateTime)),
        {"today": today, "now": datetime.utcnow()},
    )
    return res.rowcount
