"""
Slot persistence.

reserve_capacity / release_capacity are the only writers of the slot
counters. Each is one conditional UPDATE, so the capacity test and the write
happen under the same row lock and a concurrent booker can never slip in
between them. A zero rowcount means the condition did not hold.
"""
from datetime import date as date_cls, datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from slotbook.models import Experience, Slot


def get_slot(db: Session, slot_id: str) -> Optional[Slot]:
    # populate_existing: counters may have moved under a raw UPDATE in this session
    return db.get(Slot, slot_id, populate_existing=True)


def get_slot_detail(db: Session, slot_id: str) -> Optional[dict]:
    row = db.execute(
        select(Slot, Experience)
        .join(Experience, Experience.id == Slot.experience_id)
        .where(Slot.id == slot_id)
        .execution_options(populate_existing=True)
    ).first()
    if row is None:
        return None
    slot, exp = row
    detail = slot_to_dict(slot)
    detail.update({
        "experience_title": exp.title,
        "experience_price": exp.price,
        "experience_currency": exp.currency,
    })
    return detail


def slot_to_dict(slot: Slot) -> dict:
    return {
        "id": slot.id,
        "experience_id": slot.experience_id,
        "date": slot.date,
        "start_time": slot.start_time,
        "end_time": slot.end_time,
        "max_participants": slot.max_participants,
        "booked_participants": slot.booked_participants,
        "is_available": slot.is_available,
        "available_spots": slot.max_participants - slot.booked_participants,
    }


def list_available_slots(
    db: Session,
    experience_id: str,
    date: Optional[date_cls] = None,
    date_from: Optional[date_cls] = None,
    date_to: Optional[date_cls] = None,
    now: Optional[datetime] = None,
    lead_minutes: int = 90,
) -> List[dict]:
    """
    Bookable slots of one experience, soonest first.

    An exact `date` wins over a range; without either, slots from today on
    are listed. Slots starting within `lead_minutes` of `now` are dropped.
    """
    now = now or datetime.now()
    q = select(Slot).where(Slot.experience_id == experience_id, Slot.is_available.is_(True))
    if date is not None:
        q = q.where(Slot.date == date)
    elif date_from is not None or date_to is not None:
        if date_from is not None:
            q = q.where(Slot.date >= date_from)
        if date_to is not None:
            q = q.where(Slot.date <= date_to)
    else:
        q = q.where(Slot.date >= now.date())
    q = q.order_by(Slot.date.asc(), Slot.start_time.asc()).execution_options(populate_existing=True)

    cutoff = now + timedelta(minutes=lead_minutes)
    results = []
    for slot in db.execute(q).scalars():
        if datetime.combine(slot.date, slot.start_time) <= cutoff:
            continue
        results.append(slot_to_dict(slot))
    return results


def reserve_capacity(db: Session, slot_id: str, participants: int) -> bool:
    res = db.execute(text("""
        UPDATE slots
        SET booked_participants = booked_participants + :n,
            is_available = CASE
                WHEN booked_participants + :n < max_participants THEN :yes
                ELSE :no
            END
        WHERE id = :slot_id
          AND is_available = :yes
          AND booked_participants + :n <= max_participants
    """), {"slot_id": slot_id, "n": participants, "yes": True, "no": False})
    return res.rowcount == 1


def release_capacity(db: Session, slot_id: str, participants: int) -> bool:
    # A cancellation always frees at least one spot; refuse to go below zero
    res = db.execute(text("""
        UPDATE slots
        SET booked_participants = booked_participants - :n,
            is_available = :yes
        WHERE id = :slot_id
          AND booked_participants >= :n
    """), {"slot_id": slot_id, "n": participants, "yes": True})
    return res.rowcount == 1
