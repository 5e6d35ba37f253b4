from datetime import date as date_type
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from slotbook.db import get_db
from slotbook.dependencies import get_coordinator
from slotbook.errors import SlotNotFound
from slotbook.schemas import AvailabilityOut, SlotDetailOut, SlotOut
from slotbook.services import slot_store
from slotbook.services.coordinator import BookingCoordinator

router = APIRouter()


@router.get("/experience/{experience_id}", response_model=List[SlotOut])
def list_slots(
    experience_id: str,
    request: Request,
    date: Optional[date_type] = Query(default=None),
    date_from: Optional[date_type] = Query(default=None),
    date_to: Optional[date_type] = Query(default=None),
    db: Session = Depends(get_db),
):
    """
    Bookable slots for one experience with their remaining spots.

    `date` selects one day, `date_from`/`date_to` an inclusive range; with
    neither, slots from today on. Slots starting too soon to be booked are
    left out.
    """
    return slot_store.list_available_slots(
        db,
        experience_id,
        date=date,
        date_from=date_from,
        date_to=date_to,
        lead_minutes=request.app.state.settings.booking_lead_minutes,
    )


@router.get("/{slot_id}", response_model=SlotDetailOut)
def get_slot(slot_id: str, db: Session = Depends(get_db)):
    detail = slot_store.get_slot_detail(db, slot_id)
    if detail is None:
        raise SlotNotFound(slot_id)
    return detail


@router.get("/{slot_id}/availability", response_model=AvailabilityOut)
def check_availability(
    slot_id: str,
    participants: int = Query(default=1, ge=1),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    slot = coordinator.check_availability(slot_id, participants)
    return AvailabilityOut(slot_id=slot_id, requested=participants, available_spots=slot["available_spots"])
