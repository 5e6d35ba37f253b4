from typing import Optional

from fastapi import APIRouter, Depends, Query

from slotbook.dependencies import current_user_id, get_coordinator
from slotbook.errors import BookingNotFound
from slotbook.schemas import BookingList, BookingView, CountOut, CreateBookingBody, UpdateContactBody
from slotbook.services.coordinator import BookingCoordinator

router = APIRouter()


@router.post("", status_code=201, response_model=BookingView)
def create_booking(
    body: CreateBookingBody,
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    """
    Book `participants` spots on a slot.

    Capacity is reserved with a single conditional UPDATE and the booking row
    is inserted in the same transaction, so concurrent bookers can never push
    the slot past max_participants. 409 carries the remaining spot count.
    """
    return coordinator.create_booking(
        user_id,
        body.experience_id,
        body.slot_id,
        body.participants,
        body,
    )


@router.get("", response_model=BookingList)
def list_bookings(
    status: Optional[str] = Query(default=None),
    upcoming: bool = Query(default=False),
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    rows = coordinator.list_user_bookings(user_id, status=status, upcoming_only=upcoming)
    return BookingList(count=len(rows), data=rows)


@router.get("/upcoming/count", response_model=CountOut)
def upcoming_count(
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return CountOut(count=coordinator.count_upcoming_bookings(user_id))


@router.get("/{booking_id}", response_model=BookingView)
def get_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    booking = coordinator.get_booking(booking_id, user_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    return booking


@router.put("/{booking_id}", response_model=BookingView)
def update_booking(
    booking_id: str,
    body: UpdateContactBody,
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    # Only contact details are editable
    return coordinator.update_booking_contact(booking_id, user_id, body.changes())


@router.put("/{booking_id}/cancel", response_model=BookingView)
def cancel_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.cancel_booking(booking_id, user_id)


@router.delete("/{booking_id}")
def delete_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    coordinator.delete_booking(booking_id, user_id)
    return {"ok": True, "message": "Booking deleted permanently"}
