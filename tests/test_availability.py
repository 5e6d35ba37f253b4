from datetime import date, datetime, time, timedelta

import pytest

from slotbook.errors import (
    ConstraintViolation, InsufficientCapacity, SlotNotFound, SlotUnavailable, ValidationError,
)
from slotbook.services import availability, duplicate_guard, slot_store


def test_partial_capacity_reports_remaining(test_db_session, make_slot):
    make_slot(max_participants=5, booked_participants=3)

    with pytest.raises(InsufficientCapacity) as exc:
        availability.check_availability(test_db_session, "s-1", 3)
    assert exc.value.remaining == 2
    assert exc.value.details["remaining"] == 2
    assert "Only 2 spot(s) remaining" in exc.value.message

    slot = availability.check_availability(test_db_session, "s-1", 2)
    assert slot.id == "s-1"
    assert slot.remaining == 2


def test_missing_slot(test_db_session):
    with pytest.raises(SlotNotFound):
        availability.check_availability(test_db_session, "nope", 1)


def test_full_slot_reports_zero_remaining(test_db_session, make_slot):
    make_slot(max_participants=4, booked_participants=4)
    with pytest.raises(InsufficientCapacity) as exc:
        availability.check_availability(test_db_session, "s-1", 1)
    assert exc.value.remaining == 0


def test_closed_slot_with_room_is_unavailable(test_db_session, make_slot):
    make_slot(max_participants=4, booked_participants=1, is_available=False)
    with pytest.raises(SlotUnavailable):
        availability.check_availability(test_db_session, "s-1", 1)


@pytest.mark.parametrize("participants", [0, -2, True, "2"])
def test_participants_must_be_positive_int(test_db_session, make_slot, participants):
    make_slot()
    with pytest.raises(ValidationError):
        availability.check_availability(test_db_session, "s-1", participants)


def test_overbooked_counter_is_integrity_violation(make_slot):
    slot = make_slot(max_participants=4)
    slot.booked_participants = 6  # never persisted; the CHECK constraint forbids it
    with pytest.raises(ConstraintViolation):
        availability.evaluate(slot, slot.id, 1)


def test_duplicate_guard_ignores_cancelled(test_db_session, coordinator, make_slot, contact):
    make_slot()
    assert duplicate_guard.has_active_booking(test_db_session, "7", "s-1") is False

    view = coordinator.create_booking("7", "exp-1", "s-1", 1, contact)
    assert duplicate_guard.has_active_booking(test_db_session, "7", "s-1") is True
    assert duplicate_guard.has_active_booking(test_db_session, "8", "s-1") is False

    coordinator.cancel_booking(view.id, "7")
    assert duplicate_guard.has_active_booking(test_db_session, "7", "s-1") is False
    test_db_session.rollback()


def test_reserve_is_conditional(test_db_session, make_slot):
    make_slot(max_participants=3, booked_participants=1)

    assert slot_store.reserve_capacity(test_db_session, "s-1", 3) is False
    assert slot_store.reserve_capacity(test_db_session, "s-1", 2) is True
    slot = slot_store.get_slot(test_db_session, "s-1")
    assert slot.booked_participants == 3
    assert slot.is_available is False

    assert slot_store.reserve_capacity(test_db_session, "s-1", 1) is False
    test_db_session.rollback()


def test_release_never_underflows(test_db_session, make_slot):
    make_slot(max_participants=3, booked_participants=1)

    assert slot_store.release_capacity(test_db_session, "s-1", 2) is False
    assert slot_store.release_capacity(test_db_session, "s-1", 1) is True
    slot = slot_store.get_slot(test_db_session, "s-1")
    assert slot.booked_participants == 0
    assert slot.is_available is True
    test_db_session.rollback()


def test_listing_filters_and_lead_time(test_db_session, make_experience, make_slot):
    make_experience()
    now = datetime(2030, 6, 1, 9, 0)
    today = now.date()
    make_slot("soon", "exp-1", day=today, start=time(10, 0), end=time(11, 0))
    make_slot("later", "exp-1", day=today, start=time(15, 0), end=time(16, 0))
    make_slot("tomorrow", "exp-1", day=today + timedelta(days=1))
    make_slot("full", "exp-1", day=today + timedelta(days=2), max_participants=2, booked_participants=2)
    make_slot("past", "exp-1", day=today - timedelta(days=1))

    ids = [s["id"] for s in slot_store.list_available_slots(test_db_session, "exp-1", now=now)]
    # 10:00 is within 90 minutes of 09:00
    assert ids == ["later", "tomorrow"]

    one_day = slot_store.list_available_slots(test_db_session, "exp-1", date=today + timedelta(days=1), now=now)
    assert [s["id"] for s in one_day] == ["tomorrow"]
    assert one_day[0]["available_spots"] == 5

    ranged = slot_store.list_available_slots(
        test_db_session, "exp-1", date_from=today, date_to=today, now=now, lead_minutes=0
    )
    assert [s["id"] for s in ranged] == ["soon", "later"]
    test_db_session.rollback()


def test_slot_detail_includes_experience(test_db_session, make_slot):
    make_slot()
    detail = slot_store.get_slot_detail(test_db_session, "s-1")
    assert detail["experience_title"] == "Sunset Kayak"
    assert detail["experience_currency"] == "EUR"
    assert detail["available_spots"] == 5
    assert detail["date"] == date.today() + timedelta(days=3)
    assert slot_store.get_slot_detail(test_db_session, "missing") is None
    test_db_session.rollback()
