import logging

from sqlalchemy.orm import Session

from slotbook.errors import (
    ConstraintViolation, InsufficientCapacity, SlotNotFound, SlotUnavailable, ValidationError,
)
from slotbook.models import Slot
from slotbook.services import slot_store

logger = logging.getLogger(__name__)


def assert_consistent(slot: Slot) -> None:
    if not 0 <= slot.booked_participants <= slot.max_participants:
        logger.critical(
            "Slot capacity invariant broken",
            extra={
                "event": "slot_invariant_broken",
                "slot_id": slot.id,
                "booked": slot.booked_participants,
                "max": slot.max_participants,
            },
        )
        raise ConstraintViolation(
            "Slot capacity counters are inconsistent",
            details={
                "slot_id": slot.id,
                "booked_participants": slot.booked_participants,
                "max_participants": slot.max_participants,
            },
        )


def evaluate(slot: Slot, slot_id: str, participants: int) -> Slot:
    """Raise the business error explaining why `slot` can't take `participants`."""
    if slot is None:
        raise SlotNotFound(slot_id)
    assert_consistent(slot)
    if not slot.is_available:
        # Full slots report remaining=0 so callers can show the same message
        if slot.remaining == 0:
            raise InsufficientCapacity(slot_id, 0, participants)
        raise SlotUnavailable(slot_id)
    if slot.remaining < participants:
        raise InsufficientCapacity(slot_id, slot.remaining, participants)
    return slot


def check_availability(db: Session, slot_id: str, participants: int) -> Slot:
    """
    Read-only capacity pre-check.

    Only a hint: nothing is locked, so the conditional reserve in the
    coordinator has the final say.
    """
    if isinstance(participants, bool) or not isinstance(participants, int) or participants < 1:
        raise ValidationError("Participants must be a positive integer", details={"participants": participants})
    return evaluate(slot_store.get_slot(db, slot_id), slot_id, participants)
