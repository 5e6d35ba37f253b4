"""Many bookers racing for the same slot, each on its own connection."""
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from slotbook.db import Base, begin_write, build_engine
from slotbook.errors import BookingError, InsufficientCapacity, DuplicateBooking
from slotbook.models import Slot
from slotbook.services import ledger
from slotbook.services.coordinator import BookingCoordinator

BOOKERS = 12
CAPACITY = 5


def _race(session_factory, settings, contact, calls):
    barrier = Barrier(len(calls))

    def book(call):
        user_id, participants = call
        session = session_factory()
        try:
            coordinator = BookingCoordinator(session, settings=settings)
            barrier.wait()
            try:
                coordinator.create_booking(user_id, "exp-1", "s-1", participants, contact)
                return "ok"
            except BookingError as exc:
                return type(exc).__name__
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(book, calls))


def test_concurrent_bookers_never_overbook(session_factory, settings, make_slot, contact, slot_state):
    make_slot(max_participants=CAPACITY)

    results = _race(session_factory, settings, contact, [(f"u{i}", 1) for i in range(BOOKERS)])

    assert results.count("ok") == CAPACITY
    assert results.count(InsufficientCapacity.__name__) == BOOKERS - CAPACITY
    assert slot_state("s-1") == (CAPACITY, CAPACITY, False)

    session = session_factory()
    try:
        assert ledger.active_participants(session, "s-1") == CAPACITY
    finally:
        session.close()


def test_concurrent_mixed_party_sizes(session_factory, settings, make_slot, contact, slot_state):
    make_slot(max_participants=7)

    calls = [(f"u{i}", size) for i, size in enumerate([3, 2, 4, 1, 2, 3, 1, 2])]
    results = _race(session_factory, settings, contact, calls)

    booked = sum(size for (_, size), r in zip(calls, results) if r == "ok")
    _max, counter, available = slot_state("s-1")
    assert counter == booked
    assert counter <= 7
    assert available == (counter < 7)
    assert set(results) <= {"ok", InsufficientCapacity.__name__}


def test_same_user_racing_gets_one_booking(session_factory, settings, make_slot, contact, slot_state):
    make_slot(max_participants=CAPACITY)

    results = _race(session_factory, settings, contact, [("7", 1)] * 4)

    assert results.count("ok") == 1
    assert results.count(DuplicateBooking.__name__) == 3
    assert slot_state("s-1") == (CAPACITY, 1, True)


def test_readers_share_the_store_while_writers_queue(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'locks.db'}", busy_timeout=0.2)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine)
    reader_a, reader_b, writer, rival = (factory() for _ in range(4))
    try:
        reader_a.execute(select(Slot)).all()
        reader_b.execute(select(Slot)).all()
        assert reader_a.in_transaction() and reader_b.in_transaction()

        # open readers don't stop a writer from taking the lock
        begin_write(writer)
        with pytest.raises(OperationalError, match="database is locked"):
            begin_write(rival)
    finally:
        for session in (reader_a, reader_b, writer, rival):
            session.close()
        engine.dispose()
