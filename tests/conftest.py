# tests/conftest.py
import os
import tempfile
import uuid
from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

os.environ["SKIP_DB_INIT"] = "1"

from slotbook.config import Settings
from slotbook.db import Base, build_engine, get_db
from slotbook.integrations.identity import JwtIdentityProvider
from slotbook.main import app
from slotbook.models import Booking, Experience, Slot
from slotbook.schemas import Contact
from slotbook.services.coordinator import BookingCoordinator
from slotbook.services.references import generate_booking_reference

TEST_SECRET = "test-secret-for-slotbook-tokens-0123456789"


class RecordingSink:
    def __init__(self):
        self.confirmed = []
        self.cancelled = []

    def booking_confirmed(self, booking):
        self.confirmed.append(booking)

    def booking_cancelled(self, booking):
        self.cancelled.append(booking)


@pytest.fixture
def settings():
    return Settings(_env_file=None, jwt_secret=TEST_SECRET, store_retry_attempts=3)


@pytest.fixture(scope="function")
def session_factory():
    # temp DB
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    engine = build_engine(f"sqlite:///{tmp.name}", busy_timeout=30)
    Base.metadata.create_all(bind=engine)
    # expire_on_commit=False: touching a fixture object must not open a transaction
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()
        os.unlink(tmp.name)


@pytest.fixture(scope="function")
def test_db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def coordinator(test_db_session, sink, settings):
    return BookingCoordinator(test_db_session, notifier=sink, settings=settings)


@pytest.fixture(scope="function")
def client(test_db_session, sink, settings):
    def override_get_db():
        try:
            yield test_db_session
        finally:
            # end the request's transaction so other sessions aren't locked out
            test_db_session.rollback()

    app.dependency_overrides[get_db] = override_get_db
    saved = (app.state.settings, app.state.identity, app.state.notifier)
    app.state.settings = settings
    app.state.identity = JwtIdentityProvider(TEST_SECRET)
    app.state.notifier = sink

    with TestClient(app) as c:
        yield c

    app.state.settings, app.state.identity, app.state.notifier = saved
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    identity = JwtIdentityProvider(TEST_SECRET)

    def _auth_headers(user_id="7"):
        return {"Authorization": f"Bearer {identity.issue(user_id)}"}
    return _auth_headers


# —— Factories ——
@pytest.fixture
def make_experience(test_db_session):
    def _make_experience(experience_id="exp-1", title="Sunset Kayak", price="40.00", currency="EUR"):
        e = Experience(id=experience_id, title=title, price=Decimal(price), currency=currency, location="Lisbon")
        test_db_session.add(e)
        test_db_session.commit()
        return e
    return _make_experience


@pytest.fixture
def make_slot(test_db_session, make_experience):
    def _make_slot(slot_id="s-1", experience_id=None, day=None, start=None, end=None,
                   max_participants=5, booked_participants=0, is_available=None):
        if experience_id is None:
            experience_id = make_experience().id  # default 1 experience
        day = day or (date.today() + timedelta(days=3))
        start = start or time(10, 0)
        end = end or time(12, 0)
        if is_available is None:
            is_available = booked_participants < max_participants
        s = Slot(id=slot_id, experience_id=experience_id, date=day, start_time=start, end_time=end,
                 max_participants=max_participants, booked_participants=booked_participants,
                 is_available=is_available)
        test_db_session.add(s)
        test_db_session.commit()
        return s
    return _make_slot


@pytest.fixture
def make_booking(test_db_session, make_slot):
    """Insert a booking row directly, keeping the slot counter in step."""
    def _make_booking(slot_id="s-1", user_id="7", participants=1, status="confirmed"):
        slot = test_db_session.get(Slot, slot_id, populate_existing=True) or make_slot(slot_id)
        exp = test_db_session.get(Experience, slot.experience_id)
        b = Booking(id=str(uuid.uuid4()), booking_reference=generate_booking_reference(), user_id=user_id,
                    experience_id=exp.id, slot_id=slot.id, booking_date=slot.date, booking_time=slot.start_time,
                    participants=participants, total_amount=exp.price * participants, currency=exp.currency,
                    customer_name="Ana Silva", customer_email="ana@example.com",
                    customer_phone="+351 900 000 000", status=status, payment_status="pending")
        if status != "cancelled":
            slot.booked_participants += participants
            slot.is_available = slot.booked_participants < slot.max_participants
        test_db_session.add(b)
        test_db_session.commit()
        return b
    return _make_booking


@pytest.fixture
def contact():
    return Contact(customer_name="Ana Silva", customer_email="ana@example.com", customer_phone="+351 900 000 000")


@pytest.fixture
def slot_state(session_factory):
    """Read a slot's counters through a fresh session."""
    def _slot_state(slot_id):
        session = session_factory()
        try:
            s = session.get(Slot, slot_id)
            return s.max_participants, s.booked_participants, s.is_available
        finally:
            session.close()
    return _slot_state
