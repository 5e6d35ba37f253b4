import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from slotbook.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

BEGIN_MODE_OPTION = "sqlite_begin_mode"


def build_engine(url: str, busy_timeout: float = 30.0, statement_timeout_ms: int = 10_000) -> Engine:
    """
    Create an engine whose write transactions serialize on the same slot.

    SQLite: transactions opened through `begin_write` start with BEGIN
    IMMEDIATE so the write lock is taken up front and concurrent writers queue
    on the busy timeout instead of failing on a lock upgrade. Plain reads use a
    deferred BEGIN and never wait for the write lock. PostgreSQL: the
    conditional UPDATE row lock does the serializing; a statement timeout
    bounds lock waits.
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url, connect_args={"check_same_thread": False, "timeout": busy_timeout}
        )

        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_conn, _record):
            # Let SQLAlchemy's begin event own transaction boundaries
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            mode = conn.get_execution_options().get(BEGIN_MODE_OPTION)
            conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

        return engine

    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args={"options": f"-c statement_timeout={statement_timeout_ms}"},
    )


_settings = get_settings()
engine = build_engine(
    _settings.database_url,
    busy_timeout=_settings.db_busy_timeout_seconds,
    statement_timeout_ms=_settings.db_statement_timeout_ms,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def begin_write(db: Session) -> None:
    """Open the session's transaction for writing, taking the SQLite write lock up front."""
    if not db.in_transaction():
        db.connection(execution_options={BEGIN_MODE_OPTION: "IMMEDIATE"})


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = engine, seed: bool = False):
    # Import models here to create tables
    from slotbook.models import Experience, Slot, Booking  # noqa: F401
    Base.metadata.create_all(bind=bind)

    if seed:
        seed_demo_data(sessionmaker(bind=bind))


def seed_demo_data(session_factory):
    """Create a demo experience with a week of morning slots if the store is empty."""
    from datetime import date, time, timedelta
    from decimal import Decimal
    from slotbook.models import Experience, Slot

    db = session_factory()
    try:
        begin_write(db)
        if db.query(Experience).first():
            return
        exp = Experience(id="exp-demo", title="Old Town Walking Tour", price=Decimal("25.00"), currency="EUR")
        db.add(exp)
        db.flush()
        today = date.today()
        slots = []
        for i in range(1, 8):
            slots.append(Slot(
                id=f"slot-demo-{i}",
                experience_id=exp.id,
                date=today + timedelta(days=i),
                start_time=time(10, 0),
                end_time=time(12, 0),
                max_participants=10,
                booked_participants=0,
                is_available=True,
            ))
        db.add_all(slots)
        db.commit()
        logger.info("Seeded demo experience", extra={"event": "seed_demo", "slots": len(slots)})
    finally:
        db.close()
