from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Numeric, Date, Time, DateTime, Boolean, ForeignKey,
    CheckConstraint, UniqueConstraint, Index, text,
)
from slotbook.db import Base

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
CONTACT_FIELDS = ("customer_name", "customer_email", "customer_phone")


class Experience(Base):
    __tablename__ = "experiences"
    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    location = Column(String)
    duration_minutes = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="experience_price_non_negative"),
    )


class Slot(Base):
    __tablename__ = "slots"
    id = Column(String, primary_key=True)
    experience_id = Column(String, ForeignKey("experiences.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_participants = Column(Integer, nullable=False)
    booked_participants = Column(Integer, nullable=False, default=0)
    # Cached: booked_participants < max_participants
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("max_participants > 0", name="slot_capacity_positive"),
        CheckConstraint("booked_participants >= 0", name="slot_booked_non_negative"),
        CheckConstraint("booked_participants <= max_participants", name="slot_not_overbooked"),
        CheckConstraint("end_time > start_time", name="slot_time_valid"),
        UniqueConstraint("experience_id", "date", "start_time", name="uniq_experience_slot_start"),
    )

    @property
    def remaining(self) -> int:
        return self.max_participants - self.booked_participants


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(String, primary_key=True)
    booking_reference = Column(String, nullable=False, unique=True)
    user_id = Column(String, nullable=False, index=True)
    experience_id = Column(String, ForeignKey("experiences.id", ondelete="RESTRICT"), nullable=False)
    slot_id = Column(String, ForeignKey("slots.id", ondelete="RESTRICT"), nullable=False, index=True)
    booking_date = Column(Date, nullable=False)
    booking_time = Column(Time, nullable=False)
    participants = Column(Integer, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    status = Column(String, nullable=False, default="confirmed")  # pending|confirmed|cancelled|completed
    payment_status = Column(String, nullable=False, default="pending")  # pending|paid|failed|refunded
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    cancelled_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("participants > 0", name="booking_participants_positive"),
        CheckConstraint(
            "status in ('pending','confirmed','cancelled','completed')", name="booking_status_valid"
        ),
        CheckConstraint(
            "payment_status in ('pending','paid','failed','refunded')", name="booking_payment_status_valid"
        ),
        # One active booking per user per slot; the store rejects the race loser
        Index(
            "uq_bookings_active_user_slot",
            "slot_id",
            "user_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )
