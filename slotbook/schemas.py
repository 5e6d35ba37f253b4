from datetime import date as date_type, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


def _strip_not_blank(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


class SlotOut(BaseModel):
    id: str
    experience_id: str
    date: date_type
    start_time: time
    end_time: time
    max_participants: int
    booked_participants: int
    is_available: bool
    available_spots: int


class SlotDetailOut(SlotOut):
    experience_title: str
    experience_price: Decimal
    experience_currency: str


class AvailabilityOut(BaseModel):
    slot_id: str
    requested: int
    available_spots: int
    available: bool = True


class Contact(BaseModel):
    customer_name: str = Field(min_length=1)
    customer_email: str = Field(pattern=EMAIL_PATTERN)
    customer_phone: str = Field(min_length=1)

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        return _strip_not_blank(v)


class CreateBookingBody(Contact):
    experience_id: str
    slot_id: str
    participants: int = Field(ge=1)


class UpdateContactBody(BaseModel):
    customer_name: Optional[str] = Field(default=None, min_length=1)
    customer_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    customer_phone: Optional[str] = Field(default=None, min_length=1)

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def _not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _strip_not_blank(v)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class BookingView(BaseModel):
    """A booking joined with its slot and experience display fields."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_reference: str
    user_id: str
    experience_id: str
    slot_id: str
    participants: int
    total_amount: Decimal
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: str
    status: str
    payment_status: str
    booking_date: date_type
    booking_time: time
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    experience_title: Optional[str] = None
    experience_location: Optional[str] = None
    experience_price: Optional[Decimal] = None
    slot_date: Optional[date_type] = None
    slot_start_time: Optional[time] = None
    slot_end_time: Optional[time] = None
    slot_max_participants: Optional[int] = None
    slot_booked_participants: Optional[int] = None


class BookingList(BaseModel):
    count: int
    data: list[BookingView]


class CountOut(BaseModel):
    count: int
