from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from slotbook.models import Experience


@dataclass(frozen=True)
class ExperienceInfo:
    id: str
    title: str
    price: Decimal
    currency: str


class ExperienceCatalog(Protocol):
    def get(self, experience_id: str) -> Optional[ExperienceInfo]: ...


class SqlExperienceCatalog:
    """Reads prices from the experiences table in the booking database."""

    def __init__(self, db: Session, default_currency: str = "EUR"):
        self.db = db
        self.default_currency = default_currency

    def get(self, experience_id: str) -> Optional[ExperienceInfo]:
        exp = self.db.get(Experience, experience_id)
        if exp is None:
            return None
        return ExperienceInfo(
            id=exp.id,
            title=exp.title,
            price=Decimal(exp.price),
            currency=exp.currency or self.default_currency,
        )
