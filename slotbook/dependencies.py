from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from slotbook.db import get_db
from slotbook.errors import Unauthorized
from slotbook.services.coordinator import BookingCoordinator


def get_coordinator(request: Request, db: Session = Depends(get_db)) -> BookingCoordinator:
    state = request.app.state
    return BookingCoordinator(db, notifier=state.notifier, settings=state.settings)


def current_user_id(request: Request, authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized()
    token = authorization[len("Bearer "):].strip()
    return request.app.state.identity.resolve(token)
