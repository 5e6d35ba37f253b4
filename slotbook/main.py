import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slotbook.config import get_settings
from slotbook.db import init_db
from slotbook.errors import BookingError
from slotbook.integrations.identity import JwtIdentityProvider
from slotbook.integrations.notifications import build_notification_sink
from slotbook.logging_config import configure_logging
from slotbook.routers import bookings, slots

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title="Experience Booking API", version="0.1.0")
app.state.settings = settings
app.state.identity = JwtIdentityProvider.from_settings(settings)
app.state.notifier = build_notification_sink(settings)

app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(bookings.router, prefix="/bookings", tags=["bookings"])


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    if os.getenv("SKIP_DB_INIT") == "1":
        return
    init_db(seed=settings.seed_demo_data)


@app.get("/")
def root():
    return {"ok": True, "service": "slotbook"}
