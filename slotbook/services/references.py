import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_ALPHABET[rem])
    return "".join(reversed(out))


def generate_booking_reference(now_ms: int | None = None) -> str:
    """Customer-facing confirmation code: BK + base36 millis + 5 random chars."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"BK{_base36(now_ms)}{suffix}"
