'''
Time helpers shared by the services.

The core never reads the clock itself; services receive a Clock through
FastAPI's dependency injection and pass `now` down explicitly.
'''
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def get_clock() -> Clock:
    """FastAPI dependency returning the wall clock. Tests override it."""
    return utc_now

def as_utc(value: datetime) -> datetime:
    """
    Normalizes a datetime to an aware UTC value.
    Naive values (e.g. read back from SQLite) are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
