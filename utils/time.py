# utils/time.py
from datetime import datetime, timezone
from typing import Optional

def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)

def as_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)

def seconds_until(ts: datetime, now: Optional[datetime] = None) -> float:
    now = now or utc_now()
    return (as_utc(ts) - now).total_seconds()
