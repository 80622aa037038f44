"""
UTC timestamp helpers shared by models and services
"""

from datetime import datetime, UTC

def utcnow() -> datetime:
    return datetime.now(UTC)

def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC; naive values are taken as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
