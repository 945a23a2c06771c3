"""Time helpers."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database and in meta values."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
