"""Time utilities."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Get current time as ISO 8601 string with Z suffix."""
    return to_iso(utcnow())


def to_iso(dt: datetime) -> str:
    """Aware datetime as ISO 8601 string with Z suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into an aware datetime."""
    dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
