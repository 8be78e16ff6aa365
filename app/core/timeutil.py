from datetime import datetime, timezone

from app.core.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite hands back naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def slot_start_of(slot_date: str, slot_time: str) -> datetime:
    """YYYY-MM-DD + HH:MM (UTC) -> aware datetime."""
    try:
        return datetime.strptime(f"{slot_date}T{slot_time}", "%Y-%m-%dT%H:%M").replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid slot date/time: {slot_date} {slot_time} (expected YYYY-MM-DD and HH:MM)")
