"""
Effective (display) status of an availability slot.

Derived on every read from the stored override, capacity and wall-clock
time; never written back to the slot row.
"""
from datetime import datetime, timedelta

from app.core.config import settings
from app.core.timeutil import as_utc, slot_start_of
from app.models.status import SlotStatus, SLOT_OVERRIDE_STATUSES


def project_status(
    stored_status: str | None,
    slot_start: datetime,
    reserved_count: int,
    total_capacity: int,
    now: datetime,
    in_progress_window: timedelta | None = None,
) -> SlotStatus:
    if in_progress_window is None:
        in_progress_window = timedelta(hours=settings.IN_PROGRESS_WINDOW_HOURS)

    stored = SlotStatus(stored_status) if stored_status else SlotStatus.AVAILABLE
    # Admin overrides always win
    if stored in SLOT_OVERRIDE_STATUSES:
        return stored

    slot_start = as_utc(slot_start)
    now = as_utc(now)
    if slot_start <= now:
        if now <= slot_start + in_progress_window:
            return SlotStatus.IN_PROGRESS
        return SlotStatus.COMPLETED

    if (reserved_count or 0) >= total_capacity:
        return SlotStatus.FULL
    return SlotStatus.AVAILABLE


def effective_status(slot, now: datetime) -> SlotStatus:
    return project_status(
        slot.status,
        slot_start_of(slot.slot_date, slot.slot_time),
        slot.reserved_count,
        slot.total_capacity,
        now,
    )
