from datetime import datetime, timedelta, timezone

import pytest

from app.models.status import SlotStatus
from app.services.availability_status import project_status

START = datetime(2030, 6, 2, 10, 0, tzinfo=timezone.utc)


class TestProjectStatus:
    @pytest.mark.parametrize("stored", ["canceled", "closed", "completed"])
    def test_admin_override_wins(self, stored):
        # even when the slot is running and full
        assert project_status(stored, START, 5, 5, START + timedelta(hours=1)) == SlotStatus(stored)

    def test_in_progress_from_start_until_window_end(self):
        assert project_status("available", START, 0, 5, START) == SlotStatus.IN_PROGRESS
        assert project_status("available", START, 0, 5, START + timedelta(hours=4)) == SlotStatus.IN_PROGRESS

    def test_completed_after_window(self):
        assert project_status("available", START, 0, 5, START + timedelta(hours=4, seconds=1)) == SlotStatus.COMPLETED

    def test_full_before_start(self):
        assert project_status("available", START, 5, 5, START - timedelta(minutes=1)) == SlotStatus.FULL

    def test_zero_capacity_is_full(self):
        assert project_status(None, START, 0, 0, START - timedelta(days=1)) == SlotStatus.FULL

    def test_available_with_room(self):
        assert project_status(None, START, 4, 5, START - timedelta(days=1)) == SlotStatus.AVAILABLE

    def test_naive_datetimes_are_treated_as_utc(self):
        naive = START.replace(tzinfo=None)
        assert project_status("available", naive, 0, 5, START + timedelta(minutes=5)) == SlotStatus.IN_PROGRESS

    def test_same_inputs_same_output(self):
        args = ("available", START, 3, 5, START - timedelta(hours=2))
        assert {project_status(*args) for _ in range(5)} == {SlotStatus.AVAILABLE}

    def test_custom_window(self):
        now = START + timedelta(hours=2)
        assert project_status(None, START, 0, 5, now, in_progress_window=timedelta(hours=1)) == SlotStatus.COMPLETED
