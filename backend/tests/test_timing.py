"""
Time Tracking Tests

Display formatting, SLA classification, reminders and overdue detection.
"""

from datetime import datetime, timedelta

import pytest

from fabtrack.workflow.models import Stage
from fabtrack.workflow.timing import (
    MS_PER_DAY,
    MS_PER_HOUR,
    current_stage_elapsed,
    days_to_ms,
    format_time_elapsed,
    is_overdue,
    next_reminder_at,
    time_status,
    total_time_spent,
)
from factories import T0, new_job


# =============================================================================
# Formatting
# =============================================================================

@pytest.mark.parametrize("ms,expected", [
    (None, "0s"),
    (0, "0s"),
    (-500, "0s"),
    (30_000, "30s"),
    (90_000, "1m 30s"),
    (45 * 60_000, "45m"),
    (MS_PER_HOUR, "1h"),
    (9_000_000, "2h 30m"),
    (26 * MS_PER_HOUR, "1d 2h"),
    (2 * MS_PER_DAY, "2d"),
])
def test_format_time_elapsed(ms, expected):
    assert format_time_elapsed(ms) == expected


# =============================================================================
# Elapsed time
# =============================================================================

def test_current_stage_elapsed():
    assert current_stage_elapsed(None, T0) == 0
    assert current_stage_elapsed(T0, T0 + 500) == 500
    assert current_stage_elapsed(T0 + 500, T0) == 0


def test_total_time_spent_adds_running_stage():
    stage_times = {Stage.CUTTING: 1_000, Stage.BENDING: 2_000}
    assert total_time_spent(stage_times, T0, T0 + 500) == 3_500
    assert total_time_spent(stage_times, None, T0 + 500) == 3_000
    assert total_time_spent(None, None) == 0


@pytest.mark.parametrize("hours,expected", [
    (1, "good"),
    (11.9, "good"),
    (13, "warning"),
    (25, "critical"),
])
def test_time_status_default_threshold(hours, expected):
    assert time_status(int(hours * MS_PER_HOUR)) == expected


def test_time_status_custom_threshold():
    assert time_status(int(1.5 * MS_PER_HOUR), threshold_hours=2) == "warning"


# =============================================================================
# Reminders and SLA
# =============================================================================

def test_next_reminder_is_nine_am_next_day():
    reminder = datetime.fromtimestamp(next_reminder_at(T0) / 1000)
    reference = datetime.fromtimestamp(T0 / 1000)

    assert reminder.date() == (reference + timedelta(days=1)).date()
    assert (reminder.hour, reminder.minute, reminder.second) == (9, 0, 0)


def test_days_to_ms():
    assert days_to_ms(1) == MS_PER_DAY
    assert days_to_ms(0.5) == MS_PER_DAY // 2


class TestOverdue:

    def test_open_job_past_deadline_is_overdue(self):
        job = new_job()  # 12 days by default
        assert not is_overdue(job, T0 + days_to_ms(11))
        assert is_overdue(job, T0 + days_to_ms(12) + 1)

    def test_custom_deadline(self):
        job = new_job(max_completion_time=2)
        assert is_overdue(job, T0 + days_to_ms(3))

    def test_completed_job_is_never_overdue(self):
        job = new_job().model_copy(update={"is_completed": True})
        assert not is_overdue(job, T0 + days_to_ms(100))
