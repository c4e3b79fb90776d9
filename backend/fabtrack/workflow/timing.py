"""
Clock and time-tracking helpers.

All workflow timestamps are integer milliseconds since the Unix epoch.
The reminder fields written here are advisory SLA bookkeeping for an
external reminder service; nothing in the engine waits on them.
"""

import time
from datetime import datetime, timedelta
from typing import Dict, Optional

# Rework / QC follow-up reminder fires at this local hour on the next day.
REMINDER_HOUR = 9

# Default order lead time, in days (Job.max_completion_time).
DEFAULT_MAX_COMPLETION_DAYS = 12

# Threshold used by time_status(), in hours.
DEFAULT_THRESHOLD_HOURS = 24

MS_PER_SECOND = 1000
MS_PER_HOUR = 60 * 60 * MS_PER_SECOND
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * MS_PER_SECOND)


def next_reminder_at(now: int) -> int:
    """
    Next calendar day at REMINDER_HOUR:00 local time.

    Args:
        now: Reference time in milliseconds

    Returns:
        Reminder timestamp in milliseconds
    """
    current = datetime.fromtimestamp(now / MS_PER_SECOND)
    tomorrow = (current + timedelta(days=1)).replace(
        hour=REMINDER_HOUR, minute=0, second=0, microsecond=0
    )
    return int(tomorrow.timestamp() * MS_PER_SECOND)


def days_to_ms(days: float) -> int:
    return int(days * MS_PER_DAY)


def format_time_elapsed(ms: Optional[int]) -> str:
    """
    Format a duration for display.

    Examples:
        90_000 -> "1m 30s"
        9_000_000 -> "2h 30m"
        93_600_000 -> "1d 2h"
    """
    if not ms or ms < 0:
        return "0s"

    seconds = ms // MS_PER_SECOND
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        remaining_hours = hours % 24
        return f"{days}d {remaining_hours}h" if remaining_hours else f"{days}d"
    if hours > 0:
        remaining_minutes = minutes % 60
        return f"{hours}h {remaining_minutes}m" if remaining_minutes else f"{hours}h"
    if minutes > 0:
        remaining_seconds = seconds % 60
        return f"{minutes}m {remaining_seconds}s" if remaining_seconds else f"{minutes}m"
    return f"{seconds}s"


def current_stage_elapsed(start_time: Optional[int], now: Optional[int] = None) -> int:
    """Milliseconds since start_time, 0 when the stage has not started."""
    if not start_time:
        return 0
    reference = now if now is not None else now_ms()
    return max(0, reference - start_time)


def total_time_spent(
    stage_times: Optional[Dict[object, int]],
    current_stage_start_time: Optional[int] = None,
    now: Optional[int] = None,
) -> int:
    """Accumulated time of finished stages plus the running current stage."""
    completed = sum((stage_times or {}).values())
    return completed + current_stage_elapsed(current_stage_start_time, now)


def time_status(elapsed_ms: int, threshold_hours: float = DEFAULT_THRESHOLD_HOURS) -> str:
    """
    Classify an elapsed duration against a threshold.

    Returns:
        "good" below half the threshold, "warning" below the threshold,
        "critical" otherwise
    """
    hours = elapsed_ms / MS_PER_HOUR
    if hours < threshold_hours * 0.5:
        return "good"
    if hours < threshold_hours:
        return "warning"
    return "critical"


def is_overdue(job, now: Optional[int] = None) -> bool:
    """
    True when an open job has run past its max_completion_time.

    max_completion_time is expressed in days and converted here.
    """
    if job.is_completed or not job.start_time:
        return False
    reference = now if now is not None else now_ms()
    return reference - job.start_time > days_to_ms(job.max_completion_time)
