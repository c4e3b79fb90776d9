"""
History recorder.

Job history is newest-first, batch history is oldest-first. Both helpers
return a NEW list; the list passed in is never modified.
"""

from typing import List, Optional

from .models import JobAction, JobHistory, Stage


def make_entry(
    job_id: str,
    action: JobAction,
    stage: Stage,
    user: str,
    timestamp: int,
    details: Optional[str] = None,
) -> JobHistory:
    return JobHistory(
        job_id=job_id,
        action=action,
        stage=stage,
        timestamp=timestamp,
        user=user,
        details=details,
    )


def prepend_job_history(history: List[JobHistory], entry: JobHistory) -> List[JobHistory]:
    """Job timeline: newest entry first."""
    return [entry, *history]


def append_batch_history(history: List[JobHistory], entry: JobHistory) -> List[JobHistory]:
    """Batch timeline: oldest entry first."""
    return [*history, entry]
