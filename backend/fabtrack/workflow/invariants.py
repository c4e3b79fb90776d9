"""
Hard invariants over Job state.

The transition functions are written to preserve these. The checks here
FAIL LOUDLY: a violation means a bug in a transition or a caller that
edited a Job by hand, and must be fixed at the source.

Invariants:
1. QUANTITY: batch quantities sum to total_qty once batches exist
2. BATCH IDS: batch ids are unique within a job, every quantity is > 0
3. PROJECTION: an open job's current_stage is the most advanced stage
   among all of its batches
"""

import logging
from collections import Counter

from .models import Job
from .stages import most_advanced

logger = logging.getLogger(__name__)


class InvariantViolation(Exception):
    """Base class for invariant violations. Not recoverable."""
    pass


class QuantityInvariantViolation(InvariantViolation):
    def __init__(self, job_id: str, total_qty: int, batch_total: int):
        self.job_id = job_id
        self.total_qty = total_qty
        self.batch_total = batch_total
        super().__init__(
            f"QUANTITY INVARIANT VIOLATED: Job {job_id} has total_qty={total_qty} "
            f"but its batches hold {batch_total} units."
        )


class BatchIdentityViolation(InvariantViolation):
    def __init__(self, job_id: str, problems: list):
        self.job_id = job_id
        self.problems = problems
        super().__init__(
            f"BATCH INVARIANT VIOLATED: Job {job_id}: {'; '.join(problems)}"
        )


class ProjectionInvariantViolation(InvariantViolation):
    def __init__(self, job_id: str, current_stage: str, expected_stage: str):
        self.job_id = job_id
        self.current_stage = current_stage
        self.expected_stage = expected_stage
        super().__init__(
            f"PROJECTION INVARIANT VIOLATED: Job {job_id} is at {current_stage} "
            f"but its most advanced batch is at {expected_stage}."
        )


def check_quantity_conservation(job: Job) -> None:
    """
    Raises:
        QuantityInvariantViolation: If batch quantities do not add up
    """
    if not job.batches:
        return
    batch_total = job.batch_quantity_total
    if batch_total != job.total_qty:
        raise QuantityInvariantViolation(job.id, job.total_qty, batch_total)


def check_unique_batch_ids(job: Job) -> None:
    """
    Raises:
        BatchIdentityViolation: On duplicate ids or non-positive quantities
    """
    problems = []
    duplicates = [batch_id for batch_id, count in Counter(b.id for b in job.batches).items() if count > 1]
    if duplicates:
        problems.append(f"duplicate batch ids {sorted(duplicates)}")
    empty = [b.id for b in job.batches if b.quantity <= 0]
    if empty:
        problems.append(f"non-positive quantity on {empty}")
    if problems:
        raise BatchIdentityViolation(job.id, problems)


def check_stage_projection(job: Job) -> None:
    """
    Raises:
        ProjectionInvariantViolation: If current_stage drifted from the batches
    """
    if not job.batches or job.is_completed:
        return
    expected = most_advanced((b.stage for b in job.batches), default=job.current_stage)
    if expected != job.current_stage:
        raise ProjectionInvariantViolation(job.id, job.current_stage.value, expected.value)


def check_job_invariants(job: Job, include_projection: bool = True) -> None:
    """
    Run every invariant check.

    The projection check only holds right after a batch operation (job-level
    QC approval moves current_stage ahead of the batches), so callers that
    check after job-level transitions pass include_projection=False.
    """
    check_unique_batch_ids(job)
    check_quantity_conservation(job)
    if include_projection:
        check_stage_projection(job)
