"""
Customer return and scrap engine.

Returned quantity either re-enters production at any stage
(reprocess_return_batch) or is scrapped for good (scrap_batch).
A scrapped batch has no way out and is ignored by all routing.
"""

import logging
from typing import Optional, Union

from .batches import (
    batch_entry,
    commit_batches,
    next_batch_number,
    replace_batch,
    routable_batch,
)
from .history import append_batch_history
from .models import Batch, BatchStatus, Job, JobAction, Stage
from .timing import next_reminder_at, now_ms

logger = logging.getLogger(__name__)


def _as_stage(value: Union[Stage, str]) -> Optional[Stage]:
    try:
        return Stage(value)
    except ValueError:
        return None


def handle_customer_return(
    job: Job,
    batch_id: str,
    return_qty: int,
    reason: str,
    origin_stage: Union[Stage, str],
    user: str,
    now: Optional[int] = None,
) -> Job:
    """
    Record a customer return against a delivered batch.

    A return covering the whole batch relabels it RETURNED in place. A
    partial return shrinks the original (status untouched) and creates a
    new B<n>-R batch at DISPATCH, status RETURNED, holding the returned
    units and the stage where the defect originated.

    Args:
        job: Owning job
        batch_id: Delivered batch the units came from
        return_qty: Units sent back (> 0)
        reason: Customer's rejection reason
        origin_stage: Stage the returned units must re-enter
        user: Acting user
        now: Optional clock override in milliseconds

    Returns:
        The updated Job, or `job` itself when nothing applies
    """
    batch = routable_batch(job, batch_id)
    origin = _as_stage(origin_stage)
    if batch is None or origin is None or return_qty <= 0:
        return job

    timestamp = now if now is not None else now_ms()

    if return_qty >= batch.quantity:
        entry = batch_entry(
            job, Stage.DISPATCH, JobAction.QC_REJECT, user, timestamp, f"Full Customer Return: {reason}"
        )
        returned = batch.model_copy(update={
            "status": BatchStatus.RETURNED,
            "return_origin_stage": origin,
            "return_date": timestamp,
            "rejection_reason": reason,
            "updated_date": timestamp,
            "history": append_batch_history(batch.history, entry),
        })
        logger.info(f"[RETURN] Job {job.id}: full return of {batch_id} ({batch.quantity} units), origin {origin.value}")
        return commit_batches(job, replace_batch(job.batches, returned), timestamp)

    kept_entry = batch_entry(
        job, batch.stage, JobAction.COMPLETE, user, timestamp,
        f"Partial Customer Return: {return_qty} units returned",
    )
    kept = batch.model_copy(update={
        "quantity": batch.quantity - return_qty,
        "updated_date": timestamp,
        "history": append_batch_history(batch.history, kept_entry),
    })

    return_id = f"B{next_batch_number(job.batches)}-R"
    return_batch = Batch(
        id=return_id,
        job_id=job.id,
        stage=Stage.DISPATCH,
        quantity=return_qty,
        status=BatchStatus.RETURNED,
        return_origin_stage=origin,
        return_date=timestamp,
        rejection_reason=reason,
        created_date=timestamp,
        updated_date=timestamp,
        reprocess_count=0,
        history=[
            batch_entry(
                job, Stage.DISPATCH, JobAction.QC_REJECT, user, timestamp,
                f"Customer Return: {reason} (Origin: {origin.value})",
            )
        ],
    )

    logger.info(
        f"[RETURN] Job {job.id}: {return_qty} of {batch.quantity} units returned from {batch_id} as {return_id}"
    )
    return commit_batches(job, [*replace_batch(job.batches, kept), return_batch], timestamp)


def reprocess_return_batch(
    job: Job,
    batch_id: str,
    target_stage: Union[Stage, str],
    user: str,
    now: Optional[int] = None,
) -> Job:
    """
    Route a RETURNED batch back into production at `target_stage`.

    The target does not have to follow the batch's current stage. Resets the
    batch to PENDING, bumps reprocess_count and clears return_origin_stage.
    """
    batch = routable_batch(job, batch_id)
    target = _as_stage(target_stage)
    if batch is None or target is None:
        return job
    if batch.status != BatchStatus.RETURNED:
        logger.debug(f"[RETURN] Job {job.id}: {batch_id} is {batch.status.value}, not RETURNED, no-op")
        return job

    timestamp = now if now is not None else now_ms()
    entry = batch_entry(
        job, target, JobAction.START, user, timestamp, f"Reprocessing Started at {target.value}"
    )
    rerouted = batch.model_copy(update={
        "stage": target,
        "status": BatchStatus.PENDING,
        "return_origin_stage": None,
        "reprocess_count": batch.reprocess_count + 1,
        "updated_date": timestamp,
        "pending_since": timestamp,
        "next_reminder": next_reminder_at(timestamp),
        "history": append_batch_history(batch.history, entry),
    })

    logger.info(f"[RETURN] Job {job.id}: {batch_id} re-entering production at {target.value}")
    return commit_batches(job, replace_batch(job.batches, rerouted), timestamp)


def scrap_batch(job: Job, batch_id: str, reason: str, user: str, now: Optional[int] = None) -> Job:
    """Scrap a batch permanently."""
    batch = routable_batch(job, batch_id)
    if batch is None:
        return job

    timestamp = now if now is not None else now_ms()
    entry = batch_entry(job, batch.stage, JobAction.QC_REJECT, user, timestamp, f"SCRAPPED: {reason}")
    scrapped = batch.model_copy(update={
        "status": BatchStatus.SCRAPPED,
        "is_scrapped": True,
        "scrap_reason": reason,
        "updated_date": timestamp,
        "history": append_batch_history(batch.history, entry),
    })

    logger.info(f"[RETURN] Job {job.id}: {batch_id} scrapped ({batch.quantity} units): {reason}")
    return commit_batches(job, replace_batch(job.batches, scrapped), timestamp)
