"""
Dispatch, invoicing and order close-out.

Once production reaches DISPATCH the order runs through a fixed
post-production sequence:

    (not dispatched) -> DISPATCHED -> INVOICE_PENDING -> PAYMENT_PENDING -> CLOSED

Requests that do not follow this order are no-ops: the input Job is
returned unchanged.
"""

import logging
from typing import FrozenSet, Optional, Tuple

from .history import make_entry, prepend_job_history
from .models import DispatchStatus, Job, JobAction, QCStatus, Stage
from .stages import LAST_STAGE
from .timing import now_ms

logger = logging.getLogger(__name__)


# Legal dispatch_status transitions; None means "not yet dispatched".
_DISPATCH_TRANSITIONS: FrozenSet[Tuple[Optional[DispatchStatus], DispatchStatus]] = frozenset({
    (None, DispatchStatus.DISPATCHED),
    (DispatchStatus.DISPATCHED, DispatchStatus.INVOICE_PENDING),
    (DispatchStatus.INVOICE_PENDING, DispatchStatus.PAYMENT_PENDING),
    (DispatchStatus.PAYMENT_PENDING, DispatchStatus.CLOSED),
})


def can_advance_dispatch(job: Job, to_status: DispatchStatus) -> bool:
    """
    Check whether a job may move to the given dispatch status.

    Dispatch itself additionally requires the job to be at the DISPATCH stage.
    """
    if to_status == DispatchStatus.DISPATCHED and job.current_stage != LAST_STAGE:
        return False
    return (job.dispatch_status, to_status) in _DISPATCH_TRANSITIONS


def _commit(job: Job, action: JobAction, user: str, details: str, timestamp: int, **updates) -> Job:
    entry = make_entry(job.id, action, Stage.DISPATCH, user, timestamp, details)
    updates["history"] = prepend_job_history(job.history, entry)
    updates["last_updated"] = timestamp
    return job.model_copy(update=updates)


def mark_dispatch_ready(
    job: Job,
    user: str,
    vehicle_number: Optional[str] = None,
    challan_number: Optional[str] = None,
    invoice_number: Optional[str] = None,
    dispatcher_name: Optional[str] = None,
    now: Optional[int] = None,
) -> Job:
    """
    Mark a job Ready For Dispatch and record the shipping details.

    Only valid at the DISPATCH stage and before the job has left.
    """
    if job.current_stage != LAST_STAGE or job.dispatch_status is not None:
        logger.debug(f"[DISPATCH] Job {job.id}: not ready for dispatch, no-op")
        return job

    timestamp = now if now is not None else now_ms()
    parts = [
        f"Vehicle: {vehicle_number}" if vehicle_number else None,
        f"Challan: {challan_number}" if challan_number else None,
        f"Invoice: {invoice_number}" if invoice_number else None,
        f"Dispatcher: {dispatcher_name}" if dispatcher_name else None,
    ]
    details = ", ".join(p for p in parts if p) or "Marked Ready for Dispatch (RFD)"

    logger.info(f"[DISPATCH] Job {job.id}: ready for dispatch ({details})")
    return _commit(
        job, JobAction.DISPATCH_READY, user, details, timestamp,
        vehicle_number=vehicle_number,
        challan_number=challan_number,
        invoice_number=invoice_number,
        dispatcher_name=dispatcher_name,
    )


def dispatch_job(job: Job, user: str, now: Optional[int] = None) -> Job:
    """Ship the order. The job stays open until the order is closed."""
    if not can_advance_dispatch(job, DispatchStatus.DISPATCHED):
        logger.debug(f"[DISPATCH] Job {job.id}: cannot dispatch from {job.current_stage.value}, no-op")
        return job

    timestamp = now if now is not None else now_ms()
    logger.info(f"[DISPATCH] Job {job.id}: dispatched by {user}")
    return _commit(
        job, JobAction.DISPATCH, user, "Job dispatched (QC Approved), awaiting invoice", timestamp,
        dispatch_status=DispatchStatus.DISPATCHED,
        actual_dispatch_time=timestamp,
        qc_status=QCStatus.APPROVED,
    )


def generate_invoice(
    job: Job,
    user: str,
    invoice_number: str,
    amount: float,
    now: Optional[int] = None,
) -> Job:
    if not can_advance_dispatch(job, DispatchStatus.INVOICE_PENDING):
        logger.debug(f"[DISPATCH] Job {job.id}: invoice out of order, no-op")
        return job

    timestamp = now if now is not None else now_ms()
    logger.info(f"[DISPATCH] Job {job.id}: invoice {invoice_number} generated ({amount})")
    return _commit(
        job, JobAction.INVOICE_GENERATED, user,
        f"Invoice generated: {invoice_number} (Amount: {amount})", timestamp,
        dispatch_status=DispatchStatus.INVOICE_PENDING,
        invoice_number=invoice_number,
        invoice_amount=amount,
        invoice_date=timestamp,
    )


def record_payment(job: Job, user: str, now: Optional[int] = None) -> Job:
    if not can_advance_dispatch(job, DispatchStatus.PAYMENT_PENDING):
        logger.debug(f"[DISPATCH] Job {job.id}: payment out of order, no-op")
        return job

    timestamp = now if now is not None else now_ms()
    logger.info(f"[DISPATCH] Job {job.id}: payment received")
    return _commit(
        job, JobAction.PAYMENT_RECEIVED, user, "Payment received", timestamp,
        dispatch_status=DispatchStatus.PAYMENT_PENDING,
        payment_date=timestamp,
    )


def close_order(job: Job, user: str, now: Optional[int] = None) -> Job:
    """Close and archive the order. Terminal."""
    if not can_advance_dispatch(job, DispatchStatus.CLOSED):
        logger.debug(f"[DISPATCH] Job {job.id}: close out of order, no-op")
        return job

    timestamp = now if now is not None else now_ms()
    logger.info(f"[DISPATCH] Job {job.id}: order closed by {user}")
    return _commit(
        job, JobAction.ORDER_CLOSED, user, "Order closed and archived", timestamp,
        dispatch_status=DispatchStatus.CLOSED,
        closed_date=timestamp,
        is_completed=True,
    )
