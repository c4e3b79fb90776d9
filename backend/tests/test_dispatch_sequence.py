"""
Dispatch Sequence Tests

QC tests proving:
1. dispatch -> invoice -> payment -> close runs in that order only
2. Out-of-order steps are no-ops
3. Dispatch is only possible from the DISPATCH stage
"""

import pytest

from fabtrack.workflow import (
    DispatchStatus,
    JobAction,
    QCStatus,
    Stage,
    close_order,
    dispatch_job,
    generate_invoice,
    mark_dispatch_ready,
    record_payment,
)
from fabtrack.workflow.dispatch import can_advance_dispatch
from factories import T0, new_job


@pytest.fixture
def at_dispatch():
    return new_job(current_stage=Stage.DISPATCH)


def run_full_sequence(job):
    job = mark_dispatch_ready(
        job, "clerk",
        vehicle_number="MH12AB1234",
        challan_number="CH-77",
        dispatcher_name="Ravi",
        now=T0 + 1,
    )
    job = dispatch_job(job, "clerk", now=T0 + 2)
    job = generate_invoice(job, "accounts", "INV-2024-001", 15000.0, now=T0 + 3)
    job = record_payment(job, "accounts", now=T0 + 4)
    return close_order(job, "manager", now=T0 + 5)


# =============================================================================
# Happy path
# =============================================================================

class TestDispatchSequence:

    def test_ready_for_dispatch_records_details(self, at_dispatch):
        job = mark_dispatch_ready(
            at_dispatch, "clerk", vehicle_number="MH12AB1234", challan_number="CH-77", now=T0 + 1
        )

        assert job.vehicle_number == "MH12AB1234"
        assert job.challan_number == "CH-77"
        assert job.dispatch_status is None
        assert job.history[0].action == JobAction.DISPATCH_READY
        assert job.history[0].details == "Vehicle: MH12AB1234, Challan: CH-77"

    def test_ready_without_details_uses_default_note(self, at_dispatch):
        job = mark_dispatch_ready(at_dispatch, "clerk", now=T0 + 1)
        assert job.history[0].details == "Marked Ready for Dispatch (RFD)"

    def test_full_sequence(self, at_dispatch):
        job = run_full_sequence(at_dispatch)

        assert job.dispatch_status == DispatchStatus.CLOSED
        assert job.is_completed
        assert job.qc_status == QCStatus.APPROVED
        assert job.actual_dispatch_time == T0 + 2
        assert job.invoice_number == "INV-2024-001"
        assert job.invoice_amount == 15000.0
        assert job.invoice_date == T0 + 3
        assert job.payment_date == T0 + 4
        assert job.closed_date == T0 + 5
        assert [e.action for e in job.history[:5]] == [
            JobAction.ORDER_CLOSED,
            JobAction.PAYMENT_RECEIVED,
            JobAction.INVOICE_GENERATED,
            JobAction.DISPATCH,
            JobAction.DISPATCH_READY,
        ]

    def test_each_step_sets_status(self, at_dispatch):
        job = dispatch_job(at_dispatch, "clerk", now=T0 + 1)
        assert job.dispatch_status == DispatchStatus.DISPATCHED
        assert not job.is_completed

        job = generate_invoice(job, "accounts", "INV-1", 10.0, now=T0 + 2)
        assert job.dispatch_status == DispatchStatus.INVOICE_PENDING

        job = record_payment(job, "accounts", now=T0 + 3)
        assert job.dispatch_status == DispatchStatus.PAYMENT_PENDING


# =============================================================================
# Ordering enforcement
# =============================================================================

class TestDispatchOrdering:

    def test_dispatch_requires_dispatch_stage(self, job):
        assert dispatch_job(job, "clerk") is job
        assert mark_dispatch_ready(job, "clerk") is job

    def test_steps_out_of_order_are_noops(self, at_dispatch):
        assert generate_invoice(at_dispatch, "accounts", "INV-1", 10.0) is at_dispatch
        assert record_payment(at_dispatch, "accounts") is at_dispatch
        assert close_order(at_dispatch, "manager") is at_dispatch

        dispatched = dispatch_job(at_dispatch, "clerk", now=T0 + 1)
        assert dispatch_job(dispatched, "clerk") is dispatched
        assert record_payment(dispatched, "accounts") is dispatched
        assert close_order(dispatched, "manager") is dispatched
        assert mark_dispatch_ready(dispatched, "clerk") is dispatched

    def test_closed_order_is_final(self, at_dispatch):
        closed = run_full_sequence(at_dispatch)
        for step in (dispatch_job, record_payment, close_order):
            assert step(closed, "manager") is closed

    @pytest.mark.parametrize("current,target,allowed", [
        (None, DispatchStatus.DISPATCHED, True),
        (None, DispatchStatus.INVOICE_PENDING, False),
        (DispatchStatus.DISPATCHED, DispatchStatus.INVOICE_PENDING, True),
        (DispatchStatus.DISPATCHED, DispatchStatus.CLOSED, False),
        (DispatchStatus.INVOICE_PENDING, DispatchStatus.PAYMENT_PENDING, True),
        (DispatchStatus.PAYMENT_PENDING, DispatchStatus.CLOSED, True),
        (DispatchStatus.CLOSED, DispatchStatus.DISPATCHED, False),
    ])
    def test_transition_table(self, at_dispatch, current, target, allowed):
        job = at_dispatch.model_copy(update={"dispatch_status": current})
        assert can_advance_dispatch(job, target) is allowed
