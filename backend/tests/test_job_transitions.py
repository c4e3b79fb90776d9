"""
Job-Level Transition Tests

QC tests proving:
1. start/pause/complete/approve/reject/skip produce the documented state
2. Exactly one history entry is added per operation, older entries untouched
3. reject never advances, approve at DISPATCH completes without moving
4. Skipped stages are never entered
5. The input Job is never modified
"""

import pytest

from fabtrack.workflow import (
    BatchStatus,
    JobAction,
    QCStatus,
    Stage,
    StageWorkStatus,
    approve_qc,
    complete_stage,
    pause_stage,
    reject_qc,
    skip_stage,
    start_stage,
)
from factories import T0, job_in_production, new_job


def assert_one_new_entry(before, after, action):
    """History grew by exactly one entry at the front; the rest is unchanged."""
    assert len(after.history) == len(before.history) + 1
    assert after.history[0].action == action
    assert after.history[1:] == before.history


# =============================================================================
# Creation
# =============================================================================

def test_create_starts_at_design_with_one_entry(job):
    assert job.current_stage == Stage.DESIGN
    assert job.qc_status == QCStatus.PENDING
    assert job.batches == []
    assert job.start_time == T0
    assert job.current_stage_start_time == T0
    assert len(job.history) == 1
    assert job.history[0].action == JobAction.CREATE
    assert job.history[0].job_id == job.id


def test_create_accepts_extra_fields():
    job = new_job(sr_no=42, max_completion_time=5)
    assert job.sr_no == 42
    assert job.max_completion_time == 5


# =============================================================================
# start / pause
# =============================================================================

class TestStartAndPause:

    def test_start_marks_stage_in_progress(self, job):
        started = start_stage(job, "alice", now=T0 + 10)

        record = started.stage_status[Stage.DESIGN]
        assert record.status == StageWorkStatus.IN_PROGRESS
        assert record.start_time == T0 + 10
        assert record.assigned_workers == ["alice"]
        assert_one_new_entry(job, started, JobAction.START)

    def test_start_twice_keeps_duplicate_worker(self, job):
        """Assignment is recorded per start; the same user appears twice."""
        twice = start_stage(start_stage(job, "alice", now=T0 + 1), "alice", now=T0 + 2)
        assert twice.stage_status[Stage.DESIGN].assigned_workers == ["alice", "alice"]

    def test_start_does_not_touch_input(self, job):
        start_stage(job, "alice", now=T0 + 10)
        assert job.stage_status == {}
        assert len(job.history) == 1

    def test_pause_only_records_history(self, job):
        started = start_stage(job, "alice", now=T0 + 1)
        paused = pause_stage(started, "alice", now=T0 + 2)

        assert paused.stage_status == started.stage_status
        assert paused.last_updated == T0 + 2
        assert_one_new_entry(started, paused, JobAction.PAUSE)


# =============================================================================
# complete
# =============================================================================

class TestCompleteStage:

    def test_complete_waits_for_qc(self, job):
        done = complete_stage(job, "alice", now=T0 + 50)

        assert done.current_stage == Stage.DESIGN
        assert done.qc_status == QCStatus.READY_FOR_QC
        assert done.stage_status[Stage.DESIGN].status == StageWorkStatus.COMPLETED
        assert done.stage_status[Stage.DESIGN].end_time == T0 + 50
        assert not done.is_completed
        assert_one_new_entry(job, done, JobAction.COMPLETE)

    def test_complete_at_dispatch_finishes_job(self):
        job = new_job(current_stage=Stage.DISPATCH)
        done = complete_stage(job, "driver", now=T0 + 50)

        assert done.is_completed
        assert done.current_stage == Stage.DISPATCH


# =============================================================================
# approve / reject
# =============================================================================

class TestQCGate:

    def test_approve_moves_to_next_stage(self, job):
        ready = complete_stage(job, "alice", now=T0 + 500)
        approved = approve_qc(ready, "qc", now=T0 + 1_000)

        assert approved.current_stage == Stage.CUTTING
        assert approved.qc_status == QCStatus.PENDING
        record = approved.stage_status[Stage.DESIGN]
        assert record.qc_status == QCStatus.APPROVED
        assert record.qc_by == "qc"
        assert record.qc_date == T0 + 1_000
        assert_one_new_entry(ready, approved, JobAction.QC_APPROVE)

    def test_approve_rolls_stage_timer(self, job):
        approved = approve_qc(job, "qc", now=T0 + 1_000)

        assert approved.stage_times[Stage.DESIGN] == 1_000
        assert approved.current_stage_start_time == T0 + 1_000

    def test_leaving_design_creates_first_batch(self, job):
        approved = approve_qc(job, "qc", now=T0 + 1_000)

        assert len(approved.batches) == 1
        b1 = approved.batches[0]
        assert b1.id == "B1"
        assert b1.quantity == 100
        assert b1.stage == Stage.CUTTING
        assert b1.status == BatchStatus.PENDING

    def test_existing_batches_are_not_recreated(self):
        job = job_in_production()
        approved = approve_qc(job, "qc", now=T0 + 2_000)

        assert approved.current_stage == Stage.BENDING
        assert approved.batches == job.batches

    def test_approve_at_dispatch_completes_without_moving(self):
        job = new_job(current_stage=Stage.DISPATCH)
        approved = approve_qc(job, "qc", now=T0 + 10)

        assert approved.is_completed
        assert approved.current_stage == Stage.DISPATCH
        assert approved.current_stage_start_time is None
        assert approved.stage_times[Stage.DISPATCH] == 10
        assert approved.history[0].details == "Job Completed"

    def test_approve_honours_skipped_stages(self):
        job = new_job(current_stage=Stage.FABRICATION, skipped_stages=[Stage.POWDER_COATING])
        assert approve_qc(job, "qc", now=T0 + 1).current_stage == Stage.ASSEMBLY

    def test_reject_never_advances(self, job):
        ready = complete_stage(job, "alice", now=T0 + 1)
        rejected = reject_qc(ready, "qc", "Dimension issue", now=T0 + 2)

        assert rejected.current_stage == Stage.DESIGN
        assert rejected.qc_status == QCStatus.PENDING
        assert rejected.rejection_reason == "Dimension issue"
        record = rejected.stage_status[Stage.DESIGN]
        assert record.status == StageWorkStatus.PENDING
        assert record.qc_status == QCStatus.PENDING
        assert_one_new_entry(ready, rejected, JobAction.QC_REJECT)

    def test_reject_accepts_free_text_reason(self, job):
        rejected = reject_qc(job, "qc", "Holes drilled off-centre", now=T0 + 2)
        assert "Holes drilled off-centre" in rejected.history[0].details


# =============================================================================
# skip
# =============================================================================

class TestSkipStage:

    def test_skip_chain_never_lands_on_skipped_stage(self):
        """
        GIVEN: Job at FABRICATION with POWDER_COATING already skipped
        WHEN: FABRICATION is skipped
        THEN: The job lands on ASSEMBLY
        """
        job = new_job(current_stage=Stage.FABRICATION, skipped_stages=[Stage.POWDER_COATING])
        skipped = skip_stage(job, "planner", "Outsourced", now=T0 + 5)

        assert skipped.current_stage == Stage.ASSEMBLY
        assert skipped.skipped_stages == [Stage.POWDER_COATING, Stage.FABRICATION]
        assert skipped.stage_status[Stage.FABRICATION].status == StageWorkStatus.SKIPPED
        assert_one_new_entry(job, skipped, JobAction.SKIP)

    def test_skip_does_not_duplicate_skipped_stage(self):
        job = new_job(current_stage=Stage.CUTTING, skipped_stages=[Stage.CUTTING])
        skipped = skip_stage(job, "planner", "Laser cut by vendor", now=T0 + 5)

        assert skipped.skipped_stages == [Stage.CUTTING]
        assert skipped.current_stage == Stage.BENDING

    def test_skip_at_dispatch_completes(self):
        job = new_job(current_stage=Stage.DISPATCH)
        skipped = skip_stage(job, "planner", "Customer pickup", now=T0 + 5)

        assert skipped.is_completed
        assert skipped.current_stage == Stage.DISPATCH

    def test_skip_out_of_design_creates_first_batch(self, job):
        skipped = skip_stage(job, "planner", "Drawing supplied", now=T0 + 5)

        assert skipped.current_stage == Stage.CUTTING
        assert [(b.id, b.stage, b.quantity) for b in skipped.batches] == [("B1", Stage.CUTTING, 100)]

    @pytest.mark.parametrize("operation", ["approve", "skip"])
    def test_later_advances_respect_skip_set(self, operation):
        """Once a stage is skipped no later advance enters it."""
        job = new_job(current_stage=Stage.CUTTING)
        job = skip_stage(job, "planner", "n/a", now=T0 + 1)  # -> BENDING
        job = job.model_copy(update={"skipped_stages": [*job.skipped_stages, Stage.PUNCHING]})

        if operation == "approve":
            job = approve_qc(job, "qc", now=T0 + 2)
        else:
            job = skip_stage(job, "planner", "n/a", now=T0 + 2)

        assert job.current_stage == Stage.FABRICATION
