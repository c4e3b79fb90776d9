"""
Workflow engine: fabrication job orders moving through the stage pipeline.

Pure transition logic. Each operation takes the current Job and returns a
new Job plus one history entry; nothing is stored or broadcast here.

Not included:
- Persistence (see fabtrack.persistence)
- Per-job write serialisation and change notification (see fabtrack.jobs)
- Authentication: the `user` argument is recorded verbatim
"""

from .errors import (
    WorkflowError,
    JobNotFoundError,
    BatchNotFoundError,
    TransitionNotApplicableError,
)
from .models import (
    Stage,
    STAGE_COMPLETED,
    QCStatus,
    StageWorkStatus,
    DispatchStatus,
    BatchStatus,
    JobAction,
    JobPriority,
    REJECTION_REASONS,
    JobHistory,
    StageStatus,
    Batch,
    Job,
)
from .stages import STAGE_SEQUENCE, next_stage, most_advanced
from .engine import (
    start_stage,
    pause_stage,
    complete_stage,
    approve_qc,
    reject_qc,
    skip_stage,
)
from .dispatch import (
    mark_dispatch_ready,
    dispatch_job,
    generate_invoice,
    record_payment,
    close_order,
)
from .batches import (
    create_initial_batch,
    initialize_batches,
    update_batch_status,
    complete_batch_work,
    reprocess_batch,
    split_batch,
    move_batch_to_next_stage,
)
from .returns import (
    handle_customer_return,
    reprocess_return_batch,
    scrap_batch,
)
from .invariants import InvariantViolation, check_job_invariants

__all__ = [
    # Errors
    "WorkflowError",
    "JobNotFoundError",
    "BatchNotFoundError",
    "TransitionNotApplicableError",
    "InvariantViolation",
    # Models
    "Stage",
    "STAGE_COMPLETED",
    "QCStatus",
    "StageWorkStatus",
    "DispatchStatus",
    "BatchStatus",
    "JobAction",
    "JobPriority",
    "REJECTION_REASONS",
    "JobHistory",
    "StageStatus",
    "Batch",
    "Job",
    # Stage sequence
    "STAGE_SEQUENCE",
    "next_stage",
    "most_advanced",
    # Job-level
    "start_stage",
    "pause_stage",
    "complete_stage",
    "approve_qc",
    "reject_qc",
    "skip_stage",
    # Dispatch
    "mark_dispatch_ready",
    "dispatch_job",
    "generate_invoice",
    "record_payment",
    "close_order",
    # Batches
    "create_initial_batch",
    "initialize_batches",
    "update_batch_status",
    "complete_batch_work",
    "reprocess_batch",
    "split_batch",
    "move_batch_to_next_stage",
    # Returns
    "handle_customer_return",
    "reprocess_return_batch",
    "scrap_batch",
    # Invariants
    "check_job_invariants",
]
