"""
Job, Batch and history data models.

A Job is one customer order moving through the fabrication pipeline.
A Batch is a sub-quantity of a Job that can sit at a different stage
and status than its siblings.

All models are frozen Pydantic models. Transitions never write fields in
place: they build a new value with model_copy(update=...) and always hand
the copy fresh list/dict containers so no two Jobs share history.

Serialised field names (by_alias=True) are the camelCase names used by the
distributed clients, e.g. currentStage, qcStatus, skippedStages.
"""

import uuid
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .timing import now_ms, DEFAULT_MAX_COMPLETION_DAYS


class Stage(str, Enum):
    """
    Production stages, in pipeline order.

    Declaration order is the stage order. See stages.py for the lookup
    functions; nothing else should derive ordering from this enum.
    """

    DESIGN = "DESIGN"
    CUTTING = "CUTTING"
    BENDING = "BENDING"
    PUNCHING = "PUNCHING"
    FABRICATION = "FABRICATION"
    POWDER_COATING = "POWDER_COATING"
    ASSEMBLY = "ASSEMBLY"
    DISPATCH = "DISPATCH"


# Terminal marker returned by next_stage() when the walk runs off the end.
# Not a Stage: a Job never has current_stage == STAGE_COMPLETED.
STAGE_COMPLETED = "COMPLETED"

NextStage = Union[Stage, str]


class QCStatus(str, Enum):
    """Job-level QC gate for the current stage."""

    PENDING = "PENDING"
    READY_FOR_QC = "READY_FOR_QC"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StageWorkStatus(str, Enum):
    """Status of the work on a single stage record."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


class DispatchStatus(str, Enum):
    """Post-production progression. Absent until the job is dispatched."""

    DISPATCHED = "DISPATCHED"
    INVOICE_PENDING = "INVOICE_PENDING"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CLOSED = "CLOSED"


class BatchStatus(str, Enum):
    """Status of one batch at its current stage."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    OK_QUALITY = "OK_QUALITY"
    RETURNED = "RETURNED"
    SCRAPPED = "SCRAPPED"


class JobAction(str, Enum):
    """Action recorded in a history entry."""

    START = "START"
    PAUSE = "PAUSE"
    COMPLETE = "COMPLETE"
    SKIP = "SKIP"
    QC_APPROVE = "QC_APPROVE"
    QC_REJECT = "QC_REJECT"
    DISPATCH_READY = "DISPATCH_READY"
    DISPATCH = "DISPATCH"
    INVOICE_GENERATED = "INVOICE_GENERATED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    ORDER_CLOSED = "ORDER_CLOSED"
    CREATE = "CREATE"


class JobPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Reasons offered to QC operators. Free text is accepted as well.
REJECTION_REASONS = (
    "Dimension issue",
    "Color mismatch",
    "Finish issue",
    "Scratch / Scrap",
    "Double-time required",
    "Material Defect",
    "Assembly Error",
    "Damaged Delivery",
    "Customer Rejection",
)


_RECORD_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class JobHistory(BaseModel):
    """One immutable audit record. Never altered once appended."""

    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    job_id: str
    action: JobAction
    stage: Stage
    timestamp: int
    user: str
    details: Optional[str] = None


class StageStatus(BaseModel):
    """Per-stage work record on a Job."""

    model_config = _RECORD_CONFIG

    status: StageWorkStatus = StageWorkStatus.PENDING
    qc_status: QCStatus = QCStatus.PENDING
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    # Duplicates are kept: every start appends the acting user.
    assigned_workers: List[str] = Field(default_factory=list)
    qc_by: Optional[str] = None
    qc_date: Optional[int] = None
    qc_notes: Optional[str] = None


class Batch(BaseModel):
    """
    A sub-quantity of a Job's total.

    Identity is B<n>, or B<n>-R for a batch born from a customer return.
    History is oldest-first.
    """

    model_config = _RECORD_CONFIG

    id: str
    job_id: str
    stage: Stage
    quantity: int
    status: BatchStatus = BatchStatus.PENDING

    created_date: int
    updated_date: int
    pending_since: Optional[int] = None  # rework SLA marker
    next_reminder: Optional[int] = None  # consumed by the external reminder service

    rejection_reason: Optional[str] = None
    reprocess_count: int = 0

    return_origin_stage: Optional[Stage] = None
    return_date: Optional[int] = None
    is_scrapped: bool = False
    scrap_reason: Optional[str] = None

    history: List[JobHistory] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        """True while the batch can still be routed."""
        return not self.is_scrapped and self.status != BatchStatus.SCRAPPED


class Job(BaseModel):
    """
    A customer order.

    current_stage is the nominal stage of the Job. Once batches exist it
    is a projection of the most advanced batch and is recomputed after
    every batch operation (see batches.py).

    History is newest-first.
    """

    model_config = _RECORD_CONFIG

    # Identity
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    sr_no: Optional[int] = None
    code_no: str = ""
    customer: str = ""
    description: str = ""
    total_qty: int = 0

    # Workflow state
    current_stage: Stage = Stage.DESIGN
    qc_status: QCStatus = QCStatus.PENDING
    is_completed: bool = False
    skipped_stages: List[Stage] = Field(default_factory=list)
    dispatch_status: Optional[DispatchStatus] = None
    rejection_reason: Optional[str] = None
    last_updated: int = Field(default_factory=now_ms)

    # Owned collections
    batches: List[Batch] = Field(default_factory=list)
    history: List[JobHistory] = Field(default_factory=list)
    stage_status: Dict[Stage, StageStatus] = Field(default_factory=dict)
    stage_times: Dict[Stage, int] = Field(default_factory=dict)  # ms per stage
    current_stage_start_time: Optional[int] = None

    # Scheduling
    start_time: Optional[int] = None
    max_completion_time: int = DEFAULT_MAX_COMPLETION_DAYS  # days
    priority: Optional[JobPriority] = None

    # Dispatch details
    vehicle_number: Optional[str] = None
    challan_number: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_amount: Optional[float] = None
    invoice_date: Optional[int] = None
    dispatcher_name: Optional[str] = None
    actual_dispatch_time: Optional[int] = None
    payment_date: Optional[int] = None
    closed_date: Optional[int] = None

    @classmethod
    def create(
        cls,
        code_no: str,
        customer: str,
        total_qty: int,
        description: str = "",
        user: str = "system",
        now: Optional[int] = None,
        **fields,
    ) -> "Job":
        """
        Create a new order at DESIGN with no batches.

        The Job starts with a single CREATE history entry.
        """
        timestamp = now if now is not None else now_ms()
        job_id = fields.pop("id", None) or uuid.uuid4().hex
        created = JobHistory(
            job_id=job_id,
            action=JobAction.CREATE,
            stage=Stage.DESIGN,
            timestamp=timestamp,
            user=user,
            details=f"Job {code_no} created for {customer} ({total_qty} units)",
        )
        return cls(
            id=job_id,
            code_no=code_no,
            customer=customer,
            description=description,
            total_qty=total_qty,
            start_time=timestamp,
            current_stage_start_time=timestamp,
            last_updated=timestamp,
            history=[created],
            **fields,
        )

    def get_batch(self, batch_id: str) -> Optional[Batch]:
        """Return the batch with the given id, or None."""
        for batch in self.batches:
            if batch.id == batch_id:
                return batch
        return None

    @property
    def active_batches(self) -> List[Batch]:
        return [b for b in self.batches if b.is_active]

    @property
    def batch_quantity_total(self) -> int:
        """Sum of all batch quantities, scrapped and returned included."""
        return sum(b.quantity for b in self.batches)

    def to_wire(self) -> dict:
        """Serialise with the client field names and enum values."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, data: dict) -> "Job":
        return cls.model_validate(data)
