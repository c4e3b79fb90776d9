"""
Workflow error types.

The transition functions themselves never raise: an operation that does not
apply echoes the input Job back unchanged. These errors are raised by the
layers around the engine (registry, HTTP routes) when they need to surface
a no-op or a missing identifier to an operator.
"""


class WorkflowError(Exception):
    """Base exception for all workflow-related failures."""
    pass


class JobNotFoundError(WorkflowError):
    """Raised when a job cannot be found in the registry."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class BatchNotFoundError(WorkflowError):
    """Raised when a batch id does not exist on the given job."""

    def __init__(self, job_id: str, batch_id: str):
        self.job_id = job_id
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} not found on job {job_id}")


class TransitionNotApplicableError(WorkflowError):
    """Raised when an operation left the job unchanged."""

    def __init__(self, job_id: str, operation: str, reason: str = ""):
        self.job_id = job_id
        self.operation = operation
        self.reason = reason
        message = f"Operation '{operation}' did not apply to job {job_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
