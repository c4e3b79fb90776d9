"""
In-memory job registry.

The registry is the caller the workflow engine expects:
- Job storage and retrieval by ID
- Per-job write serialisation (one lock per job id)
- Applying engine operations and detecting no-ops
- Explicit save/load through an optional PersistenceManager
- Change notification keyed by job id

The engine functions stay pure; everything stateful lives here.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..workflow.errors import JobNotFoundError
from ..workflow.invariants import check_job_invariants
from ..workflow.models import Job

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobChange:
    """Notification sent to subscribers after an effective change."""

    job_id: str
    operation: str
    job: Job


Listener = Callable[[JobChange], None]


class JobRegistry:
    """
    In-memory registry for job orders.

    Writes to the same job are serialised in arrival order; writes to
    different jobs do not block each other.
    """

    def __init__(self, persistence_manager=None, strict_invariants: bool = False):
        """
        Initialize registry.

        Args:
            persistence_manager: Optional PersistenceManager for save/load
            strict_invariants: Check job invariants after every applied operation
        """
        # job_id -> Job
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._listeners: List[Listener] = []
        self._persistence = persistence_manager
        self.strict_invariants = strict_invariants

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[job_id] = lock
            return lock

    def add_job(self, job: Job) -> None:
        """
        Add a job to the registry (and storage, when configured).

        Raises:
            ValueError: If a job with the same ID already exists
            SaveError: If storing the job failed; nothing is registered
        """
        with self._lock_for(job.id):
            if job.id in self._jobs:
                raise ValueError(f"Job with ID '{job.id}' already exists")
            if self._persistence:
                self.save_job(job)
            self._jobs[job.id] = job
        logger.info(f"Registered job {job.id} ({job.code_no})")
        self._notify(JobChange(job_id=job.id, operation="create", job=job))

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_job_or_raise(self, job_id: str) -> Job:
        """
        Retrieve a job by ID, raising an exception if not found.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self) -> List[Job]:
        """All jobs, most recently updated first."""
        jobs = list(self._jobs.values())
        jobs.sort(key=lambda j: j.last_updated, reverse=True)
        return jobs

    def remove_job(self, job_id: str) -> None:
        """
        Remove a job from the registry (and storage, when configured).

        Raises:
            JobNotFoundError: If the job does not exist
        """
        with self._lock_for(job_id):
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            if self._persistence:
                self._persistence.delete_job(job_id)
            del self._jobs[job_id]

    def clear(self) -> None:
        """Clear all jobs from the registry. Storage and per-job locks are left alone."""
        with self._guard:
            self._jobs.clear()

    def count(self) -> int:
        return len(self._jobs)

    # Change notification

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for job changes.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: JobChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                # Observer failures never reach the caller
                logger.error(f"Listener failed for job {change.job_id} ({change.operation}): {e}")

    # Applying engine operations

    def apply(self, job_id: str, operation: Callable[..., Job], *args, **kwargs) -> Tuple[Job, bool]:
        """
        Apply one workflow operation to a stored job.

        The operation runs under the job's lock against the latest stored
        state. A result that is the input object itself is a no-op: nothing
        is stored, saved or broadcast.

        Args:
            job_id: Target job
            operation: Engine function taking the Job as first argument
            *args, **kwargs: Remaining operation arguments

        Returns:
            (resulting job, whether it changed)

        Raises:
            JobNotFoundError: If the job does not exist
            InvariantViolation: In strict mode, if the result breaks an invariant
            SaveError: If storing the result failed; the previous state is kept
        """
        name = getattr(operation, "__name__", "operation")
        with self._lock_for(job_id):
            current = self.get_job_or_raise(job_id)
            result = operation(current, *args, **kwargs)

            if result is current:
                logger.debug(f"{name} on job {job_id} was a no-op")
                return current, False

            if self.strict_invariants:
                check_job_invariants(result, include_projection=False)

            if self._persistence:
                self.save_job(result)
            self._jobs[job_id] = result
            self._notify(JobChange(job_id=job_id, operation=name, job=result))

        return result, True

    # Explicit persistence operations

    def save_job(self, job: Job) -> None:
        """
        Explicitly save a job to persistent storage.

        Raises:
            ValueError: If persistence_manager is not configured
        """
        if not self._persistence:
            raise ValueError("No persistence_manager configured for JobRegistry")
        self._persistence.save_job(job.to_wire())

    def load_all_jobs(self) -> int:
        """
        Load every persisted job into memory, replacing in-memory copies.

        Returns:
            Number of jobs loaded

        Raises:
            ValueError: If persistence_manager is not configured
        """
        if not self._persistence:
            raise ValueError("No persistence_manager configured for JobRegistry")

        loaded = 0
        for job_data in self._persistence.load_all_jobs():
            if job_data is None:
                continue
            job = Job.from_wire(job_data)
            with self._lock_for(job.id):
                self._jobs[job.id] = job
            loaded += 1

        logger.info(f"Loaded {loaded} jobs from storage")
        return loaded
