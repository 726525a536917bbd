"""
State transition validation for jobs.

Job lifecycle:
    PENDING → DOWNLOADING → TRANSCODING → SUCCEEDED
    DOWNLOADING → FAILED
    TRANSCODING → FAILED
    PENDING | DOWNLOADING | TRANSCODING → CANCELLED

INVARIANT: Terminal job states (SUCCEEDED, FAILED, CANCELLED) are immutable.
Once a job enters a terminal state, no state transition is allowed.
"""

import threading
from typing import FrozenSet, List, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import JobStatus


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
})


_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    # Normal flow
    (JobStatus.PENDING, JobStatus.DOWNLOADING),
    (JobStatus.DOWNLOADING, JobStatus.TRANSCODING),
    (JobStatus.TRANSCODING, JobStatus.SUCCEEDED),

    # Stage failures
    (JobStatus.DOWNLOADING, JobStatus.FAILED),
    (JobStatus.TRANSCODING, JobStatus.FAILED),

    # Cancellation from any non-terminal state
    (JobStatus.PENDING, JobStatus.CANCELLED),
    (JobStatus.DOWNLOADING, JobStatus.CANCELLED),
    (JobStatus.TRANSCODING, JobStatus.CANCELLED),
}


def is_job_terminal(status: JobStatus) -> bool:
    """Check if a job status is terminal (immutable)."""
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.

    Re-entering the same state is not a transition and is rejected, so a
    terminal state can never be reached twice.
    """
    if is_job_terminal(from_status):
        return False
    return (from_status, to_status) in _JOB_TRANSITIONS


def validate_job_transition(job_id: str, from_status: JobStatus, to_status: JobStatus) -> None:
    """
    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError(job_id, from_status.value, to_status.value)


class JobStateMachine:
    """
    Current status of one job, with validated transitions.

    Every transition is recorded in `history`.
    """

    def __init__(self, job_id: str, initial: JobStatus = JobStatus.PENDING):
        self.job_id = job_id
        self._status = initial
        self._lock = threading.Lock()
        self.history: List[JobStatus] = [initial]

    @property
    def status(self) -> JobStatus:
        with self._lock:
            return self._status

    @property
    def is_terminal(self) -> bool:
        return is_job_terminal(self.status)

    def transition(self, to_status: JobStatus) -> None:
        with self._lock:
            validate_job_transition(self.job_id, self._status, to_status)
            self._status = to_status
            self.history.append(to_status)
