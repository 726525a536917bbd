"""
Job layer: orchestration of download → transcode per job.

This module manages job lifecycle, scratch workspaces and admission.
It does NOT launch processes itself; stages in swc.execution do.

Scope:
- JobRequest / JobOutcome models
- State transitions and validation
- TempWorkspace lifecycle
- Retry classification
- Job Pipeline (one job) and Scheduler (bounded FIFO over many)
"""

from .errors import (
    JobError,
    JobNotFoundError,
    DuplicateJobError,
    InvalidStateTransitionError,
    SchedulerClosedError,
)
from .models import (
    JobStatus,
    JobRequest,
    JobOutcome,
)
from .state import (
    TERMINAL_JOB_STATES,
    can_transition_job,
    is_job_terminal,
    JobStateMachine,
)
from .events import JobEvent, JobEventType, EventRecorder
from .workspace import TempWorkspace
from .retry import RetryPolicy
from .paths import handle_output_collision, deliver_artifact
from .pipeline import JobPipeline
from .scheduler import Scheduler, JobHandle

__all__ = [
    # Errors
    "JobError",
    "JobNotFoundError",
    "DuplicateJobError",
    "InvalidStateTransitionError",
    "SchedulerClosedError",
    # Models
    "JobStatus",
    "JobRequest",
    "JobOutcome",
    # State validation
    "TERMINAL_JOB_STATES",
    "can_transition_job",
    "is_job_terminal",
    "JobStateMachine",
    # Events
    "JobEvent",
    "JobEventType",
    "EventRecorder",
    # Pipeline pieces
    "TempWorkspace",
    "RetryPolicy",
    "handle_output_collision",
    "deliver_artifact",
    "JobPipeline",
    # Scheduler
    "Scheduler",
    "JobHandle",
]
