"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Errors are explicit and provide actionable messages.
"""


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job id is unknown to the scheduler."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class DuplicateJobError(JobError):
    """Raised when a job id is submitted twice."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job already submitted: {job_id}")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, job_id: str, current_state: str, target_state: str):
        self.job_id = job_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid job state transition for {job_id}: "
            f"{current_state} -> {target_state}"
        )


class SchedulerClosedError(JobError):
    """Raised when submitting to a scheduler that has been shut down."""

    def __init__(self):
        super().__init__("Scheduler is shut down and accepts no new jobs")
