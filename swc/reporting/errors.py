"""
Reporting-specific errors.
"""


class ReportingError(Exception):
    """Base exception for reporting failures."""

    pass


class ReportWriteError(ReportingError):
    """Failed to write report to disk."""

    pass


class OutcomeAlreadyDeliveredError(ReportingError):
    """A second outcome arrived for a job that already has one."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Outcome already delivered for job {job_id}")
