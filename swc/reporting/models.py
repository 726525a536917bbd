"""
Immutable report data models.

Reports are derived from JobOutcomes after the jobs finish.
These models do NOT modify job state; they are read-only views.
"""

import platform
import sys
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..jobs.models import JobOutcome, JobStatus

EXIT_SUCCESS = 0
EXIT_JOB_FAILED = 2


class DiagnosticsInfo(BaseModel):
    """
    Environment captured at report time.

    Observational only; never affects execution.
    """

    model_config = ConfigDict(extra="forbid")

    swc_version: str
    python_version: str
    os_version: str
    hostname: str

    downloader_path: Optional[str] = None
    transcoder_path: Optional[str] = None

    generated_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def capture(
        cls,
        downloader_path: Optional[str] = None,
        transcoder_path: Optional[str] = None,
    ) -> "DiagnosticsInfo":
        from .. import __version__

        return cls(
            swc_version=__version__,
            python_version=(
                f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
            ),
            os_version=platform.platform(),
            hostname=platform.node(),
            downloader_path=downloader_path,
            transcoder_path=transcoder_path,
        )


class JobReport(BaseModel):
    """
    Immutable report for one job.

    Derived from a JobOutcome; drops stage results and events, keeps
    what a reader needs to act on the result.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    job_id: str
    source: str
    target_format: str

    # Outcome
    status: JobStatus
    artifact_path: Optional[str] = None
    failed_stage: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    diagnostics: str = ""

    title: Optional[str] = None
    attempts: Dict[str, int] = Field(default_factory=dict)

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    @classmethod
    def from_outcome(cls, outcome: JobOutcome) -> "JobReport":
        return cls(
            job_id=outcome.job_id,
            source=outcome.source,
            target_format=outcome.target_format,
            status=outcome.status,
            artifact_path=outcome.artifact_path,
            failed_stage=outcome.failed_stage.value if outcome.failed_stage else None,
            error_kind=outcome.error_kind.value if outcome.error_kind else None,
            error_message=outcome.error_message,
            exit_code=outcome.exit_code,
            signal=outcome.signal,
            diagnostics=outcome.diagnostics,
            title=outcome.metadata.get("title"),
            attempts=dict(outcome.attempts),
            started_at=outcome.started_at,
            completed_at=outcome.completed_at,
            duration_seconds=outcome.duration_seconds,
        )


class RunSummary(BaseModel):
    """
    Immutable summary of one batch of jobs.

    Jobs are listed in the order their outcomes were delivered.
    """

    model_config = ConfigDict(extra="forbid")

    total_jobs: int
    succeeded: int
    failed: int
    cancelled: int
    exit_status: int

    jobs: List[JobReport] = Field(default_factory=list)
    diagnostics: Optional[DiagnosticsInfo] = None

    generated_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Iterable[JobOutcome],
        diagnostics: Optional[DiagnosticsInfo] = None,
    ) -> "RunSummary":
        reports = [JobReport.from_outcome(outcome) for outcome in outcomes]
        succeeded = sum(1 for r in reports if r.status == JobStatus.SUCCEEDED)
        failed = sum(1 for r in reports if r.status == JobStatus.FAILED)
        cancelled = sum(1 for r in reports if r.status == JobStatus.CANCELLED)
        return cls(
            total_jobs=len(reports),
            succeeded=succeeded,
            failed=failed,
            cancelled=cancelled,
            exit_status=EXIT_SUCCESS if succeeded == len(reports) else EXIT_JOB_FAILED,
            jobs=reports,
            diagnostics=diagnostics,
        )

    @property
    def all_succeeded(self) -> bool:
        return self.exit_status == EXIT_SUCCESS
