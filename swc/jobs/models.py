"""
Job request and outcome models.

A JobRequest is one end-to-end request to acquire and convert one media
item. A JobOutcome is its terminal state. Both are immutable.

All models use Pydantic for validation.
State transitions are validated externally (see state.py).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..execution.errors import StageError, StageErrorKind
from ..execution.formats import QUALITY_LEVELS, get_format_spec
from ..execution.results import StageName, StageResult
from .events import JobEvent


class JobStatus(str, Enum):
    """
    Job lifecycle status.

    PENDING → DOWNLOADING → TRANSCODING → SUCCEEDED
    DOWNLOADING | TRANSCODING → FAILED
    any non-terminal → CANCELLED
    """

    PENDING = "pending"
    DOWNLOADING = "downloading"
    TRANSCODING = "transcoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobRequest(BaseModel):
    """
    One submission: a source locator and a target format.

    Immutable once accepted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source: str
    """URL or locator consumed by the downloader."""

    target_format: str
    """Requested output format (e.g. "mp3"); normalized to lower case."""

    quality: Optional[str] = None
    """Optional quality hint: low | medium | high."""

    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("source")
    @classmethod
    def _source_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("source must not be empty")
        return value

    @field_validator("target_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        return get_format_spec(value).name

    @field_validator("quality")
    @classmethod
    def _known_quality(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        if value not in QUALITY_LEVELS:
            raise ValueError(
                f"Unknown quality '{value}'. Expected one of: {', '.join(QUALITY_LEVELS)}"
            )
        return value


class JobOutcome(BaseModel):
    """
    Terminal state of a JobRequest.

    Exactly one of:
    - SUCCEEDED: artifact_path set
    - FAILED: failed_stage and error_kind set
    - CANCELLED

    Created once per job, immutable after creation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    job_id: str
    source: str
    target_format: str
    status: JobStatus

    artifact_path: Optional[str] = None

    failed_stage: Optional[StageName] = None
    error_kind: Optional[StageErrorKind] = None
    error_message: Optional[str] = None
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    diagnostics: str = ""

    attempts: Dict[str, int] = Field(default_factory=dict)
    """Attempt count per stage name."""

    stage_results: List[StageResult] = Field(default_factory=list)
    events: List[JobEvent] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    started_at: Optional[datetime] = None
    completed_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _check_terminal_shape(self) -> "JobOutcome":
        if self.status not in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED):
            raise ValueError(f"Outcome status must be terminal, got {self.status.value}")
        if self.status == JobStatus.SUCCEEDED and not self.artifact_path:
            raise ValueError("Succeeded outcome requires artifact_path")
        if self.status == JobStatus.FAILED and (self.failed_stage is None or self.error_kind is None):
            raise ValueError("Failed outcome requires failed_stage and error_kind")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @classmethod
    def for_success(cls, request: JobRequest, artifact_path: str, **fields: Any) -> "JobOutcome":
        return cls(
            job_id=request.id,
            source=request.source,
            target_format=request.target_format,
            status=JobStatus.SUCCEEDED,
            artifact_path=artifact_path,
            **fields,
        )

    @classmethod
    def for_failure(
        cls,
        request: JobRequest,
        stage: StageName,
        error: StageError,
        **fields: Any,
    ) -> "JobOutcome":
        return cls(
            job_id=request.id,
            source=request.source,
            target_format=request.target_format,
            status=JobStatus.FAILED,
            failed_stage=stage,
            error_kind=error.kind,
            error_message=error.message,
            exit_code=error.exit_code,
            signal=error.signal,
            diagnostics=error.diagnostics,
            **fields,
        )

    @classmethod
    def for_cancellation(
        cls,
        request: JobRequest,
        reason: str = "cancelled",
        **fields: Any,
    ) -> "JobOutcome":
        return cls(
            job_id=request.id,
            source=request.source,
            target_format=request.target_format,
            status=JobStatus.CANCELLED,
            error_message=reason,
            **fields,
        )

    def summary(self) -> str:
        """Human-readable one-line summary."""
        duration = self.duration_seconds
        duration_str = f" ({duration:.1f}s)" if duration is not None else ""
        if self.status == JobStatus.SUCCEEDED:
            return f"SUCCEEDED{duration_str}: {self.source} → {self.artifact_path}"
        if self.status == JobStatus.FAILED:
            return (
                f"FAILED{duration_str}: {self.source} - "
                f"{self.failed_stage.value}/{self.error_kind.value}: {self.error_message}"
            )
        return f"CANCELLED{duration_str}: {self.source}"
