"""
Process and stage result models.

Structured representation of external-process outcomes.
Results are machine-readable and human-readable.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import StageErrorKind


class StageName(str, Enum):
    """Names of the external-process stages."""

    DOWNLOAD = "download"
    TRANSCODE = "transcode"
    PROBE = "probe"


class ProcessResult(BaseModel):
    """
    Result of one successful Process Runner invocation.

    Failed invocations never produce a ProcessResult; the runner raises
    a StageError instead.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    command: List[str]
    """Full command line, executable first."""

    exit_code: int

    stdout_tail: List[str] = Field(default_factory=list)
    """Last N lines of standard output."""

    diagnostics: str = ""
    """Last N lines of combined output, newline-joined."""

    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class StageResult(BaseModel):
    """
    Outcome of one attempt of one stage.

    Owned by the Job Pipeline that produced it; never shared across jobs.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stage: StageName
    attempt: int = 1

    exit_code: Optional[int] = None
    """Process exit code (None when the process never started or was skipped)."""

    signal: Optional[int] = None
    """Signal that ended the process, when it was killed."""

    error_kind: Optional[StageErrorKind] = None
    """Set when the attempt failed."""

    output_paths: List[str] = Field(default_factory=list)
    """Files produced by the stage, in the order they were reported."""

    diagnostics: str = ""
    """Truncated diagnostic text."""

    metadata: Dict[str, Any] = Field(default_factory=dict)
    """Metadata reported by the tool (title, format, duration)."""

    skipped: bool = False
    """True when the stage short-circuited without invoking its tool."""

    command: List[str] = Field(default_factory=list)

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def primary_output(self) -> Optional[str]:
        return self.output_paths[0] if self.output_paths else None

    def summary(self) -> str:
        """Human-readable one-line summary."""
        duration = self.duration_seconds
        duration_str = f" ({duration:.1f}s)" if duration is not None else ""
        if self.skipped:
            return f"{self.stage.value.upper()} SKIPPED: {self.primary_output}"
        if self.succeeded:
            return f"{self.stage.value.upper()} OK{duration_str}: {', '.join(self.output_paths)}"
        return (
            f"{self.stage.value.upper()} FAILED{duration_str} "
            f"[{self.error_kind.value}] attempt {self.attempt}"
        )
