"""
Stage error taxonomy.

Every failure of an external-process stage is raised as a StageError.
Errors carry enough context (stage, exit code or signal, diagnostic tail)
to be surfaced verbatim to the caller.

Design rules:
- The Process Runner raises, stages propagate unmodified
- The Job Pipeline is the only place errors are classified (retry or terminal)
- The Scheduler never interprets stage errors
"""

from enum import Enum
from typing import Any, Dict, Optional


class StageErrorKind(str, Enum):
    """
    Classification of a stage failure.

    LAUNCH_FAILED: Executable missing or not executable
    TIMEOUT: Stage exceeded its timeout and was terminated
    PROCESS_FAILED: Process exited non-zero
    DOWNLOAD_INCOMPLETE: Downloader reported success but produced no files
    OUTPUT_MISSING: Transcoder reported success but the output is missing
    CANCELLED: Stage was interrupted by a cancellation request
    INTERNAL: Unexpected exception inside the pipeline itself
    """

    LAUNCH_FAILED = "launch_failed"
    TIMEOUT = "timeout"
    PROCESS_FAILED = "process_failed"
    DOWNLOAD_INCOMPLETE = "download_incomplete"
    OUTPUT_MISSING = "output_missing"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class ExecutionError(Exception):
    """Base exception for all execution failures."""
    pass


class StageError(ExecutionError):
    """
    A stage could not produce its result.

    Attributes:
        kind: StageErrorKind classification
        stage: Stage name ("download", "transcode", "probe")
        exit_code: Process exit code, if the process exited
        signal: Signal number, if the process was killed by a signal
        diagnostics: Truncated diagnostic text (last N lines of output)
    """

    kind: StageErrorKind = StageErrorKind.INTERNAL

    def __init__(
        self,
        stage: str,
        message: str,
        exit_code: Optional[int] = None,
        signal: Optional[int] = None,
        diagnostics: str = "",
    ):
        self.stage = stage
        self.message = message
        self.exit_code = exit_code
        self.signal = signal
        self.diagnostics = diagnostics
        super().__init__(f"[{stage}] {self.kind.value}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "kind": self.kind.value,
            "stage": self.stage,
            "message": self.message,
            "exit_code": self.exit_code,
            "signal": self.signal,
            "diagnostics": self.diagnostics,
        }


class LaunchFailedError(StageError):
    """Executable could not be started (missing, permission denied)."""

    kind = StageErrorKind.LAUNCH_FAILED


class StageTimeoutError(StageError):
    """Process exceeded its timeout and was terminated."""

    kind = StageErrorKind.TIMEOUT

    def __init__(
        self,
        stage: str,
        timeout_seconds: float,
        signal: Optional[int] = None,
        diagnostics: str = "",
    ):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            stage,
            f"timed out after {timeout_seconds:g}s",
            signal=signal,
            diagnostics=diagnostics,
        )


class ProcessFailedError(StageError):
    """Process exited with a non-zero status."""

    kind = StageErrorKind.PROCESS_FAILED


class DownloadIncompleteError(StageError):
    """Downloader exited zero but no output file was produced."""

    kind = StageErrorKind.DOWNLOAD_INCOMPLETE


class OutputMissingError(StageError):
    """
    Transcoder exited zero but the named output is missing.

    Raised when the output file does not exist or is zero bytes.
    """

    kind = StageErrorKind.OUTPUT_MISSING


class StageCancelledError(StageError):
    """Stage was interrupted by cancellation."""

    kind = StageErrorKind.CANCELLED

    def __init__(self, stage: str, diagnostics: str = "", signal: Optional[int] = None):
        super().__init__(stage, "cancelled", signal=signal, diagnostics=diagnostics)
