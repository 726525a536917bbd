"""
Retry classification for stage failures.

Only transient failures are retried, up to a fixed bound per stage:
- TIMEOUT is always transient
- PROCESS_FAILED from the downloader is transient when its exit code is
  one of the configured network-indicating codes, or when its error text
  names a network condition
- LAUNCH_FAILED, DOWNLOAD_INCOMPLETE and OUTPUT_MISSING are never retried:
  they point at configuration or environment defects
- CANCELLED is never retried
"""

from dataclasses import dataclass, field
from typing import FrozenSet

from ..execution.errors import StageError, StageErrorKind
from ..execution.results import StageName

DEFAULT_RETRY_LIMIT = 1
DEFAULT_TRANSIENT_EXIT_CODES: FrozenSet[int] = frozenset({1})

_NETWORK_ERROR_TOKENS = (
    "timed out",
    "timeout",
    "temporary failure",
    "temporarily unavailable",
    "connection reset",
    "connection aborted",
    "connection refused",
    "network is unreachable",
    "name resolution",
    "http error 429",
    "http error 5",
    "remote end closed",
)

# Downloader errors that will fail identically on every attempt
_PERMANENT_ERROR_TOKENS = (
    "unsupported url",
    "is not a valid url",
    "video unavailable",
    "private video",
    "has been removed",
    "requested format is not available",
    "http error 404",
    "http error 403",
)

_NEVER_RETRIED: FrozenSet[StageErrorKind] = frozenset({
    StageErrorKind.LAUNCH_FAILED,
    StageErrorKind.DOWNLOAD_INCOMPLETE,
    StageErrorKind.OUTPUT_MISSING,
    StageErrorKind.CANCELLED,
    StageErrorKind.INTERNAL,
})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        retry_limit: Retries allowed per stage (attempts = 1 + retry_limit)
        transient_exit_codes: Downloader exit codes treated as transient
        backoff_seconds: Pause before each retry (interrupted by cancellation)
    """

    retry_limit: int = DEFAULT_RETRY_LIMIT
    transient_exit_codes: FrozenSet[int] = field(default_factory=lambda: DEFAULT_TRANSIENT_EXIT_CODES)
    backoff_seconds: float = 0.0

    def __post_init__(self):
        if self.retry_limit < 0:
            raise ValueError("retry_limit must be >= 0")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")

    @property
    def max_attempts(self) -> int:
        return 1 + self.retry_limit

    def is_transient(self, stage: StageName, error: StageError) -> bool:
        """Classify a stage error as transient (retryable) or terminal."""
        if error.kind in _NEVER_RETRIED:
            return False
        if error.kind == StageErrorKind.TIMEOUT:
            return True
        if error.kind == StageErrorKind.PROCESS_FAILED and stage == StageName.DOWNLOAD:
            text = f"{error.message}\n{error.diagnostics}".lower()
            if any(token in text for token in _PERMANENT_ERROR_TOKENS):
                return False
            if error.exit_code in self.transient_exit_codes:
                return True
            return any(token in text for token in _NETWORK_ERROR_TOKENS)
        return False

    def should_retry(self, stage: StageName, error: StageError, attempt: int) -> bool:
        """True when another attempt of this stage is allowed."""
        return attempt < self.max_attempts and self.is_transient(stage, error)
