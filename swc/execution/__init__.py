"""
Execution layer: external processes and the stages built on them.

swc drives two external tools:
- yt-dlp (downloader)
- ffmpeg (transcoder)

Executable locations are always injected; nothing here consults PATH.
"""

from .errors import (
    ExecutionError,
    StageError,
    StageErrorKind,
    LaunchFailedError,
    StageTimeoutError,
    ProcessFailedError,
    DownloadIncompleteError,
    OutputMissingError,
    StageCancelledError,
)
from .results import (
    ProcessResult,
    StageName,
    StageResult,
)
from .cancellation import CancellationToken
from .runner import ProcessRunner
from .parsing import DownloadOutputParser, YtDlpOutputParser
from .download import DownloadStage, SourceMetadata
from .formats import SUPPORTED_FORMATS, QUALITY_LEVELS, get_format_spec
from .transcode import TranscodeStage

__all__ = [
    # Errors
    "ExecutionError",
    "StageError",
    "StageErrorKind",
    "LaunchFailedError",
    "StageTimeoutError",
    "ProcessFailedError",
    "DownloadIncompleteError",
    "OutputMissingError",
    "StageCancelledError",
    # Results
    "ProcessResult",
    "StageName",
    "StageResult",
    # Runner
    "CancellationToken",
    "ProcessRunner",
    # Stages
    "DownloadOutputParser",
    "YtDlpOutputParser",
    "DownloadStage",
    "SourceMetadata",
    "SUPPORTED_FORMATS",
    "QUALITY_LEVELS",
    "get_format_spec",
    "TranscodeStage",
]
