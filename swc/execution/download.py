"""
Download stage: external downloader (yt-dlp) into a job workspace.

Design rules:
- One downloader process per attempt
- Output directory is always the job's TempWorkspace
- Produced files are discovered from the downloader's output
  (see parsing.py), never by guessing
- Exit 0 with zero produced files = DownloadIncompleteError
- Runner errors propagate unmodified
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

from .cancellation import CancellationToken
from .errors import DownloadIncompleteError, ProcessFailedError
from .parsing import (
    FIELD_SEPARATOR,
    FILE_TAG,
    META_TAG,
    DownloadOutputParser,
    YtDlpOutputParser,
    parse_probe_output,
)
from .results import StageName, StageResult
from .runner import ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_FORMAT_SELECTOR = "bestaudio/best"
OUTPUT_TEMPLATE = "%(title).180B [%(id)s].%(ext)s"


class SourceMetadata(BaseModel):
    """Metadata reported by the downloader for a source, without downloading."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: str
    title: Optional[str] = None
    uploader: Optional[str] = None
    uploader_url: Optional[str] = None
    webpage_url: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[float] = None
    ext: Optional[str] = None

    def summary(self) -> str:
        parts = [self.title or "(untitled)"]
        if self.uploader:
            parts.append(f"by {self.uploader}")
        if self.duration is not None:
            parts.append(f"[{self.duration:.0f}s]")
        return " ".join(parts)


class DownloadStage:
    """Wraps the Process Runner to invoke the external downloader."""

    def __init__(
        self,
        runner: ProcessRunner,
        executable: str,
        timeout_seconds: float,
        format_selector: str = DEFAULT_FORMAT_SELECTOR,
        parser_factory: Callable[[], DownloadOutputParser] = YtDlpOutputParser,
    ):
        self.runner = runner
        self.executable = executable
        self.timeout_seconds = timeout_seconds
        self.format_selector = format_selector
        self.parser_factory = parser_factory

    def build_args(self, source: str, workspace_dir: Path) -> List[str]:
        """Build downloader arguments for one source."""
        meta_template = FIELD_SEPARATOR.join(
            [META_TAG, "%(ext)s", "%(duration)s", "%(title)s"]
        )
        file_template = f"{FILE_TAG}{FIELD_SEPARATOR}%(filepath)s"
        return [
            "--no-playlist",
            "--newline",
            "--no-simulate",
            "-f", self.format_selector,
            "-o", str(workspace_dir / OUTPUT_TEMPLATE),
            "--print", f"before_dl:{meta_template}",
            "--print", f"after_move:{file_template}",
            "--",
            source,
        ]

    def run(
        self,
        source: str,
        workspace_dir: Path,
        cancel_token: Optional[CancellationToken] = None,
        attempt: int = 1,
    ) -> StageResult:
        """
        Download one source into the workspace.

        Returns:
            StageResult listing the produced files and reported metadata

        Raises:
            StageError subclasses from the runner, or DownloadIncompleteError
        """
        parser = self.parser_factory()
        args = self.build_args(source, workspace_dir)
        started_at = datetime.now()

        process_result = self.runner.run(
            self.executable,
            args,
            stage=StageName.DOWNLOAD.value,
            timeout_seconds=self.timeout_seconds,
            cwd=str(workspace_dir),
            cancel_token=cancel_token,
            on_stdout_line=parser.feed_stdout,
            on_stderr_line=parser.feed_stderr,
            describe_failure=parser.error_message,
        )

        files = self._existing_files(parser.files(), workspace_dir)
        if not files:
            logger.error(f"[Download] {source}: downloader exited 0 but produced no files")
            raise DownloadIncompleteError(
                StageName.DOWNLOAD.value,
                "downloader reported success but produced no files",
                exit_code=process_result.exit_code,
                diagnostics=process_result.diagnostics,
            )

        # The file on disk wins over the pre-download report (merges change it)
        metadata = parser.metadata()
        file_format = Path(files[0]).suffix.lstrip(".").lower()
        if file_format:
            if metadata.get("format") and metadata["format"] != file_format:
                metadata["reported_format"] = metadata["format"]
            metadata["format"] = file_format
        logger.info(f"[Download] {source}: {len(files)} file(s), format={metadata.get('format')}")

        return StageResult(
            stage=StageName.DOWNLOAD,
            attempt=attempt,
            exit_code=process_result.exit_code,
            output_paths=files,
            diagnostics=process_result.diagnostics,
            metadata=metadata,
            command=process_result.command,
            started_at=started_at,
            completed_at=datetime.now(),
        )

    def probe(
        self,
        source: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SourceMetadata:
        """
        Query source metadata without downloading (`yt-dlp -j`).

        Raises:
            StageError subclasses from the runner
            ProcessFailedError: Output was not a metadata document
        """
        parser = self.parser_factory()
        documents: List[str] = []

        def _collect(line: str) -> None:
            if line.lstrip().startswith("{") and not documents:
                documents.append(line)

        process_result = self.runner.run(
            self.executable,
            ["-j", "--no-playlist", "--", source],
            stage=StageName.PROBE.value,
            timeout_seconds=self.timeout_seconds,
            cancel_token=cancel_token,
            on_stdout_line=_collect,
            on_stderr_line=parser.feed_stderr,
            describe_failure=parser.error_message,
        )

        try:
            data = parse_probe_output("\n".join(documents))
        except ValueError as e:
            raise ProcessFailedError(
                StageName.PROBE.value,
                str(e),
                exit_code=process_result.exit_code,
                diagnostics=process_result.diagnostics,
            ) from e

        duration = data.get("duration")
        return SourceMetadata(
            source=source,
            title=data.get("title"),
            uploader=data.get("uploader"),
            uploader_url=data.get("uploader_url"),
            webpage_url=data.get("webpage_url"),
            thumbnail=data.get("thumbnail"),
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            ext=data.get("ext"),
        )

    @staticmethod
    def _existing_files(reported: List[str], workspace_dir: Path) -> List[str]:
        """Resolve reported paths against the workspace, keep the ones on disk."""
        files = []
        for entry in reported:
            path = Path(entry)
            if not path.is_absolute():
                path = workspace_dir / path
            if path.is_file():
                files.append(str(path))
            else:
                logger.warning(f"[Download] Reported file does not exist: {path}")
        return files
