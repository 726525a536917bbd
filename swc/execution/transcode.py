"""
Transcode stage: external transcoder (ffmpeg) inside a job workspace.

Design rules:
- One transcoder process per attempt
- Output is written next to the input, inside the same TempWorkspace
- Source format == target format is an explicit pass-through decision,
  recorded as a skipped StageResult; the tool is not invoked
- Exit 0 without a non-empty output file = OutputMissingError
- Runner errors propagate unmodified
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cancellation import CancellationToken
from .errors import OutputMissingError
from .formats import DEFAULT_QUALITY, FormatSpec, get_format_spec, normalize_format
from .results import StageName, StageResult
from .runner import ProcessRunner

logger = logging.getLogger(__name__)


class TranscodeStage:
    """Wraps the Process Runner to invoke the external transcoder."""

    def __init__(
        self,
        runner: ProcessRunner,
        executable: str,
        timeout_seconds: float,
    ):
        self.runner = runner
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def should_skip(source_format: Optional[str], target_format: str) -> bool:
        """True when the source already is the target format."""
        if not source_format:
            return False
        return normalize_format(source_format) == normalize_format(target_format)

    @staticmethod
    def output_path_for(input_path: Path, spec: FormatSpec) -> Path:
        """Output path inside the input's directory, never equal to the input."""
        output_path = input_path.with_suffix(f".{spec.extension}")
        if output_path == input_path:
            output_path = input_path.with_name(f"{input_path.stem}.transcoded.{spec.extension}")
        return output_path

    def build_args(
        self,
        input_path: Path,
        output_path: Path,
        spec: FormatSpec,
        quality: str = DEFAULT_QUALITY,
        title: Optional[str] = None,
    ) -> List[str]:
        """Build transcoder arguments."""
        args = [
            "-hide_banner",
            "-nostdin",
            "-y",
            "-loglevel", "error",
            "-i", str(input_path),
        ]
        if spec.audio_only:
            args.append("-vn")
        args.extend(spec.args_for(quality))
        if title:
            args.extend(["-metadata", f"title={title}"])
        args.append(str(output_path))
        return args

    def run(
        self,
        input_path: Path,
        target_format: str,
        quality: Optional[str] = None,
        source_metadata: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
        attempt: int = 1,
    ) -> StageResult:
        """
        Convert one file to the target format.

        Args:
            input_path: Downloaded file inside the job workspace
            target_format: Requested target format (e.g. "mp3")
            quality: Quality hint (low | medium | high)
            source_metadata: Metadata from the download stage
            cancel_token: Cancellation token for the job
            attempt: Attempt number, recorded on the result

        Returns:
            StageResult naming the final output path

        Raises:
            ValueError: Unsupported target format
            StageError subclasses from the runner, or OutputMissingError
        """
        spec = get_format_spec(target_format)
        metadata = dict(source_metadata or {})
        source_format = metadata.get("format") or input_path.suffix.lstrip(".")
        started_at = datetime.now()

        if self.should_skip(source_format, spec.name):
            logger.info(
                f"[Transcode] {input_path.name} already {spec.name}, passing through"
            )
            return StageResult(
                stage=StageName.TRANSCODE,
                attempt=attempt,
                output_paths=[str(input_path)],
                metadata={"format": spec.name, "source_format": source_format},
                skipped=True,
                started_at=started_at,
                completed_at=datetime.now(),
            )

        output_path = self.output_path_for(input_path, spec)
        args = self.build_args(
            input_path,
            output_path,
            spec,
            quality=quality or DEFAULT_QUALITY,
            title=metadata.get("title"),
        )

        process_result = self.runner.run(
            self.executable,
            args,
            stage=StageName.TRANSCODE.value,
            timeout_seconds=self.timeout_seconds,
            cwd=str(input_path.parent),
            cancel_token=cancel_token,
        )

        if not output_path.is_file() or output_path.stat().st_size == 0:
            logger.error(f"[Transcode] Output missing or empty: {output_path}")
            raise OutputMissingError(
                StageName.TRANSCODE.value,
                f"transcoder exited 0 but output is missing or empty: {output_path}",
                exit_code=process_result.exit_code,
                diagnostics=process_result.diagnostics,
            )

        logger.info(f"[Transcode] Completed: {output_path}")
        return StageResult(
            stage=StageName.TRANSCODE,
            attempt=attempt,
            exit_code=process_result.exit_code,
            output_paths=[str(output_path)],
            diagnostics=process_result.diagnostics,
            metadata={"format": spec.name, "source_format": source_format},
            command=process_result.command,
            started_at=started_at,
            completed_at=datetime.now(),
        )
