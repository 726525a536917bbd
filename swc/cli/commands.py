"""
CLI command implementations.

Commands:
- run_sources: Download and convert one or more sources as scheduled jobs
- probe_source: Print metadata for a source without downloading it

Commands return an exit code; they never call sys.exit themselves.
Errors from the execution layer are surfaced verbatim.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from ..config.settings import ConfigError, SwcSettings, load_settings
from ..execution.download import DownloadStage
from ..execution.errors import StageError
from ..execution.runner import ProcessRunner
from ..execution.transcode import TranscodeStage
from ..jobs.models import JobOutcome, JobRequest
from ..jobs.pipeline import JobPipeline
from ..jobs.retry import RetryPolicy
from ..jobs.scheduler import Scheduler
from ..reporting.errors import ReportWriteError
from ..reporting.models import DiagnosticsInfo
from ..reporting.sink import ResultSink
from ..reporting.writers import format_summary_lines, write_json_summary
from .errors import ValidationError

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_VALIDATION_ERROR = 1
EXIT_JOB_FAILED = 2
EXIT_SYSTEM_ERROR = 4


def build_runner(settings: SwcSettings) -> ProcessRunner:
    return ProcessRunner(
        tail_lines=settings.diagnostic_tail_lines,
        grace_seconds=settings.termination_grace_seconds,
    )


def build_download_stage(settings: SwcSettings, runner: Optional[ProcessRunner] = None) -> DownloadStage:
    return DownloadStage(
        runner or build_runner(settings),
        settings.downloader_path,
        settings.download_timeout_seconds,
        format_selector=settings.download_format,
    )


def build_pipeline(settings: SwcSettings) -> JobPipeline:
    """Wire stages, retry policy and destination from settings."""
    runner = build_runner(settings)
    return JobPipeline(
        download_stage=build_download_stage(settings, runner),
        transcode_stage=TranscodeStage(
            runner,
            settings.transcoder_path,
            settings.transcode_timeout_seconds,
        ),
        output_dir=settings.output_dir,
        retry_policy=RetryPolicy(
            retry_limit=settings.retry_limit,
            transient_exit_codes=frozenset(settings.transient_exit_codes),
            backoff_seconds=settings.retry_backoff_seconds,
        ),
        workspace_root=settings.workspace_root,
        overwrite_existing=settings.overwrite_existing,
    )


def build_requests(sources: List[str], target_format: str, quality: Optional[str]) -> List[JobRequest]:
    """
    Raises:
        ValidationError: A source or the format is invalid
    """
    requests = []
    for source in sources:
        try:
            requests.append(JobRequest(source=source, target_format=target_format, quality=quality))
        except ValueError as e:
            raise ValidationError(f"Invalid job for '{source}': {e}") from e
    return requests


def _check_output_dir(output_dir: str) -> None:
    path = Path(output_dir)
    if path.exists() and not path.is_dir():
        raise ValidationError(f"Output path is not a directory: {output_dir}")


def _print_progress(outcome: JobOutcome) -> None:
    print(f"[{outcome.status.value}] {outcome.source}", file=sys.stderr)


def _cancel_and_drain(scheduler: Scheduler) -> None:
    """
    Cancel every job and wait until each one is terminal.

    A repeated interrupt restarts the wait instead of abandoning running
    processes and their workspaces.
    """
    while True:
        try:
            scheduler.shutdown(cancel_pending=True)
            return
        except KeyboardInterrupt:
            logger.warning("[CLI] Interrupted again; still waiting for jobs to stop")


def run_sources(
    sources: List[str],
    target_format: str,
    quality: Optional[str] = None,
    config_path: Optional[str] = None,
    overrides: Optional[dict] = None,
    as_json: bool = False,
    report_path: Optional[str] = None,
    out: Optional[TextIO] = None,
) -> int:
    """
    Run every source as one job and wait for all of them.

    Exit codes:
        0: Every job succeeded
        1: Invalid configuration, format or source
        2: At least one job failed or was cancelled (including Ctrl-C)
        4: Report could not be written
    """
    try:
        settings = load_settings(config_path, overrides=overrides)
        _check_output_dir(settings.output_dir)
        requests = build_requests(sources, target_format, quality)
    except (ConfigError, ValidationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    sink = ResultSink(on_outcome=None if as_json else _print_progress)
    scheduler = Scheduler(build_pipeline(settings), sink, settings.max_concurrent_jobs)
    logger.info(
        f"[CLI] Running {len(requests)} job(s), concurrency {settings.max_concurrent_jobs}"
    )

    interrupted = False
    try:
        scheduler.submit_all(requests)
        scheduler.wait_all()
    except KeyboardInterrupt:
        interrupted = True
        print("\nInterrupted: cancelling all jobs...", file=sys.stderr)
        _cancel_and_drain(scheduler)

    summary = sink.summary(
        DiagnosticsInfo.capture(settings.downloader_path, settings.transcoder_path)
    )
    if as_json:
        print(json.dumps(summary.model_dump(mode="json"), indent=2, default=str), file=out)
    else:
        for line in format_summary_lines(summary):
            print(line, file=out)

    if report_path:
        try:
            write_json_summary(summary, Path(report_path))
        except ReportWriteError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_SYSTEM_ERROR

    if interrupted:
        return EXIT_JOB_FAILED
    return summary.exit_status


def probe_source(
    source: str,
    config_path: Optional[str] = None,
    as_json: bool = False,
    out: Optional[TextIO] = None,
) -> int:
    """
    Exit codes:
        0: Metadata printed
        1: Invalid configuration
        2: Downloader failed
    """
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    stage = build_download_stage(settings)
    try:
        metadata = stage.probe(source)
    except StageError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if e.diagnostics:
            print(e.diagnostics, file=sys.stderr)
        return EXIT_JOB_FAILED

    if as_json:
        print(json.dumps(metadata.model_dump(mode="json"), indent=2), file=out)
    else:
        print(metadata.summary(), file=out)
        if metadata.webpage_url:
            print(f"  URL:       {metadata.webpage_url}", file=out)
        if metadata.duration is not None:
            print(f"  Duration:  {metadata.duration:.0f}s", file=out)
        if metadata.thumbnail:
            print(f"  Thumbnail: {metadata.thumbnail}", file=out)
    return EXIT_SUCCESS
