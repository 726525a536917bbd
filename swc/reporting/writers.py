"""
Report writers: JSON and TXT run summaries on disk.

- JSON: Machine-readable structured data
- TXT: Human-readable summary

write_reports() uses timestamped filenames to prevent collisions.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from ..jobs.models import JobStatus
from .errors import ReportWriteError
from .models import RunSummary


def _generate_timestamp() -> str:
    """Generate ISO 8601 timestamp for filenames (e.g., 20251215T143052)."""
    return datetime.now().strftime("%Y%m%dT%H%M%S")


def _format_duration(seconds: Optional[float]) -> str:
    """Format duration in seconds as human-readable string."""
    if seconds is None:
        return "N/A"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    remaining_seconds = seconds % 60
    return f"{minutes}m {remaining_seconds:.1f}s"


def format_summary_lines(summary: RunSummary) -> List[str]:
    """One line per job followed by a totals line."""
    lines = []
    for report in summary.jobs:
        duration = _format_duration(report.duration_seconds)
        if report.status == JobStatus.SUCCEEDED:
            lines.append(f"OK        {report.source} → {report.artifact_path} ({duration})")
        elif report.status == JobStatus.FAILED:
            killed = f" (signal {report.signal})" if report.signal is not None else ""
            lines.append(
                f"FAILED    {report.source} [{report.failed_stage}/{report.error_kind}] "
                f"{report.error_message}{killed}"
            )
        else:
            lines.append(f"CANCELLED {report.source}")
    lines.append(
        f"{summary.total_jobs} job(s): {summary.succeeded} succeeded, "
        f"{summary.failed} failed, {summary.cancelled} cancelled"
    )
    return lines


def write_json_summary(summary: RunSummary, path: Path) -> Path:
    """
    Write the full RunSummary as JSON.

    Returns path to written JSON file.
    Raises ReportWriteError if write fails.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                summary.model_dump(mode="json"),
                f,
                indent=2,
                default=str,
            )
        return path

    except Exception as e:
        raise ReportWriteError(f"Failed to write JSON report: {e}") from e


def write_text_summary(summary: RunSummary, path: Path) -> Path:
    """
    Write human-readable text summary.

    Returns path to written text file.
    Raises ReportWriteError if write fails.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("=" * 80 + "\n")
            f.write("SWC RUN REPORT\n")
            f.write("=" * 80 + "\n\n")

            f.write(f"Total jobs:       {summary.total_jobs}\n")
            f.write(f"Succeeded:        {summary.succeeded}\n")
            f.write(f"Failed:           {summary.failed}\n")
            f.write(f"Cancelled:        {summary.cancelled}\n")
            f.write(f"Exit status:      {summary.exit_status}\n")
            f.write("\n")

            if summary.diagnostics is not None:
                f.write("-" * 80 + "\n")
                f.write("DIAGNOSTICS\n")
                f.write("-" * 80 + "\n\n")
                f.write(f"swc version:      {summary.diagnostics.swc_version}\n")
                f.write(f"Python version:   {summary.diagnostics.python_version}\n")
                f.write(f"OS:               {summary.diagnostics.os_version}\n")
                f.write(f"Hostname:         {summary.diagnostics.hostname}\n")
                if summary.diagnostics.downloader_path:
                    f.write(f"Downloader:       {summary.diagnostics.downloader_path}\n")
                if summary.diagnostics.transcoder_path:
                    f.write(f"Transcoder:       {summary.diagnostics.transcoder_path}\n")
                f.write("\n")

            f.write("-" * 80 + "\n")
            f.write("JOB DETAILS\n")
            f.write("-" * 80 + "\n\n")

            for i, report in enumerate(summary.jobs, 1):
                f.write(f"[{i}/{summary.total_jobs}] {report.source}\n")
                f.write(f"    Status:       {report.status.value}\n")
                if report.title:
                    f.write(f"    Title:        {report.title}\n")
                if report.artifact_path:
                    f.write(f"    Output:       {report.artifact_path}\n")
                if report.duration_seconds is not None:
                    f.write(f"    Duration:     {_format_duration(report.duration_seconds)}\n")
                if report.failed_stage:
                    f.write(f"    Failed stage: {report.failed_stage} ({report.error_kind})\n")
                if report.exit_code is not None:
                    f.write(f"    Exit code:    {report.exit_code}\n")
                if report.signal is not None:
                    f.write(f"    Signal:       {report.signal}\n")
                if report.error_message:
                    f.write(f"    Message:      {report.error_message}\n")
                if report.attempts:
                    attempts = ", ".join(f"{k}={v}" for k, v in report.attempts.items())
                    f.write(f"    Attempts:     {attempts}\n")
                f.write("\n")

            f.write("=" * 80 + "\n")
            f.write(f"Report generated: {summary.generated_at.strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write("=" * 80 + "\n")

        return path

    except Exception as e:
        raise ReportWriteError(f"Failed to write text report: {e}") from e


def write_reports(summary: RunSummary, output_dir: Path) -> Dict[str, Path]:
    """
    Write JSON and TXT reports into an existing directory.

    Returns:
        {"json": Path, "txt": Path}

    Raises:
        ReportWriteError: If the directory is missing or a write fails
    """
    output_dir = Path(output_dir)
    if not output_dir.exists():
        raise ReportWriteError(f"Output directory does not exist: {output_dir}")
    if not output_dir.is_dir():
        raise ReportWriteError(f"Output path is not a directory: {output_dir}")

    timestamp = _generate_timestamp()
    return {
        "json": write_json_summary(summary, output_dir / f"swc_run_{timestamp}.json"),
        "txt": write_text_summary(summary, output_dir / f"swc_run_{timestamp}.txt"),
    }
