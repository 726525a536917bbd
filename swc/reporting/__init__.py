"""
Reporting: outcome collection and run summaries.

The Result Sink gathers terminal outcomes from concurrent jobs; the
writers turn a RunSummary into JSON and text on disk. Observational only.
"""

from .errors import ReportingError, ReportWriteError, OutcomeAlreadyDeliveredError
from .models import EXIT_SUCCESS, EXIT_JOB_FAILED, DiagnosticsInfo, JobReport, RunSummary
from .sink import ResultSink
from .writers import format_summary_lines, write_json_summary, write_text_summary, write_reports

__all__ = [
    "ReportingError",
    "ReportWriteError",
    "OutcomeAlreadyDeliveredError",
    "EXIT_SUCCESS",
    "EXIT_JOB_FAILED",
    "DiagnosticsInfo",
    "JobReport",
    "RunSummary",
    "ResultSink",
    "format_summary_lines",
    "write_json_summary",
    "write_text_summary",
    "write_reports",
]
