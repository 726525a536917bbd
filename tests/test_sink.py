"""
Tests for the ResultSink, run summaries and report writers.
"""

import json
import threading
from datetime import datetime, timedelta

import pytest

from swc.execution.errors import ProcessFailedError, StageTimeoutError
from swc.execution.results import StageName
from swc.jobs.models import JobOutcome, JobRequest, JobStatus
from swc.reporting.errors import OutcomeAlreadyDeliveredError, ReportWriteError
from swc.reporting.models import DiagnosticsInfo, RunSummary
from swc.reporting.sink import ResultSink
from swc.reporting.writers import (
    _format_duration,
    format_summary_lines,
    write_json_summary,
    write_reports,
    write_text_summary,
)


def _request(source: str = "https://example.com/a") -> JobRequest:
    return JobRequest(source=source, target_format="mp3")


def _success(source: str = "https://example.com/a") -> JobOutcome:
    started = datetime.now() - timedelta(seconds=3)
    return JobOutcome.for_success(
        _request(source),
        f"/out/{source.rsplit('/', 1)[-1]}.mp3",
        started_at=started,
        attempts={"download": 1, "transcode": 1},
        metadata={"title": "Song"},
    )


def _failure(source: str = "https://example.com/b") -> JobOutcome:
    error = ProcessFailedError("download", "Unsupported URL: x", exit_code=1)
    return JobOutcome.for_failure(_request(source), StageName.DOWNLOAD, error)


def _cancelled(source: str = "https://example.com/c") -> JobOutcome:
    return JobOutcome.for_cancellation(_request(source), "user request")


class TestResultSink:
    def test_deliver_and_get(self):
        sink = ResultSink()
        outcome = _success()
        sink.deliver(outcome)

        assert sink.get(outcome.job_id) == outcome
        assert len(sink) == 1
        assert sink.statuses() == {outcome.job_id: "succeeded"}

    def test_second_delivery_rejected(self):
        sink = ResultSink()
        outcome = _success()
        sink.deliver(outcome)

        with pytest.raises(OutcomeAlreadyDeliveredError) as exc_info:
            sink.deliver(outcome)
        assert exc_info.value.job_id == outcome.job_id
        assert len(sink) == 1

    def test_outcomes_in_delivery_order(self):
        sink = ResultSink()
        outcomes = [_failure(), _success(), _cancelled()]
        for outcome in outcomes:
            sink.deliver(outcome)
        assert sink.outcomes() == outcomes

    def test_listener_called_and_errors_contained(self):
        seen = []

        def listener(outcome):
            seen.append(outcome.job_id)
            raise RuntimeError("listener bug")

        sink = ResultSink(on_outcome=listener)
        outcome = _success()
        sink.deliver(outcome)

        assert seen == [outcome.job_id]
        assert sink.get(outcome.job_id) == outcome

    def test_wait_for_blocks_until_delivery(self):
        sink = ResultSink()
        outcome = _success()
        timer = threading.Timer(0.05, sink.deliver, args=(outcome,))
        timer.start()

        assert sink.wait_for(outcome.job_id, timeout=5) == outcome
        timer.join()

    def test_wait_for_times_out(self):
        assert ResultSink().wait_for("missing", timeout=0.05) is None

    def test_wait_for_count(self):
        sink = ResultSink()
        sink.deliver(_success())
        assert sink.wait_for_count(1, timeout=0.1)
        assert not sink.wait_for_count(2, timeout=0.05)

    def test_concurrent_delivery(self):
        """Outcomes from many threads all land exactly once."""
        sink = ResultSink()
        outcomes = [_success(f"https://example.com/{i}") for i in range(50)]
        threads = [threading.Thread(target=sink.deliver, args=(o,)) for o in outcomes]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(sink) == 50
        assert {o.job_id for o in sink.outcomes()} == {o.job_id for o in outcomes}

    def test_stream_yields_each_outcome_once(self):
        sink = ResultSink()
        first, second = _success(), _failure()
        sink.deliver(first)
        sink.deliver(second)

        assert list(sink.stream(2, timeout=1)) == [first, second]
        assert list(sink.stream(1, timeout=0.05)) == []


class TestExitStatus:
    def test_all_succeeded(self):
        sink = ResultSink()
        sink.deliver(_success("https://example.com/1"))
        sink.deliver(_success("https://example.com/2"))
        assert sink.exit_status() == 0

    def test_empty_batch_is_success(self):
        assert ResultSink().exit_status() == 0

    def test_any_failure(self):
        sink = ResultSink()
        sink.deliver(_success())
        sink.deliver(_failure())
        assert sink.exit_status() == 2

    def test_cancellation_is_not_success(self):
        sink = ResultSink()
        sink.deliver(_success())
        sink.deliver(_cancelled())
        assert sink.exit_status() == 2


class TestRunSummary:
    def test_counts(self):
        summary = RunSummary.from_outcomes([_success(), _failure(), _cancelled()])

        assert summary.total_jobs == 3
        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.cancelled == 1
        assert summary.exit_status == 2
        assert not summary.all_succeeded

    def test_job_report_fields(self):
        summary = RunSummary.from_outcomes([_success(), _failure()])
        ok, failed = summary.jobs

        assert ok.status == JobStatus.SUCCEEDED
        assert ok.title == "Song"
        assert ok.attempts == {"download": 1, "transcode": 1}
        assert ok.duration_seconds is not None
        assert failed.failed_stage == "download"
        assert failed.error_kind == "process_failed"
        assert failed.error_message == "Unsupported URL: x"
        assert failed.exit_code == 1

    def test_timeout_report_carries_signal(self, tmp_path):
        error = StageTimeoutError("download", 30, signal=15, diagnostics="tail")
        outcome = JobOutcome.for_failure(_request(), StageName.DOWNLOAD, error)
        summary = RunSummary.from_outcomes([outcome])

        report = summary.jobs[0]
        assert outcome.signal == 15
        assert report.signal == 15
        assert report.exit_code is None
        assert format_summary_lines(summary)[0].endswith("timed out after 30s (signal 15)")

        data = json.loads(write_json_summary(summary, tmp_path / "r.json").read_text(encoding="utf-8"))
        assert data["jobs"][0]["signal"] == 15
        content = write_text_summary(summary, tmp_path / "r.txt").read_text(encoding="utf-8")
        assert "Signal:       15" in content

    def test_sink_summary_includes_diagnostics(self):
        sink = ResultSink()
        sink.deliver(_success())
        diagnostics = DiagnosticsInfo.capture("/usr/bin/yt-dlp", "/usr/bin/ffmpeg")

        summary = sink.summary(diagnostics)

        assert summary.all_succeeded
        assert summary.diagnostics.downloader_path == "/usr/bin/yt-dlp"


class TestSummaryLines:
    def test_one_line_per_job_plus_totals(self):
        summary = RunSummary.from_outcomes([_success(), _failure(), _cancelled()])
        lines = format_summary_lines(summary)

        assert len(lines) == 4
        assert lines[0].startswith("OK")
        assert lines[1].startswith("FAILED")
        assert "[download/process_failed]" in lines[1]
        assert lines[2].startswith("CANCELLED")
        assert lines[3] == "3 job(s): 1 succeeded, 1 failed, 1 cancelled"

    @pytest.mark.parametrize("seconds,expected", [
        (None, "N/A"),
        (3.0, "3.0s"),
        (75.0, "1m 15.0s"),
    ])
    def test_format_duration(self, seconds, expected):
        assert _format_duration(seconds) == expected


class TestWriters:
    def test_json_summary(self, tmp_path):
        summary = RunSummary.from_outcomes([_success(), _failure()])
        path = write_json_summary(summary, tmp_path / "nested" / "report.json")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["total_jobs"] == 2
        assert data["exit_status"] == 2
        assert [job["status"] for job in data["jobs"]] == ["succeeded", "failed"]

    def test_text_summary(self, tmp_path):
        summary = RunSummary.from_outcomes(
            [_success(), _failure()],
            diagnostics=DiagnosticsInfo.capture("yt-dlp", "ffmpeg"),
        )
        path = write_text_summary(summary, tmp_path / "report.txt")

        content = path.read_text(encoding="utf-8")
        assert "SWC RUN REPORT" in content
        assert "Failed stage: download (process_failed)" in content
        assert "Downloader:       yt-dlp" in content

    def test_write_failure_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        summary = RunSummary.from_outcomes([_success()])

        with pytest.raises(ReportWriteError):
            write_json_summary(summary, blocker / "report.json")

    def test_write_reports_pair(self, tmp_path):
        summary = RunSummary.from_outcomes([_success()])
        paths = write_reports(summary, tmp_path)

        assert paths["json"].name.startswith("swc_run_")
        assert paths["json"].suffix == ".json"
        assert paths["txt"].suffix == ".txt"
        assert paths["json"].stem == paths["txt"].stem

    def test_write_reports_missing_directory(self, tmp_path):
        with pytest.raises(ReportWriteError):
            write_reports(RunSummary.from_outcomes([]), tmp_path / "missing")
