"""
Job Pipeline: Download → Transcode for one JobRequest.

Pipeline stages:
1. PENDING: nothing acquired yet; cancellation ends the job here cheaply
2. DOWNLOADING: TempWorkspace acquired, downloader runs (with retries)
3. TRANSCODING: transcoder runs on the primary downloaded file (with retries)
4. SUCCEEDED: artifact moved to the destination, then workspace released

Failure modes (all produce exactly one JobOutcome, never an exception):
- Stage error, not transient or retries exhausted → FAILED
- Cancellation observed at a stage boundary or inside a process → CANCELLED
- Unexpected exception → FAILED with kind INTERNAL

INVARIANT: the workspace is released on every exit path before the
outcome is built, so no outcome is ever observable while its
workspace still exists.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..execution.cancellation import CancellationToken
from ..execution.download import DownloadStage
from ..execution.errors import StageCancelledError, StageError, StageErrorKind
from ..execution.results import StageName, StageResult
from ..execution.transcode import TranscodeStage
from .events import EventRecorder, JobEventType
from .models import JobOutcome, JobRequest, JobStatus
from .paths import deliver_artifact
from .retry import RetryPolicy
from .state import JobStateMachine
from .workspace import TempWorkspace

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, JobStatus], None]


class _JobRun:
    """Mutable bookkeeping for one pipeline run. Never shared across jobs."""

    def __init__(self, request: JobRequest, cancel_token: CancellationToken):
        self.request = request
        self.cancel_token = cancel_token
        self.state = JobStateMachine(request.id)
        self.recorder = EventRecorder(request.id)
        self.stage_results: List[StageResult] = []
        self.attempts: Dict[str, int] = {}
        self.metadata: Dict[str, object] = {}
        self.started_at = datetime.now()


class JobPipeline:
    """
    Sequences the download and transcode stages for one job at a time.

    The pipeline object itself is stateless between runs and can be
    shared by concurrently running jobs.
    """

    def __init__(
        self,
        download_stage: DownloadStage,
        transcode_stage: TranscodeStage,
        output_dir: str,
        retry_policy: Optional[RetryPolicy] = None,
        workspace_root: Optional[str] = None,
        overwrite_existing: bool = False,
    ):
        self.download_stage = download_stage
        self.transcode_stage = transcode_stage
        self.output_dir = Path(output_dir)
        self.retry_policy = retry_policy or RetryPolicy()
        self.workspace_root = workspace_root
        self.overwrite_existing = overwrite_existing

    def run(
        self,
        request: JobRequest,
        cancel_token: Optional[CancellationToken] = None,
        on_status: Optional[StatusListener] = None,
    ) -> JobOutcome:
        """
        Run one job to its terminal state.

        Args:
            request: The job to run
            cancel_token: Token observed at stage boundaries and by the runner
            on_status: Called with (job_id, status) after every transition

        Returns:
            The job's single JobOutcome
        """
        job = _JobRun(request, cancel_token or CancellationToken())
        workspace = TempWorkspace(request.id, self.workspace_root)

        logger.info(
            f"[Pipeline] Job {request.id} started: {request.source} → {request.target_format}"
        )
        job.recorder.record(JobEventType.JOB_STARTED, source=request.source)

        try:
            status, artifact, failure = self._execute(job, workspace, on_status)
        finally:
            workspace.release()
            if workspace.location is not None:
                job.recorder.record(
                    JobEventType.WORKSPACE_RELEASED,
                    path=str(workspace.location),
                )

        outcome = self._build_outcome(job, status, artifact, failure)
        logger.info(f"[Pipeline] Job {request.id} {outcome.summary()}")
        return outcome

    def _execute(
        self,
        job: _JobRun,
        workspace: TempWorkspace,
        on_status: Optional[StatusListener],
    ) -> Tuple[JobStatus, Optional[str], Optional[Tuple[StageName, StageError]]]:
        """Drive the state machine. Returns (terminal status, artifact, failure)."""
        request = job.request

        def advance(to_status: JobStatus) -> None:
            job.state.transition(to_status)
            if on_status is not None:
                try:
                    on_status(request.id, to_status)
                except Exception:
                    logger.exception(f"[Pipeline] Status listener raised for job {request.id}")

        try:
            if job.cancel_token.is_cancelled:
                advance(JobStatus.CANCELLED)
                return JobStatus.CANCELLED, None, None

            advance(JobStatus.DOWNLOADING)
            workspace_path = workspace.acquire()
            job.recorder.record(JobEventType.WORKSPACE_CREATED, path=str(workspace_path))

            download = self._run_stage(
                job,
                StageName.DOWNLOAD,
                lambda attempt: self.download_stage.run(
                    request.source,
                    workspace_path,
                    cancel_token=job.cancel_token,
                    attempt=attempt,
                ),
            )
            job.metadata.update(download.metadata)

            if job.cancel_token.is_cancelled:
                raise StageCancelledError(StageName.DOWNLOAD.value)

            advance(JobStatus.TRANSCODING)
            transcode = self._run_stage(
                job,
                StageName.TRANSCODE,
                lambda attempt: self.transcode_stage.run(
                    Path(download.primary_output),
                    request.target_format,
                    quality=request.quality,
                    source_metadata=download.metadata,
                    cancel_token=job.cancel_token,
                    attempt=attempt,
                ),
            )

            if job.cancel_token.is_cancelled:
                raise StageCancelledError(StageName.TRANSCODE.value)

            final_path = deliver_artifact(
                Path(transcode.primary_output),
                self.output_dir,
                overwrite_existing=self.overwrite_existing,
            )
            job.recorder.record(JobEventType.ARTIFACT_DELIVERED, path=str(final_path))
            advance(JobStatus.SUCCEEDED)
            return JobStatus.SUCCEEDED, str(final_path), None

        except StageCancelledError:
            advance(JobStatus.CANCELLED)
            return JobStatus.CANCELLED, None, None

        except StageError as e:
            stage = StageName(e.stage)
            advance(JobStatus.FAILED)
            return JobStatus.FAILED, None, (stage, e)

        except Exception as e:
            logger.exception(f"[Pipeline] Unexpected error in job {request.id}: {e}")
            stage = (
                StageName.TRANSCODE
                if job.state.status == JobStatus.TRANSCODING
                else StageName.DOWNLOAD
            )
            if not job.state.is_terminal:
                if job.state.status == JobStatus.PENDING:
                    advance(JobStatus.DOWNLOADING)
                advance(JobStatus.FAILED)
            error = StageError(stage.value, f"unexpected error: {e}")
            return JobStatus.FAILED, None, (stage, error)

    def _run_stage(
        self,
        job: _JobRun,
        stage: StageName,
        attempt_fn: Callable[[int], StageResult],
    ) -> StageResult:
        """
        Run one stage, retrying transient failures.

        Returns the successful StageResult; raises the final StageError.
        """
        attempt = 0
        while True:
            attempt += 1
            if job.cancel_token.is_cancelled:
                raise StageCancelledError(stage.value)

            job.attempts[stage.value] = attempt
            job.recorder.record(JobEventType.STAGE_STARTED, stage=stage.value, attempt=attempt)

            started_at = datetime.now()
            try:
                result = attempt_fn(attempt)
            except StageError as e:
                job.stage_results.append(StageResult(
                    stage=stage,
                    attempt=attempt,
                    exit_code=e.exit_code,
                    signal=e.signal,
                    error_kind=e.kind,
                    diagnostics=e.diagnostics,
                    started_at=started_at,
                    completed_at=datetime.now(),
                ))
                job.recorder.record(
                    JobEventType.STAGE_FAILED,
                    stage=stage.value,
                    message=e.message,
                    attempt=attempt,
                    kind=e.kind.value,
                )
                if e.kind == StageErrorKind.CANCELLED or job.cancel_token.is_cancelled:
                    raise StageCancelledError(stage.value, diagnostics=e.diagnostics) from e

                if not self.retry_policy.should_retry(stage, e, attempt):
                    raise

                logger.warning(
                    f"[Pipeline] Job {job.request.id} {stage.value} attempt {attempt} "
                    f"failed ({e.kind.value}), retrying"
                )
                job.recorder.record(JobEventType.STAGE_RETRY, stage=stage.value, attempt=attempt + 1)
                if self.retry_policy.backoff_seconds > 0:
                    job.cancel_token.wait(self.retry_policy.backoff_seconds)
                continue

            job.stage_results.append(result)
            if result.skipped:
                job.recorder.record(JobEventType.TRANSCODE_SKIPPED, stage=stage.value)
            else:
                job.recorder.record(
                    JobEventType.STAGE_COMPLETED,
                    stage=stage.value,
                    attempt=attempt,
                    outputs=list(result.output_paths),
                )
            return result

    def _build_outcome(
        self,
        job: _JobRun,
        status: JobStatus,
        artifact: Optional[str],
        failure: Optional[Tuple[StageName, StageError]],
    ) -> JobOutcome:
        request = job.request
        if status == JobStatus.SUCCEEDED:
            job.recorder.record(JobEventType.JOB_SUCCEEDED, path=artifact)
        elif status == JobStatus.FAILED:
            job.recorder.record(
                JobEventType.JOB_FAILED,
                stage=failure[0].value,
                message=failure[1].message,
            )
        else:
            job.recorder.record(JobEventType.JOB_CANCELLED, message=job.cancel_token.reason)

        common = dict(
            attempts=dict(job.attempts),
            stage_results=list(job.stage_results),
            events=job.recorder.events,
            metadata=dict(job.metadata),
            started_at=job.started_at,
        )
        if status == JobStatus.SUCCEEDED:
            return JobOutcome.for_success(request, artifact, **common)
        if status == JobStatus.FAILED:
            stage, error = failure
            return JobOutcome.for_failure(request, stage, error, **common)
        return JobOutcome.for_cancellation(request, job.cancel_token.reason or "cancelled", **common)
