"""
Bounded FIFO scheduler for job pipelines.

Design rules:
- At most `max_concurrent` pipelines run at once
- Jobs beyond the limit wait in strict arrival order (FIFO)
- No prioritization
- The admitted-count and the wait list are mutated only under one lock
- Cancelling a queued job removes it without ever starting a pipeline
- Cancelling a running job signals its token; the pipeline ends CANCELLED
- The scheduler never interprets stage errors; it only observes terminal
  outcomes to free a slot
"""

import logging
import threading
import time
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Deque, Dict, List, Optional

from ..execution.cancellation import CancellationToken
from ..execution.errors import StageError
from ..execution.results import StageName
from .errors import DuplicateJobError, JobNotFoundError, SchedulerClosedError
from .events import EventRecorder, JobEventType
from .models import JobOutcome, JobRequest, JobStatus

if TYPE_CHECKING:
    from ..reporting.sink import ResultSink
    from .pipeline import JobPipeline

logger = logging.getLogger(__name__)


class AdmissionState(str, Enum):
    """Where a job is, from the scheduler's point of view."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"


class JobHandle:
    """Caller-side view of one submitted job."""

    def __init__(self, request: JobRequest):
        self.request = request
        self.cancel_token = CancellationToken()
        self.admission = AdmissionState.QUEUED
        self.status = JobStatus.PENDING
        self.outcome: Optional[JobOutcome] = None
        self._done = threading.Event()

    @property
    def job_id(self) -> str:
        return self.request.id

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[JobOutcome]:
        """Block until the job is terminal. Returns None on timeout."""
        if not self._done.wait(timeout):
            return None
        return self.outcome

    def _complete(self, outcome: JobOutcome) -> None:
        self.outcome = outcome
        self.status = outcome.status
        self.admission = AdmissionState.DONE
        self._done.set()


class Scheduler:
    """
    Admits up to `max_concurrent` pipelines; the rest wait FIFO.

    Each admitted job runs on its own worker thread.
    """

    def __init__(
        self,
        pipeline: "JobPipeline",
        sink: "ResultSink",
        max_concurrent: int = 1,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.pipeline = pipeline
        self.sink = sink
        self.max_concurrent = max_concurrent

        self._lock = threading.Lock()
        self._running_count = 0
        self._peak_running = 0
        self._queue: Deque[str] = deque()
        self._jobs: Dict[str, JobHandle] = {}
        self._closed = False

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def running_count(self) -> int:
        with self._lock:
            return self._running_count

    @property
    def peak_running(self) -> int:
        """Highest number of simultaneously running pipelines so far."""
        with self._lock:
            return self._peak_running

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._running_count >= self.max_concurrent

    def queued_job_ids(self) -> List[str]:
        """Queued job ids in FIFO order."""
        with self._lock:
            return list(self._queue)

    def running_job_ids(self) -> List[str]:
        with self._lock:
            return [
                job_id for job_id, handle in self._jobs.items()
                if handle.admission == AdmissionState.RUNNING
            ]

    def get(self, job_id: str) -> JobHandle:
        with self._lock:
            handle = self._jobs.get(job_id)
        if handle is None:
            raise JobNotFoundError(job_id)
        return handle

    def get_queue_position(self, job_id: str) -> int:
        """
        Returns:
            Position (1-indexed), 0 if running, -1 if finished or unknown
        """
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is not None and handle.admission == AdmissionState.RUNNING:
                return 0
            try:
                return self._queue.index(job_id) + 1
            except ValueError:
                return -1

    # =========================================================================
    # Submission and admission
    # =========================================================================

    def submit(self, request: JobRequest) -> JobHandle:
        """
        Accept a job. It starts now if a slot is free, else waits FIFO.

        Raises:
            DuplicateJobError: Job id already submitted
            SchedulerClosedError: Scheduler was shut down
        """
        handle = JobHandle(request)
        with self._lock:
            if self._closed:
                raise SchedulerClosedError()
            if request.id in self._jobs:
                raise DuplicateJobError(request.id)
            self._jobs[request.id] = handle

            if self._running_count < self.max_concurrent and not self._queue:
                self._start_locked(handle)
            else:
                self._queue.append(request.id)
                logger.info(
                    f"[Scheduler] Job {request.id} queued at position {len(self._queue)}"
                )
        return handle

    def submit_all(self, requests: List[JobRequest]) -> List[JobHandle]:
        return [self.submit(request) for request in requests]

    def _start_locked(self, handle: JobHandle) -> None:
        """Admit one job. Caller holds the lock."""
        self._running_count += 1
        self._peak_running = max(self._peak_running, self._running_count)
        handle.admission = AdmissionState.RUNNING
        logger.info(
            f"[Scheduler] Job {handle.job_id} admitted, running: "
            f"{self._running_count}/{self.max_concurrent}"
        )
        worker = threading.Thread(
            target=self._run_job,
            args=(handle,),
            name=f"swc-job-{handle.job_id[:8]}",
            daemon=True,
        )
        worker.start()

    def _run_job(self, handle: JobHandle) -> None:
        outcome: Optional[JobOutcome] = None
        try:
            outcome = self.pipeline.run(
                handle.request,
                cancel_token=handle.cancel_token,
                on_status=self._on_status,
            )
        except Exception as e:
            # The pipeline converts its own failures; this only guards the slot
            logger.exception(f"[Scheduler] Pipeline raised for job {handle.job_id}: {e}")
            outcome = JobOutcome.for_failure(
                handle.request,
                StageName.DOWNLOAD,
                StageError(StageName.DOWNLOAD.value, f"pipeline crashed: {e}"),
            )
        finally:
            if outcome is not None:
                self._finish(handle, outcome)
            else:
                self._release_slot()

    def _on_status(self, job_id: str, status: JobStatus) -> None:
        with self._lock:
            handle = self._jobs.get(job_id)
        if handle is not None:
            handle.status = status

    def _finish(self, handle: JobHandle, outcome: JobOutcome) -> None:
        # Slot is released before waiters wake, so running_count is settled for them
        try:
            self._deliver(outcome)
        finally:
            try:
                self._release_slot()
            finally:
                handle._complete(outcome)

    def _deliver(self, outcome: JobOutcome) -> None:
        """Hand an outcome to the sink. A sink failure never strands a slot."""
        try:
            self.sink.deliver(outcome)
        except Exception:
            logger.exception(f"[Scheduler] Sink rejected outcome for job {outcome.job_id}")

    def _release_slot(self) -> None:
        with self._lock:
            self._running_count = max(0, self._running_count - 1)
            logger.debug(f"[Scheduler] Slot released, running: {self._running_count}")
            while self._queue and self._running_count < self.max_concurrent:
                next_id = self._queue.popleft()
                self._start_locked(self._jobs[next_id])

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self, job_id: str, reason: str = "cancelled by request") -> bool:
        """
        Cancel one job.

        Returns:
            True if the job was queued or running, False if already done

        Raises:
            JobNotFoundError: Unknown job id
        """
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                raise JobNotFoundError(job_id)
            if handle.admission == AdmissionState.DONE:
                return False
            was_queued = job_id in self._queue
            if was_queued:
                self._queue.remove(job_id)
                handle.admission = AdmissionState.DONE

        if was_queued:
            logger.info(f"[Scheduler] Job {job_id} removed from queue")
            handle.cancel_token.cancel(reason)
            recorder = EventRecorder(job_id)
            recorder.record(JobEventType.JOB_QUEUED)
            recorder.record(JobEventType.JOB_CANCELLED, message=reason)
            outcome = JobOutcome.for_cancellation(
                handle.request,
                reason,
                events=recorder.events,
            )
            self._deliver(outcome)
            handle._complete(outcome)
            return True

        logger.info(f"[Scheduler] Cancelling running job {job_id}")
        handle.cancel_token.cancel(reason)
        return True

    def cancel_all(self, reason: str = "cancelled by request") -> int:
        """Cancel every unfinished job, queued ones first. Returns the count."""
        with self._lock:
            queued = list(self._queue)
            running = [
                job_id for job_id, handle in self._jobs.items()
                if handle.admission == AdmissionState.RUNNING
            ]
        count = 0
        for job_id in queued + running:
            if self.cancel(job_id, reason):
                count += 1
        return count

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every submitted job is terminal.

        Returns:
            False if the timeout elapsed first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            handles = list(self._jobs.values())
        for handle in handles:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if handle.wait(remaining) is None and not handle.done:
                return False
        return True

    def shutdown(self, cancel_pending: bool = False, wait: bool = True) -> None:
        """Stop accepting jobs; optionally cancel the rest; optionally wait."""
        with self._lock:
            self._closed = True
        logger.info("[Scheduler] Shutting down")
        if cancel_pending:
            self.cancel_all("scheduler shutdown")
        if wait:
            self.wait_all()
