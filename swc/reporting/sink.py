"""
Result Sink: collects terminal JobOutcomes from concurrently finishing jobs.

Design rules:
- Exactly one outcome per job; a second delivery is rejected
- Delivery never blocks on a slow consumer (unbounded arrival queue)
- Outcomes are kept in delivery order
- The aggregate exit status is 0 only when every delivered job succeeded
"""

import logging
import queue
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Iterator, List, Optional

from ..jobs.models import JobOutcome
from .errors import OutcomeAlreadyDeliveredError
from .models import EXIT_JOB_FAILED, EXIT_SUCCESS, DiagnosticsInfo, RunSummary

logger = logging.getLogger(__name__)

OutcomeListener = Callable[[JobOutcome], None]


class ResultSink:
    """
    Thread-safe collector of job outcomes.

    An optional listener is called on the delivering thread after each
    outcome is stored; exceptions from it are logged, never propagated.
    """

    def __init__(self, on_outcome: Optional[OutcomeListener] = None):
        self._lock = threading.Lock()
        self._delivered = threading.Condition(self._lock)
        self._outcomes: "OrderedDict[str, JobOutcome]" = OrderedDict()
        self._arrivals: "queue.Queue[JobOutcome]" = queue.Queue()
        self._on_outcome = on_outcome

    def deliver(self, outcome: JobOutcome) -> None:
        """
        Accept one terminal outcome.

        Raises:
            OutcomeAlreadyDeliveredError: The job already delivered an outcome
        """
        with self._delivered:
            if outcome.job_id in self._outcomes:
                raise OutcomeAlreadyDeliveredError(outcome.job_id)
            self._outcomes[outcome.job_id] = outcome
            self._delivered.notify_all()
        self._arrivals.put_nowait(outcome)

        logger.info(f"[Sink] {outcome.job_id}: {outcome.summary()}")
        if self._on_outcome is not None:
            try:
                self._on_outcome(outcome)
            except Exception:
                logger.exception(f"[Sink] Outcome listener raised for job {outcome.job_id}")

    def get(self, job_id: str) -> Optional[JobOutcome]:
        with self._lock:
            return self._outcomes.get(job_id)

    def wait_for(self, job_id: str, timeout: Optional[float] = None) -> Optional[JobOutcome]:
        """Block until the job's outcome arrives. Returns None on timeout."""
        with self._delivered:
            self._delivered.wait_for(lambda: job_id in self._outcomes, timeout)
            return self._outcomes.get(job_id)

    def wait_for_count(self, count: int, timeout: Optional[float] = None) -> bool:
        """Block until at least `count` outcomes have arrived."""
        with self._delivered:
            return self._delivered.wait_for(lambda: len(self._outcomes) >= count, timeout)

    def outcomes(self) -> List[JobOutcome]:
        """All outcomes in delivery order."""
        with self._lock:
            return list(self._outcomes.values())

    def statuses(self) -> Dict[str, str]:
        with self._lock:
            return {job_id: o.status.value for job_id, o in self._outcomes.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)

    def stream(self, expected: int, timeout: Optional[float] = None) -> Iterator[JobOutcome]:
        """
        Yield outcomes as they arrive, `expected` of them at most.

        Each outcome is yielded once across all stream() calls. Stops
        early when `timeout` elapses.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for _ in range(expected):
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                yield self._arrivals.get(timeout=remaining)
            except queue.Empty:
                return

    def exit_status(self) -> int:
        """0 if every delivered job succeeded, 2 otherwise."""
        with self._lock:
            if all(o.succeeded for o in self._outcomes.values()):
                return EXIT_SUCCESS
            return EXIT_JOB_FAILED

    def summary(self, diagnostics: Optional[DiagnosticsInfo] = None) -> RunSummary:
        return RunSummary.from_outcomes(self.outcomes(), diagnostics=diagnostics)
