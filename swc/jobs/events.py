"""
Job event timeline.

Ordered record of what happened to one job. Events are observational:
they explain what happened without altering behavior.

Design rules:
- Events are append-only, immutable
- Event capture never gates execution
- One timeline per job, never shared
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobEventType(str, Enum):
    """Job event types (lifecycle-ordered)."""

    JOB_QUEUED = "job_queued"
    JOB_STARTED = "job_started"
    WORKSPACE_CREATED = "workspace_created"
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    STAGE_FAILED = "stage_failed"
    STAGE_RETRY = "stage_retry"
    TRANSCODE_SKIPPED = "transcode_skipped"
    ARTIFACT_DELIVERED = "artifact_delivered"
    WORKSPACE_RELEASED = "workspace_released"
    JOB_SUCCEEDED = "job_succeeded"
    JOB_FAILED = "job_failed"
    JOB_CANCELLED = "job_cancelled"


class JobEvent(BaseModel):
    """One immutable timeline entry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: JobEventType
    timestamp: datetime = Field(default_factory=datetime.now)
    stage: Optional[str] = None
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class EventRecorder:
    """Append-only timeline for a single job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._events: List[JobEvent] = []
        self._lock = threading.Lock()

    def record(
        self,
        event_type: JobEventType,
        stage: Optional[str] = None,
        message: Optional[str] = None,
        **data: Any,
    ) -> JobEvent:
        event = JobEvent(event_type=event_type, stage=stage, message=message, data=data)
        with self._lock:
            self._events.append(event)
        return event

    @property
    def events(self) -> List[JobEvent]:
        with self._lock:
            return list(self._events)

    def types(self) -> List[JobEventType]:
        return [event.event_type for event in self.events]
