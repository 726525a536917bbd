"""
Tests for job state transitions.

Terminal states are immutable; only the documented edges are legal.
"""

import pytest

from swc.jobs.errors import InvalidStateTransitionError
from swc.jobs.models import JobStatus
from swc.jobs.state import (
    TERMINAL_JOB_STATES,
    JobStateMachine,
    can_transition_job,
    is_job_terminal,
    validate_job_transition,
)


class TestJobTransitions:
    def test_happy_path(self):
        assert can_transition_job(JobStatus.PENDING, JobStatus.DOWNLOADING)
        assert can_transition_job(JobStatus.DOWNLOADING, JobStatus.TRANSCODING)
        assert can_transition_job(JobStatus.TRANSCODING, JobStatus.SUCCEEDED)

    def test_stage_failures(self):
        assert can_transition_job(JobStatus.DOWNLOADING, JobStatus.FAILED)
        assert can_transition_job(JobStatus.TRANSCODING, JobStatus.FAILED)

    def test_cancel_from_any_non_terminal(self):
        for status in (JobStatus.PENDING, JobStatus.DOWNLOADING, JobStatus.TRANSCODING):
            assert can_transition_job(status, JobStatus.CANCELLED)

    def test_no_skipping_stages(self):
        assert not can_transition_job(JobStatus.PENDING, JobStatus.TRANSCODING)
        assert not can_transition_job(JobStatus.DOWNLOADING, JobStatus.SUCCEEDED)
        assert not can_transition_job(JobStatus.PENDING, JobStatus.FAILED)

    def test_terminal_states_are_final(self):
        """Nothing leaves a terminal state, not even itself."""
        for terminal in TERMINAL_JOB_STATES:
            assert is_job_terminal(terminal)
            for target in JobStatus:
                assert not can_transition_job(terminal, target)

    def test_validate_raises(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_job_transition("job-1", JobStatus.SUCCEEDED, JobStatus.FAILED)
        assert exc_info.value.current_state == "succeeded"
        assert exc_info.value.target_state == "failed"


class TestJobStateMachine:
    def test_history_recorded(self):
        machine = JobStateMachine("job-1")
        machine.transition(JobStatus.DOWNLOADING)
        machine.transition(JobStatus.TRANSCODING)
        machine.transition(JobStatus.SUCCEEDED)

        assert machine.status == JobStatus.SUCCEEDED
        assert machine.is_terminal
        assert machine.history == [
            JobStatus.PENDING,
            JobStatus.DOWNLOADING,
            JobStatus.TRANSCODING,
            JobStatus.SUCCEEDED,
        ]

    def test_terminal_reached_once(self):
        machine = JobStateMachine("job-1")
        machine.transition(JobStatus.CANCELLED)
        with pytest.raises(InvalidStateTransitionError):
            machine.transition(JobStatus.CANCELLED)
        assert machine.history == [JobStatus.PENDING, JobStatus.CANCELLED]
