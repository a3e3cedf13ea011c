from __future__ import annotations

import pytest

from mediagen.domain.models import JobState, TERMINAL_STATES
from mediagen.domain.transitions import ALLOWED_TRANSITIONS, can_transition, ensure_transition
from mediagen.exceptions import InvalidTransitionError


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (JobState.QUEUED, JobState.PROVIDER_SELECTED),
        (JobState.QUEUED, JobState.FAILED),
        (JobState.PROVIDER_SELECTED, JobState.SUBMITTED),
        (JobState.PROVIDER_SELECTED, JobState.PROVIDER_SELECTED),
        (JobState.SUBMITTED, JobState.PROCESSING),
        (JobState.SUBMITTED, JobState.PROVIDER_SELECTED),
        (JobState.PROCESSING, JobState.PROCESSING),
        (JobState.PROCESSING, JobState.COMPLETED),
        (JobState.PROCESSING, JobState.PROVIDER_SELECTED),
        (JobState.PROCESSING, JobState.FAILED),
    ],
)
def test_lifecycle_transitions_are_allowed(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target, job_id="job-1")


@pytest.mark.parametrize("state", [s for s in JobState if not s.is_terminal])
def test_every_active_state_can_be_cancelled(state):
    assert can_transition(state, JobState.CANCELLED)


@pytest.mark.parametrize("state", sorted(TERMINAL_STATES, key=lambda s: s.value))
def test_terminal_states_are_final(state):
    assert ALLOWED_TRANSITIONS[state] == frozenset()
    for target in JobState:
        with pytest.raises(InvalidTransitionError):
            ensure_transition(state, target, job_id="job-1")


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (JobState.QUEUED, JobState.SUBMITTED),
        (JobState.QUEUED, JobState.COMPLETED),
        (JobState.PROVIDER_SELECTED, JobState.COMPLETED),
        (JobState.SUBMITTED, JobState.COMPLETED),
        (JobState.PROCESSING, JobState.QUEUED),
    ],
)
def test_shortcuts_are_rejected(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError) as excinfo:
        ensure_transition(current, target, job_id="job-42")
    assert "job-42" in str(excinfo.value)


def test_every_state_has_a_row():
    assert set(ALLOWED_TRANSITIONS) == set(JobState)
