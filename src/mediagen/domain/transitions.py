"""Job state machine table and guard helpers.

The allowed transitions mirror the lifecycle documented for generation jobs:

* ``queued`` -> ``provider-selected`` | ``failed``
* ``provider-selected`` -> ``submitted`` | ``failed``
* ``submitted`` -> ``processing``
* ``processing`` -> ``processing`` | ``completed`` | ``provider-selected`` | ``failed``
* any non-terminal -> ``cancelled``

A submitted attempt may also fail before the first progress report; that is
modelled as ``submitted`` -> ``provider-selected`` | ``failed``.
"""

from __future__ import annotations

from typing import Mapping

from ..exceptions import InvalidTransitionError
from .models import JobState

_S = JobState

ALLOWED_TRANSITIONS: Mapping[JobState, frozenset[JobState]] = {
    _S.QUEUED: frozenset({_S.PROVIDER_SELECTED, _S.FAILED, _S.CANCELLED}),
    _S.PROVIDER_SELECTED: frozenset({_S.SUBMITTED, _S.PROVIDER_SELECTED, _S.FAILED, _S.CANCELLED}),
    _S.SUBMITTED: frozenset({_S.PROCESSING, _S.PROVIDER_SELECTED, _S.FAILED, _S.CANCELLED}),
    _S.PROCESSING: frozenset(
        {_S.PROCESSING, _S.COMPLETED, _S.PROVIDER_SELECTED, _S.FAILED, _S.CANCELLED}
    ),
    _S.COMPLETED: frozenset(),
    _S.FAILED: frozenset(),
    _S.CANCELLED: frozenset(),
}


def can_transition(current: JobState, target: JobState) -> bool:
    """Return ``True`` when ``current`` -> ``target`` is allowed."""

    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: JobState, target: JobState, *, job_id: str) -> None:
    """Raise :class:`InvalidTransitionError` for transitions outside the table."""

    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"job '{job_id}': transition {current.value} -> {target.value} is not allowed"
        )


__all__ = ["ALLOWED_TRANSITIONS", "can_transition", "ensure_transition"]
