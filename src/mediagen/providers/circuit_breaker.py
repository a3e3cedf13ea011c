"""Per-provider circuit breaker."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(slots=True)
class CircuitBreaker:
    """Stop routing jobs to a provider after repeated consecutive failures.

    After ``failure_threshold`` consecutive failures the breaker opens for
    ``reset_seconds``. Once that period has passed it is half-open: the
    first :meth:`allows_request` call claims a single trial and every other
    caller is refused until the trial reports back. A success closes the
    breaker, a failure reopens it. A trial that never reports back is
    released after another ``reset_seconds``.
    """

    failure_threshold: int = 5
    reset_seconds: float = 60.0
    clock: Callable[[], float] = time.monotonic
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _trial_started_at: float | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def trial_in_flight(self) -> bool:
        return self._trial_started_at is not None

    @property
    def accepting(self) -> bool:
        """Whether :meth:`allows_request` would currently succeed, without claiming a trial."""
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.HALF_OPEN:
                return not self._trial_live()
            return self._state is CircuitState.CLOSED

    def allows_request(self) -> bool:
        """Return whether a job may be routed to the provider now.

        While half-open this claims the trial, so call it only when the
        provider is about to be used.
        """
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.OPEN:
                return False
            if self._trial_live():
                return False
            self._trial_started_at = self.clock()
            return True

    def record_success(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None
            self._trial_started_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._maybe_half_open()
            self._failures += 1
            self._trial_started_at = None
            if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self.clock()

    def reset(self) -> None:
        self.record_success()

    def _maybe_half_open(self) -> None:
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self.clock() - self._opened_at >= self.reset_seconds:
                self._state = CircuitState.HALF_OPEN

    def _trial_live(self) -> bool:
        started = self._trial_started_at
        return started is not None and self.clock() - started < self.reset_seconds


__all__ = ["CircuitBreaker", "CircuitState"]
