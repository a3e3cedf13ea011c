"""Push notifications for jobs reaching a terminal state."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from ..domain.models import Job

JobListener = Callable[[Job], Any]


class JobNotifier:
    """Fan out terminal job snapshots to subscribers.

    Listener failures are logged and never reach the lifecycle manager.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._listeners: list[JobListener] = []
        self._waiters: dict[str, list[asyncio.Future[Job]]] = {}
        self._logger = logger or logging.getLogger(__name__)

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def wait_for_terminal(self, job_id: str, *, timeout: float | None = None) -> Job:
        """Wait until ``job_id`` is published in a terminal state."""

        future: asyncio.Future[Job] = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(job_id, []).append(future)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            waiters = self._waiters.get(job_id)
            if waiters and future in waiters:
                waiters.remove(future)
                if not waiters:
                    self._waiters.pop(job_id, None)

    async def publish(self, job: Job) -> None:
        for future in self._waiters.pop(job.id, []):
            if not future.done():
                future.set_result(job)
        for listener in list(self._listeners):
            try:
                result = listener(job)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._logger.exception(
                    "notifier.listener_failed",
                    extra={"job_id": job.id, "state": job.state.value},
                )


__all__ = ["JobListener", "JobNotifier"]
