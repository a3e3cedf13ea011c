"""Status polling and callback reconciliation for in-flight attempts.

The poller never touches job state. Every observation is translated into an
:class:`~mediagen.services.updates.AttemptUpdate` and handed to the
lifecycle manager, which drops it when the attempt has been superseded.

An attempt times out when no new observation has arrived for
``expected_seconds * timeout_multiplier`` seconds. A new observation is a
higher progress value or a change of reported status (for example
``queued`` to ``processing``). A provider that keeps repeating the same
status and progress is treated as stalled, even though it answers every
poll.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..domain.models import Provider
from ..providers.base import ProviderAdapter, ProviderJobStatus, ProviderStatus
from ..providers.errors import ProviderError, ProviderErrorKind
from .updates import AttemptUpdate, UpdateKind


class UpdateSink(Protocol):
    async def apply_update(self, job_id: str, attempt_id: str, update: AttemptUpdate) -> bool:
        """Apply ``update`` to the job; return ``False`` when it was dropped."""


@dataclass(slots=True)
class _Watch:
    job_id: str
    attempt_id: str
    provider_id: str
    reference: str
    adapter: ProviderAdapter
    budget_seconds: float
    last_progress: int = 0
    last_status: ProviderJobStatus | None = None
    last_advance: float = 0.0
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    def remaining(self, now: float) -> float:
        return self.last_advance + self.budget_seconds - now


class StatusPoller:
    """Track submitted attempts until they reach a terminal status."""

    def __init__(
        self,
        sink: UpdateSink,
        *,
        poll_interval_seconds: float = 5.0,
        jitter_ratio: float = 0.2,
        timeout_multiplier: float = 1.5,
        max_consecutive_errors: int = 3,
        request_timeout_seconds: float = 15.0,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if not 0 <= jitter_ratio < 1:
            raise ValueError("jitter_ratio must be within [0, 1)")
        if timeout_multiplier < 1:
            raise ValueError("timeout_multiplier must be at least 1")
        if max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be at least 1")
        self._sink = sink
        self._interval = poll_interval_seconds
        self._jitter = jitter_ratio
        self._timeout_multiplier = timeout_multiplier
        self._max_errors = max_consecutive_errors
        self._request_timeout = request_timeout_seconds
        self._clock = clock or time.monotonic
        self._rng = rng or random.Random()
        self._logger = logger or logging.getLogger(__name__)
        self._watches: dict[str, _Watch] = {}
        self._by_reference: dict[tuple[str, str], str] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def start(
        self,
        job_id: str,
        attempt_id: str,
        adapter: ProviderAdapter,
        reference: str,
        provider: Provider,
    ) -> None:
        """Begin tracking an attempt that the provider has accepted."""

        watch = _Watch(
            job_id=job_id,
            attempt_id=attempt_id,
            provider_id=provider.id,
            reference=reference,
            adapter=adapter,
            budget_seconds=provider.capabilities.expected_seconds * self._timeout_multiplier,
            last_advance=self._clock(),
        )
        self._watches[attempt_id] = watch
        self._by_reference[(provider.id, reference)] = attempt_id
        if adapter.supports_callbacks or provider.capabilities.supports_callbacks:
            watch.task = asyncio.create_task(self._watchdog(watch), name=f"watchdog-{attempt_id}")
        else:
            watch.task = asyncio.create_task(self.poll(watch.attempt_id), name=f"poll-{attempt_id}")
        self._logger.debug(
            "poller.attempt.started",
            extra={
                "job_id": job_id,
                "attempt_id": attempt_id,
                "provider_id": provider.id,
                "budget_seconds": watch.budget_seconds,
            },
        )

    def stop(self, attempt_id: str) -> None:
        """Stop tracking an attempt; safe to call from the attempt's own task."""

        watch = self._watches.pop(attempt_id, None)
        if watch is None:
            return
        self._by_reference.pop((watch.provider_id, watch.reference), None)
        task = watch.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def is_tracking(self, attempt_id: str) -> bool:
        return attempt_id in self._watches

    async def aclose(self) -> None:
        tasks = [watch.task for watch in self._watches.values() if watch.task is not None]
        for attempt_id in list(self._watches):
            self.stop(attempt_id)
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    async def poll(self, attempt_id: str) -> None:
        """Query the provider with jittered intervals until a terminal status."""

        watch = self._watches.get(attempt_id)
        if watch is None:
            return
        consecutive_errors = 0
        try:
            while attempt_id in self._watches:
                remaining = watch.remaining(self._clock())
                if remaining <= 0:
                    await self._forward(watch, AttemptUpdate.timeout(watch.provider_id, watch.budget_seconds))
                    return
                await asyncio.sleep(min(self._next_delay(), remaining))
                if attempt_id not in self._watches:
                    return
                if watch.remaining(self._clock()) <= 0:
                    continue

                try:
                    status = await self._query(watch)
                except ProviderError as exc:
                    if exc.retryable:
                        consecutive_errors += 1
                        self._logger.warning(
                            "poller.query.failed",
                            extra={
                                "job_id": watch.job_id,
                                "attempt_id": attempt_id,
                                "provider_id": watch.provider_id,
                                "error_kind": exc.kind.value,
                                "consecutive_errors": consecutive_errors,
                            },
                        )
                        if consecutive_errors < self._max_errors:
                            continue
                    await self._forward(watch, AttemptUpdate.failed(exc))
                    return

                consecutive_errors = 0
                update = self._reconcile(watch, status)
                applied = await self._forward(watch, update)
                if not applied or update.is_terminal:
                    return
        finally:
            self._discard_if_current(watch)

    async def _watchdog(self, watch: _Watch) -> None:
        try:
            while watch.attempt_id in self._watches:
                remaining = watch.remaining(self._clock())
                if remaining <= 0:
                    await self._forward(watch, AttemptUpdate.timeout(watch.provider_id, watch.budget_seconds))
                    return
                await asyncio.sleep(remaining)
        finally:
            self._discard_if_current(watch)

    async def _query(self, watch: _Watch) -> ProviderStatus:
        try:
            return await asyncio.wait_for(
                watch.adapter.query_status(watch.reference), timeout=self._request_timeout
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"status query timed out after {self._request_timeout:.1f}s",
                provider_id=watch.provider_id,
            ) from exc

    def _next_delay(self) -> float:
        if not self._jitter:
            return self._interval
        factor = self._rng.uniform(1 - self._jitter, 1 + self._jitter)
        return self._interval * factor

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------
    async def on_callback(self, provider_id: str, external_ref: str, payload: Mapping[str, Any]) -> bool:
        """Forward a provider push update for a live attempt.

        Unknown references (never submitted, finished or superseded) are
        logged and dropped. Malformed payloads raise
        :class:`~mediagen.providers.errors.ProviderError`.
        """

        attempt_id = self._by_reference.get((provider_id, external_ref))
        watch = self._watches.get(attempt_id) if attempt_id else None
        if watch is None:
            self._logger.info(
                "poller.callback.unknown_reference",
                extra={"provider_id": provider_id, "reference": external_ref},
            )
            return False
        try:
            status = watch.adapter.parse_callback(payload)
        except NotImplementedError as exc:
            raise ProviderError(
                ProviderErrorKind.INVALID_REQUEST,
                "provider does not accept callbacks",
                provider_id=provider_id,
            ) from exc
        update = self._reconcile(watch, status)
        applied = await self._forward(watch, update)
        if not applied or update.is_terminal:
            self.stop(watch.attempt_id)
        return applied

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _reconcile(self, watch: _Watch, status: ProviderStatus) -> AttemptUpdate:
        update = AttemptUpdate.from_status(status)
        if update.kind is UpdateKind.PROGRESS:
            reported = max(0, min(100, update.progress or 0))
            clamped = max(reported, watch.last_progress)
            if clamped != reported:
                self._logger.debug(
                    "poller.progress.clamped",
                    extra={
                        "attempt_id": watch.attempt_id,
                        "reported": reported,
                        "clamped": clamped,
                    },
                )
            update = AttemptUpdate.progressed(clamped)
        advanced = update.progress is not None and update.progress > watch.last_progress
        if advanced:
            watch.last_progress = update.progress
        if advanced or status.status is not watch.last_status:
            watch.last_advance = self._clock()
        watch.last_status = status.status
        return update

    async def _forward(self, watch: _Watch, update: AttemptUpdate) -> bool:
        return await self._sink.apply_update(watch.job_id, watch.attempt_id, update)

    def _discard_if_current(self, watch: _Watch) -> None:
        current = self._watches.get(watch.attempt_id)
        if current is watch:
            self._watches.pop(watch.attempt_id, None)
            self._by_reference.pop((watch.provider_id, watch.reference), None)


__all__ = ["StatusPoller", "UpdateSink"]
