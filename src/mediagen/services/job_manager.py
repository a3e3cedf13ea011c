"""Job lifecycle manager: the single writer of job state.

Every transition of one job is serialized through that job's
:class:`asyncio.Lock`; different jobs never share a lock. Provider I/O
(submission, cancellation) always runs on separate tasks and outside the
lock, so ``get_status`` and ``cancel`` never wait on a provider.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, TypeVar
from uuid import uuid4

from ..domain.models import (
    Attempt,
    AttemptOutcome,
    FailureCause,
    FailureCode,
    GenerationRequirements,
    Job,
    JobError,
    JobKind,
    JobState,
    OutcomeRecord,
    SelectionCriteria,
)
from ..domain.transitions import ensure_transition
from ..exceptions import NotFoundError, RepositoryError
from ..providers.base import JobSpec
from ..providers.errors import FailureClass, ProviderError, ProviderErrorKind
from ..providers.registry import ProviderRegistry
from ..repositories.interfaces import JobRepository
from .notifier import JobNotifier
from .poller import StatusPoller
from .recorder import QualityRecorder
from .selector import ProviderSelector
from .updates import AttemptUpdate, UpdateKind

T = TypeVar("T")

MAX_PROVIDER_SPECIFIC_FALLBACKS = 1


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class JobLifecycleManager:
    """Own the state machine of every generation job."""

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        selector: ProviderSelector,
        repository: JobRepository,
        recorder: QualityRecorder | None = None,
        notifier: JobNotifier | None = None,
        poller: StatusPoller | None = None,
        max_attempts: int | None = None,
        request_timeout_seconds: float = 15.0,
        poll_interval_seconds: float = 5.0,
        poll_jitter_ratio: float = 0.2,
        poll_max_consecutive_errors: int = 3,
        timeout_multiplier: float = 1.5,
        callback_url_template: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._registry = registry
        self._selector = selector
        self._repository = repository
        self._recorder = recorder
        self.notifier = notifier or JobNotifier()
        self.poller = poller or StatusPoller(
            self,
            poll_interval_seconds=poll_interval_seconds,
            jitter_ratio=poll_jitter_ratio,
            timeout_multiplier=timeout_multiplier,
            max_consecutive_errors=poll_max_consecutive_errors,
            request_timeout_seconds=request_timeout_seconds,
        )
        self._max_attempts = max_attempts
        self._request_timeout_seconds = max(0.1, request_timeout_seconds)
        self._callback_url_template = callback_url_template
        self._clock = clock or _default_clock
        self._logger = logging.getLogger(__name__)
        self._jobs: dict[str, Job] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._estimated_costs: dict[str, dict[str, float]] = {}
        self._closed = False

    @staticmethod
    async def _run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Execute ``func`` in a worker thread to avoid blocking the event loop."""

        return await asyncio.to_thread(func, *args, **kwargs)

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------
    async def submit(
        self,
        kind: JobKind,
        requirements: GenerationRequirements,
        criteria: SelectionCriteria | None = None,
    ) -> str:
        """Create a job, select providers and schedule the first submission.

        Returns as soon as the job is ``provider-selected`` or ``failed``;
        the provider call happens on a background task.
        """

        if self._closed:
            raise RuntimeError("job manager is shut down")
        if requirements.kind is not kind:
            raise ValueError(
                f"requirements are for '{requirements.kind.value}' but job kind is '{kind.value}'"
            )
        criteria = criteria or SelectionCriteria()
        now = self._clock()
        job = Job(
            id=uuid4().hex,
            kind=kind,
            requirements=requirements,
            criteria=criteria,
            state=JobState.QUEUED,
            created_at=now,
            updated_at=now,
        )
        self._jobs[job.id] = job
        lock = self._locks.setdefault(job.id, asyncio.Lock())
        self._logger.info(
            "job.created",
            extra={"job_id": job.id, "kind": kind.value, "quality": requirements.quality.value},
        )

        ranked = self._selector.select(requirements, criteria)
        async with lock:
            first = self._claim_provider(ranked.provider_ids())
            if first is None:
                if ranked or ranked.unavailable:
                    error = JobError(
                        code=FailureCode.PROVIDER_UNAVAILABLE,
                        message="Every capable provider is temporarily unavailable",
                        retryable=True,
                        cause=FailureCause.UNAVAILABLE,
                    )
                else:
                    error = JobError(
                        code=FailureCode.NO_CAPABLE_PROVIDER,
                        message="No registered provider supports the requested job",
                        retryable=False,
                        cause=FailureCause.SELECTION,
                    )
                self._fail(job, error)
                saved = await self._persist(job)
                self._spawn(self.notifier.publish(self._snapshot(job)))
                self._evict(job.id, saved)
                return job.id

            job.ranked_provider_ids = ranked.provider_ids()
            self._estimated_costs[job.id] = {entry.provider_id: entry.estimated_cost for entry in ranked}
            attempt = self._begin_attempt(job, first, cost=self._estimated_costs[job.id].get(first))
            await self._persist(job)
        self._logger.info(
            "job.provider_selected",
            extra={
                "job_id": job.id,
                "provider_id": attempt.provider_id,
                "ranked": job.ranked_provider_ids,
            },
        )
        self._spawn(self._submit_attempt(job.id, attempt.id))
        return job.id

    async def cancel(self, job_id: str) -> Job:
        """Cancel a non-terminal job; terminal jobs are returned unchanged."""

        job = self._jobs.get(job_id)
        if job is None:
            stored = await self._load(job_id)
            if stored is None:
                raise NotFoundError(f"job '{job_id}' not found")
            return stored

        async with self._locks[job_id]:
            if job.is_terminal:
                return self._snapshot(job)
            attempt = job.current_attempt
            ensure_transition(job.state, JobState.CANCELLED, job_id=job.id)
            now = self._clock()
            if attempt is not None and attempt.outcome is None:
                attempt.outcome = AttemptOutcome.CANCELLED
                attempt.finished_at = now
                self.poller.stop(attempt.id)
                if attempt.external_ref:
                    self._spawn(self._cancel_remote(attempt.provider_id, attempt.external_ref))
            job.state = JobState.CANCELLED
            job.updated_at = now
            job.completed_at = now
            saved = await self._persist(job)
            snapshot = self._snapshot(job)
            self._evict(job_id, saved)
        self._logger.info("job.cancelled", extra={"job_id": job_id})
        self._spawn(self.notifier.publish(snapshot))
        return snapshot

    async def get_status(self, job_id: str) -> Job:
        """Return a detached snapshot of the job."""

        job = self._jobs.get(job_id)
        if job is not None:
            return self._snapshot(job)
        stored = await self._load(job_id)
        if stored is None:
            raise NotFoundError(f"job '{job_id}' not found")
        return stored

    async def wait_for_terminal(self, job_id: str, *, timeout: float | None = None) -> Job:
        """Wait until ``job_id`` reaches a terminal state and return it."""

        job = self._jobs.get(job_id)
        if job is None:
            return await self.get_status(job_id)
        if job.is_terminal:
            return self._snapshot(job)
        return await self.notifier.wait_for_terminal(job_id, timeout=timeout)

    async def apply_update(self, job_id: str, attempt_id: str, update: AttemptUpdate) -> bool:
        """Apply a provider observation to the job's current attempt.

        Returns ``False`` when the update was dropped: unknown job, terminal
        job, or an attempt that is no longer current.
        """

        job = self._jobs.get(job_id)
        if job is None:
            self._logger.info(
                "job.update.unknown_job",
                extra={"job_id": job_id, "attempt_id": attempt_id},
            )
            return False

        async with self._locks[job_id]:
            attempt = job.current_attempt
            if job.is_terminal or attempt is None or attempt.id != attempt_id:
                self._logger.info(
                    "job.update.stale",
                    extra={
                        "job_id": job_id,
                        "attempt_id": attempt_id,
                        "state": job.state.value,
                        "update": update.kind.value,
                    },
                )
                return False
            if job.state is JobState.PROVIDER_SELECTED:
                self._logger.info(
                    "job.update.before_submission",
                    extra={"job_id": job_id, "attempt_id": attempt_id},
                )
                return False

            if update.kind is UpdateKind.FAILED:
                error = update.error or ProviderError(
                    ProviderErrorKind.PROCESSING,
                    "provider reported failure",
                    provider_id=attempt.provider_id,
                )
                outcome = AttemptOutcome.TIMEOUT if update.timed_out else AttemptOutcome.FAILURE
                self._handle_attempt_failure(job, attempt, error, outcome=outcome)
            else:
                if job.state is JobState.SUBMITTED:
                    self._transition(job, JobState.PROCESSING)
                if update.kind is UpdateKind.PROGRESS:
                    self._record_progress(job, attempt, update.progress or 0)
                elif update.kind is UpdateKind.COMPLETED:
                    self._complete(job, attempt, update)
            saved = await self._persist(job)
            terminal_snapshot = self._snapshot(job) if job.is_terminal else None
            if terminal_snapshot is not None:
                self._evict(job_id, saved)

        if terminal_snapshot is not None:
            self._spawn(self.notifier.publish(terminal_snapshot))
        return True

    async def drain(self) -> None:
        """Wait for background submissions, notifications and recordings."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, *, grace_seconds: float = 5.0) -> None:
        """Stop polling, flush pending work and cancel what is left."""

        self._closed = True
        await self.poller.aclose()
        if grace_seconds > 0:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.drain(), timeout=grace_seconds)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Attempt orchestration
    # ------------------------------------------------------------------
    async def _submit_attempt(self, job_id: str, attempt_id: str) -> None:
        job = self._jobs.get(job_id)
        attempt = job.current_attempt if job is not None else None
        if attempt is None or attempt.id != attempt_id:
            return
        provider_id = attempt.provider_id
        spec = JobSpec.from_requirements(
            job.requirements,
            job_id=job_id,
            attempt_id=attempt_id,
            callback_url=self._callback_url(provider_id),
        )
        try:
            adapter = self._registry.adapter(provider_id)
            provider = self._registry.get(provider_id)
        except NotFoundError:
            await self._on_submission_failed(
                job_id,
                attempt_id,
                ProviderError(
                    ProviderErrorKind.UNAVAILABLE,
                    "provider is no longer registered",
                    provider_id=provider_id,
                ),
            )
            return

        self._logger.info(
            "job.submission.started",
            extra={"job_id": job_id, "attempt_id": attempt_id, "provider_id": provider_id},
        )
        try:
            reference = await self._call_with_timeout(adapter.submit(spec), label="submit")
        except ProviderError as exc:
            await self._on_submission_failed(job_id, attempt_id, exc)
            return
        except TimeoutError as exc:
            await self._on_submission_failed(
                job_id,
                attempt_id,
                ProviderError(ProviderErrorKind.TIMEOUT, str(exc), provider_id=provider_id),
            )
            return
        except Exception as exc:
            self._logger.exception(
                "job.submission.unexpected_error",
                extra={"job_id": job_id, "attempt_id": attempt_id, "provider_id": provider_id},
            )
            await self._on_submission_failed(
                job_id,
                attempt_id,
                ProviderError(ProviderErrorKind.PROCESSING, repr(exc), provider_id=provider_id),
            )
            return

        lock = self._locks.get(job_id)
        async with lock or contextlib.nullcontext():
            current = job.current_attempt
            if lock is None or self._closed or job.is_terminal or current is None or current.id != attempt_id:
                self._logger.info(
                    "job.submission.stale",
                    extra={"job_id": job_id, "attempt_id": attempt_id, "reference": reference},
                )
                stale = True
            else:
                stale = False
                current.external_ref = reference
                self._transition(job, JobState.SUBMITTED)
                await self._persist(job)
                self.poller.start(job_id, attempt_id, adapter, reference, provider)
        if stale:
            await self._cancel_remote(provider_id, reference)
            return
        self._logger.info(
            "job.submitted",
            extra={
                "job_id": job_id,
                "attempt_id": attempt_id,
                "provider_id": provider_id,
                "reference": reference,
            },
        )

    async def _on_submission_failed(self, job_id: str, attempt_id: str, error: ProviderError) -> None:
        self._logger.warning(
            "job.submission.failed",
            extra={
                "job_id": job_id,
                "attempt_id": attempt_id,
                "provider_id": error.provider_id,
                "error_kind": error.kind.value,
            },
        )
        await self._apply_failure(job_id, attempt_id, error)

    async def _apply_failure(self, job_id: str, attempt_id: str, error: ProviderError) -> bool:
        """Record a failure of the current attempt, including pre-submission ones."""

        job = self._jobs.get(job_id)
        if job is None:
            return False
        async with self._locks[job_id]:
            attempt = job.current_attempt
            if job.is_terminal or attempt is None or attempt.id != attempt_id:
                return False
            outcome = AttemptOutcome.TIMEOUT if error.kind is ProviderErrorKind.TIMEOUT else AttemptOutcome.FAILURE
            self._handle_attempt_failure(job, attempt, error, outcome=outcome)
            saved = await self._persist(job)
            terminal_snapshot = self._snapshot(job) if job.is_terminal else None
            if terminal_snapshot is not None:
                self._evict(job_id, saved)
        if terminal_snapshot is not None:
            self._spawn(self.notifier.publish(terminal_snapshot))
        return True

    def _handle_attempt_failure(
        self,
        job: Job,
        attempt: Attempt,
        error: ProviderError,
        *,
        outcome: AttemptOutcome,
    ) -> None:
        """Close the attempt and decide between fallback and terminal failure.

        Must be called with the job's lock held.
        """

        now = self._clock()
        job_error = error.to_job_error()
        attempt.outcome = outcome
        attempt.error = job_error
        attempt.finished_at = now
        job.error = job_error
        self.poller.stop(attempt.id)
        self._record_outcome(job, attempt, outcome=outcome, error_code=job_error.code)

        failure_class = error.failure_class
        if failure_class is FailureClass.STRUCTURAL:
            self._fail(job, replace(job_error, cause=FailureCause.NON_RETRYABLE))
            return
        if (
            failure_class is FailureClass.PROVIDER_SPECIFIC
            and job.provider_specific_fallbacks >= MAX_PROVIDER_SPECIFIC_FALLBACKS
        ):
            self._fail(job, replace(job_error, cause=FailureCause.NON_RETRYABLE))
            return

        next_provider = self._next_provider(job)
        if next_provider is None:
            self._fail(job, replace(job_error, cause=FailureCause.EXHAUSTED))
            return

        if failure_class is FailureClass.PROVIDER_SPECIFIC:
            job.provider_specific_fallbacks += 1
        self._logger.info(
            "job.fallback",
            extra={
                "job_id": job.id,
                "from_provider_id": attempt.provider_id,
                "to_provider_id": next_provider,
                "error_kind": error.kind.value,
                "attempt_count": job.attempt_count,
            },
        )
        new_attempt = self._begin_attempt(
            job, next_provider, cost=self._estimated_costs.get(job.id, {}).get(next_provider)
        )
        self._spawn(self._submit_attempt(job.id, new_attempt.id))

    def _next_provider(self, job: Job) -> str | None:
        if job.attempt_count >= self._attempt_cap(job):
            return None
        return self._claim_provider(job.remaining_providers())

    def _claim_provider(self, provider_ids: list[str]) -> str | None:
        """Return the first provider whose circuit admits a new attempt."""

        for provider_id in provider_ids:
            if self._registry.acquire(provider_id):
                return provider_id
            self._logger.info("job.provider_skipped", extra={"provider_id": provider_id})
        return None

    def _attempt_cap(self, job: Job) -> int:
        ranked = len(job.ranked_provider_ids)
        if self._max_attempts is None:
            return ranked
        return min(self._max_attempts, ranked)

    # ------------------------------------------------------------------
    # State mutation helpers (job lock held)
    # ------------------------------------------------------------------
    def _transition(self, job: Job, target: JobState) -> None:
        ensure_transition(job.state, target, job_id=job.id)
        previous = job.state
        job.state = target
        job.updated_at = self._clock()
        if previous is not target:
            self._logger.debug(
                "job.transition",
                extra={"job_id": job.id, "from": previous.value, "to": target.value},
            )

    def _begin_attempt(self, job: Job, provider_id: str, *, cost: float | None) -> Attempt:
        self._transition(job, JobState.PROVIDER_SELECTED)
        job.attempt_count += 1
        attempt = Attempt(
            id=uuid4().hex,
            number=job.attempt_count,
            provider_id=provider_id,
            started_at=self._clock(),
            cost=cost,
        )
        job.attempts.append(attempt)
        job.selected_provider_id = provider_id
        job.error = None
        return attempt

    def _record_progress(self, job: Job, attempt: Attempt, progress: int) -> None:
        value = max(attempt.progress, min(100, max(0, progress)))
        attempt.progress = value
        job.progress = max(job.progress, value)
        self._transition(job, JobState.PROCESSING)

    def _complete(self, job: Job, attempt: Attempt, update: AttemptUpdate) -> None:
        if update.result is None:
            raise ValueError("completed update without a result")
        now = self._clock()
        self._transition(job, JobState.COMPLETED)
        attempt.outcome = AttemptOutcome.SUCCESS
        attempt.finished_at = now
        attempt.progress = 100
        job.progress = 100
        job.result = update.result
        job.error = None
        job.completed_at = now
        self.poller.stop(attempt.id)
        self._record_outcome(job, attempt, outcome=AttemptOutcome.SUCCESS)
        self._logger.info(
            "job.completed",
            extra={
                "job_id": job.id,
                "provider_id": attempt.provider_id,
                "attempt_count": job.attempt_count,
            },
        )

    def _fail(self, job: Job, error: JobError) -> None:
        self._transition(job, JobState.FAILED)
        job.error = error
        job.result = None
        job.completed_at = job.updated_at
        self._logger.warning(
            "job.failed",
            extra={
                "job_id": job.id,
                "code": error.code.value,
                "cause": error.cause.value if error.cause else None,
                "attempt_count": job.attempt_count,
            },
        )

    def _record_outcome(
        self,
        job: Job,
        attempt: Attempt,
        *,
        outcome: AttemptOutcome,
        error_code: FailureCode | None = None,
    ) -> None:
        if self._recorder is None:
            return
        finished = attempt.finished_at or self._clock()
        record = OutcomeRecord(
            job_id=job.id,
            attempt_id=attempt.id,
            provider_id=attempt.provider_id,
            kind=job.kind,
            outcome=outcome,
            generation_seconds=max(0.0, (finished - attempt.started_at).total_seconds()),
            recorded_at=finished,
            quality_score=job.result.quality_score if outcome is AttemptOutcome.SUCCESS and job.result else None,
            cost=attempt.cost if outcome is AttemptOutcome.SUCCESS else None,
            industry=job.requirements.industry,
            template=job.requirements.template,
            error_code=error_code,
        )
        self._spawn(self._recorder.record(job.id, record))

    # ------------------------------------------------------------------
    # Infrastructure helpers
    # ------------------------------------------------------------------
    async def _persist(self, job: Job) -> bool:
        snapshot = self._snapshot(job)
        try:
            await self._run_sync(self._repository.save, snapshot)
        except RepositoryError:
            self._logger.exception(
                "job.persist_failed",
                extra={"job_id": job.id, "state": job.state.value},
            )
            return False
        return True

    def _evict(self, job_id: str, persisted: bool) -> None:
        """Forget a terminal job; later reads are served by the repository.

        Jobs whose final snapshot could not be saved stay in memory.
        """
        if not persisted:
            return
        self._jobs.pop(job_id, None)
        self._locks.pop(job_id, None)
        self._estimated_costs.pop(job_id, None)
        self._logger.debug("job.evicted", extra={"job_id": job_id})

    async def _load(self, job_id: str) -> Job | None:
        try:
            return await self._run_sync(self._repository.get, job_id)
        except RepositoryError:
            self._logger.exception("job.load_failed", extra={"job_id": job_id})
            return None

    async def _call_with_timeout(self, awaitable: Awaitable[T], *, label: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._request_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                f"Provider operation {label} timed out after"
                f" {self._request_timeout_seconds:.1f}s"
            ) from exc

    async def _cancel_remote(self, provider_id: str, reference: str) -> None:
        try:
            adapter = self._registry.adapter(provider_id)
            await self._call_with_timeout(adapter.cancel(reference), label="cancel")
        except (ProviderError, TimeoutError, NotFoundError) as exc:
            self._logger.info(
                "job.remote_cancel_failed",
                extra={"provider_id": provider_id, "reference": reference, "error": str(exc)},
            )

    def _callback_url(self, provider_id: str) -> str | None:
        if not self._callback_url_template:
            return None
        return self._callback_url_template.format(provider_id=provider_id)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "job.background_task_failed",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @staticmethod
    def _snapshot(job: Job) -> Job:
        return copy.deepcopy(job)


__all__ = ["JobLifecycleManager", "MAX_PROVIDER_SPECIFIC_FALLBACKS"]
