"""Outcome recording and analytics aggregation.

Recording is fire-and-forget relative to the job: storage or statistics
failures are logged and never propagate to the lifecycle manager.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Sequence

from ..domain.models import AttemptOutcome, OutcomeRecord
from ..providers.registry import ProviderRegistry
from ..repositories.interfaces import OutcomeStore, ProviderStatsRepository


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_QUALITY_THRESHOLD = 8.0
UNSPECIFIED = "unspecified"


class ReportWindow(str, Enum):
    HOUR = "1h"
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def span(self) -> timedelta:
        return _WINDOW_SPANS[self]

    @property
    def bucket(self) -> timedelta:
        return _WINDOW_BUCKETS[self]


_WINDOW_SPANS = {
    ReportWindow.HOUR: timedelta(hours=1),
    ReportWindow.DAY: timedelta(hours=24),
    ReportWindow.WEEK: timedelta(days=7),
    ReportWindow.MONTH: timedelta(days=30),
}

_WINDOW_BUCKETS = {
    ReportWindow.HOUR: timedelta(minutes=5),
    ReportWindow.DAY: timedelta(hours=1),
    ReportWindow.WEEK: timedelta(days=1),
    ReportWindow.MONTH: timedelta(days=1),
}


@dataclass(slots=True)
class ReportFilter:
    provider_id: str | None = None
    industry: str | None = None
    template: str | None = None
    window: ReportWindow | None = None


@dataclass(slots=True)
class GroupStats:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    success_rate: float = 0.0
    avg_generation_seconds: float | None = None
    avg_quality_score: float | None = None
    below_quality_threshold: int = 0
    total_cost: float = 0.0


@dataclass(slots=True)
class TimeBucket:
    start: datetime
    stats: GroupStats


@dataclass(slots=True)
class AnalyticsReport:
    generated_at: datetime
    window: ReportWindow | None
    since: datetime | None
    summary: GroupStats
    by_provider: dict[str, GroupStats] = field(default_factory=dict)
    by_industry: dict[str, GroupStats] = field(default_factory=dict)
    by_template: dict[str, GroupStats] = field(default_factory=dict)
    timeline: list[TimeBucket] = field(default_factory=list)


def aggregate(records: Iterable[OutcomeRecord], *, quality_threshold: float) -> GroupStats:
    """Summarize ``records``; average generation time uses successes only."""

    stats = GroupStats()
    durations: list[float] = []
    scores: list[float] = []
    for record in records:
        stats.attempts += 1
        if record.outcome is AttemptOutcome.SUCCESS:
            stats.successes += 1
            durations.append(record.generation_seconds)
        elif record.outcome is AttemptOutcome.TIMEOUT:
            stats.timeouts += 1
        else:
            stats.failures += 1
        if record.quality_score is not None:
            scores.append(record.quality_score)
            if record.quality_score < quality_threshold:
                stats.below_quality_threshold += 1
        if record.cost is not None:
            stats.total_cost += record.cost
    if stats.attempts:
        stats.success_rate = round(stats.successes / stats.attempts, 4)
    if durations:
        stats.avg_generation_seconds = round(sum(durations) / len(durations), 3)
    if scores:
        stats.avg_quality_score = round(sum(scores) / len(scores), 3)
    stats.total_cost = round(stats.total_cost, 4)
    return stats


def _group(
    records: Sequence[OutcomeRecord],
    key: Callable[[OutcomeRecord], str],
    *,
    quality_threshold: float,
) -> dict[str, GroupStats]:
    groups: dict[str, list[OutcomeRecord]] = defaultdict(list)
    for record in records:
        groups[key(record)].append(record)
    return {
        name: aggregate(items, quality_threshold=quality_threshold)
        for name, items in sorted(groups.items())
    }


class QualityRecorder:
    """Append outcome records and feed provider statistics."""

    def __init__(
        self,
        store: OutcomeStore,
        registry: ProviderRegistry,
        *,
        stats_repository: ProviderStatsRepository | None = None,
        quality_threshold: float = DEFAULT_QUALITY_THRESHOLD,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._stats_repository = stats_repository
        self._quality_threshold = quality_threshold
        self._clock = clock or _default_clock
        self._logger = logger or logging.getLogger(__name__)

    async def record(self, job_id: str, record: OutcomeRecord) -> bool:
        """Store ``record`` and update provider statistics; never raises."""

        if record.job_id != job_id:
            self._logger.warning(
                "recorder.job_mismatch",
                extra={"job_id": job_id, "record_job_id": record.job_id},
            )
            return False
        try:
            await asyncio.to_thread(self._store.append, record)
        except Exception:
            self._logger.exception(
                "recorder.append_failed",
                extra={"job_id": job_id, "provider_id": record.provider_id},
            )
            return False

        try:
            stats = self._registry.record_outcome(record.provider_id, record)
        except Exception:
            self._logger.exception(
                "recorder.stats_update_failed",
                extra={"job_id": job_id, "provider_id": record.provider_id},
            )
            return True
        if stats is not None and self._stats_repository is not None:
            try:
                await asyncio.to_thread(self._stats_repository.save, record.provider_id, stats)
            except Exception:
                self._logger.warning(
                    "recorder.stats_persist_failed",
                    exc_info=True,
                    extra={"provider_id": record.provider_id},
                )
        self._logger.info(
            "recorder.outcome_recorded",
            extra={
                "job_id": job_id,
                "provider_id": record.provider_id,
                "outcome": record.outcome.value,
                "generation_seconds": record.generation_seconds,
            },
        )
        return True

    def report(self, report_filter: ReportFilter | None = None, *, now: datetime | None = None) -> AnalyticsReport:
        """Aggregate stored outcomes by provider, industry, template and time."""

        report_filter = report_filter or ReportFilter()
        current = now or self._clock()
        since = current - report_filter.window.span if report_filter.window else None
        records = list(
            self._store.list(
                provider_id=report_filter.provider_id,
                industry=report_filter.industry,
                template=report_filter.template,
                since=since,
            )
        )
        threshold = self._quality_threshold
        return AnalyticsReport(
            generated_at=current,
            window=report_filter.window,
            since=since,
            summary=aggregate(records, quality_threshold=threshold),
            by_provider=_group(records, lambda r: r.provider_id, quality_threshold=threshold),
            by_industry=_group(records, lambda r: r.industry or UNSPECIFIED, quality_threshold=threshold),
            by_template=_group(records, lambda r: r.template or UNSPECIFIED, quality_threshold=threshold),
            timeline=self._timeline(records, report_filter.window, since),
        )

    def _timeline(
        self,
        records: Sequence[OutcomeRecord],
        window: ReportWindow | None,
        since: datetime | None,
    ) -> list[TimeBucket]:
        if window is None or since is None or not records:
            return []
        width = window.bucket
        buckets: dict[int, list[OutcomeRecord]] = defaultdict(list)
        for record in records:
            index = int((record.recorded_at - since) / width)
            buckets[index].append(record)
        return [
            TimeBucket(
                start=since + width * index,
                stats=aggregate(items, quality_threshold=self._quality_threshold),
            )
            for index, items in sorted(buckets.items())
        ]


__all__ = [
    "AnalyticsReport",
    "GroupStats",
    "QualityRecorder",
    "ReportFilter",
    "ReportWindow",
    "TimeBucket",
    "aggregate",
]
