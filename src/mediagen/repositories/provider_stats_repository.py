"""Persistence of provider aggregate statistics."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import timezone
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import ProviderStatsModel
from ..domain.models import ProviderStats
from ..exceptions import handle_sqlalchemy_errors


class InMemoryProviderStatsRepository:
    def __init__(self) -> None:
        self._rows: dict[str, ProviderStats] = {}
        self._lock = threading.Lock()

    def load_all(self) -> Mapping[str, ProviderStats]:
        with self._lock:
            return dict(self._rows)

    def save(self, provider_id: str, stats: ProviderStats) -> None:
        with self._lock:
            current = self._rows.get(provider_id)
            if current is not None and current.attempts > stats.attempts:
                return
            self._rows[provider_id] = stats


class SqlAlchemyProviderStatsRepository:
    """Manage rows of the ``provider_stats`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def load_all(self) -> Mapping[str, ProviderStats]:
        with handle_sqlalchemy_errors(entity="provider_stats"):
            with self._session_factory() as session:
                models = session.scalars(select(ProviderStatsModel)).all()
                return {model.provider_id: _to_stats(model) for model in models}

    def save(self, provider_id: str, stats: ProviderStats) -> None:
        with handle_sqlalchemy_errors(entity="provider_stats"):
            with self._session_factory() as session:
                model = session.get(ProviderStatsModel, provider_id)
                if model is None:
                    model = ProviderStatsModel(provider_id=provider_id)
                    session.add(model)
                elif model.attempts > stats.attempts:
                    return
                model.attempts = stats.attempts
                model.successes = stats.successes
                model.reliability = stats.reliability
                model.avg_latency_seconds = stats.avg_latency_seconds
                model.avg_quality_score = stats.avg_quality_score
                model.avg_cost = stats.avg_cost
                model.updated_at = stats.updated_at
                session.commit()


def _to_stats(model: ProviderStatsModel) -> ProviderStats:
    updated_at = model.updated_at
    if updated_at is not None and updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return ProviderStats(
        attempts=model.attempts,
        successes=model.successes,
        reliability=model.reliability,
        avg_latency_seconds=model.avg_latency_seconds,
        avg_quality_score=model.avg_quality_score,
        avg_cost=model.avg_cost,
        updated_at=updated_at,
    )


__all__ = ["InMemoryProviderStatsRepository", "SqlAlchemyProviderStatsRepository"]
