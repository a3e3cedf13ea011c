"""Service composition helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import AppConfig
from ..db.db_init import init_db
from ..db.db_session import create_engine_for_url, create_session_factory
from ..providers.registry import ProviderRegistry
from ..repositories.interfaces import JobRepository, OutcomeStore, ProviderStatsRepository
from ..repositories.job_repository import SqlAlchemyJobRepository
from ..repositories.outcome_repository import SqlOutcomeStore
from ..repositories.provider_stats_repository import SqlAlchemyProviderStatsRepository
from .job_manager import JobLifecycleManager
from .notifier import JobNotifier
from .recorder import QualityRecorder
from .selector import ProviderSelector

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Everything the HTTP layer and background tasks need."""

    config: AppConfig
    registry: ProviderRegistry
    selector: ProviderSelector
    recorder: QualityRecorder
    notifier: JobNotifier
    manager: JobLifecycleManager
    job_repository: JobRepository
    outcome_store: OutcomeStore
    stats_repository: ProviderStatsRepository
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None

    def flush_provider_stats(self) -> int:
        """Persist every provider's statistics snapshot; returns rows written."""

        snapshots = self.registry.snapshot_stats()
        for provider_id, stats in snapshots.items():
            self.stats_repository.save(provider_id, stats)
        return len(snapshots)

    async def aclose(self) -> None:
        await self.manager.shutdown()
        for adapter in self.registry.adapters():
            await adapter.aclose()
        if self.engine is not None:
            self.engine.dispose()


def build_services(
    config: AppConfig,
    *,
    registry: ProviderRegistry | None = None,
    job_repository: JobRepository | None = None,
    outcome_store: OutcomeStore | None = None,
    stats_repository: ProviderStatsRepository | None = None,
) -> ServiceContainer:
    """Wire repositories, registry and services from ``config``.

    Explicit collaborators override the SQLAlchemy defaults; the database is
    only touched when at least one default repository is needed.
    """

    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None
    if job_repository is None or outcome_store is None or stats_repository is None:
        engine = create_engine_for_url(config.database_url)
        init_db(engine)
        session_factory = create_session_factory(engine)
        job_repository = job_repository or SqlAlchemyJobRepository(session_factory)
        outcome_store = outcome_store or SqlOutcomeStore(session_factory)
        stats_repository = stats_repository or SqlAlchemyProviderStatsRepository(session_factory)

    if registry is None:
        registry = ProviderRegistry.from_settings(config.provider_catalogue(), config)
    registry.restore_stats(stats_repository.load_all())
    logger.info("services.registry.loaded", extra={"providers": len(registry)})

    selector = ProviderSelector(registry)
    recorder = QualityRecorder(
        outcome_store,
        registry,
        stats_repository=stats_repository,
        quality_threshold=config.quality_threshold,
    )
    notifier = JobNotifier()
    manager = JobLifecycleManager(
        registry=registry,
        selector=selector,
        repository=job_repository,
        recorder=recorder,
        notifier=notifier,
        max_attempts=config.max_attempts,
        request_timeout_seconds=config.request_timeout_seconds,
        poll_interval_seconds=config.poll_interval_seconds,
        poll_jitter_ratio=config.poll_jitter_ratio,
        poll_max_consecutive_errors=config.poll_max_consecutive_errors,
        timeout_multiplier=config.timeout_multiplier,
        callback_url_template=config.callback_url_template,
    )
    return ServiceContainer(
        config=config,
        registry=registry,
        selector=selector,
        recorder=recorder,
        notifier=notifier,
        manager=manager,
        job_repository=job_repository,
        outcome_store=outcome_store,
        stats_repository=stats_repository,
        engine=engine,
        session_factory=session_factory,
    )


__all__ = ["ServiceContainer", "build_services"]
