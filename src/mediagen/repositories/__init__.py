"""Persistence of jobs, outcome records and provider statistics."""

from .interfaces import JobRepository, OutcomeStore, ProviderStatsRepository
from .job_repository import InMemoryJobRepository, SqlAlchemyJobRepository
from .outcome_repository import InMemoryOutcomeStore, SqlOutcomeStore
from .provider_stats_repository import (
    InMemoryProviderStatsRepository,
    SqlAlchemyProviderStatsRepository,
)

__all__ = [
    "InMemoryJobRepository",
    "InMemoryOutcomeStore",
    "InMemoryProviderStatsRepository",
    "JobRepository",
    "OutcomeStore",
    "ProviderStatsRepository",
    "SqlAlchemyJobRepository",
    "SqlAlchemyProviderStatsRepository",
    "SqlOutcomeStore",
]
