"""Database models and session helpers."""

from .db_init import init_db
from .db_models import Base, JobModel, OutcomeRecordModel, ProviderStatsModel
from .db_session import create_engine_for_url, create_session_factory

__all__ = [
    "Base",
    "JobModel",
    "OutcomeRecordModel",
    "ProviderStatsModel",
    "create_engine_for_url",
    "create_session_factory",
    "init_db",
]
