"""Repository interfaces for persistence layer implementations."""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Protocol, Sequence

from ..domain.models import Job, OutcomeRecord, ProviderStats


class JobRepository(Protocol):
    """Persistence of job snapshots keyed by job id."""

    def save(self, job: Job) -> None:
        """Insert or replace the stored snapshot of ``job``."""

    def get(self, job_id: str) -> Job | None:
        """Return the stored snapshot or ``None``."""


class OutcomeStore(Protocol):
    """Append-only log of attempt outcomes."""

    def append(self, record: OutcomeRecord) -> None:
        """Persist ``record``; records are never updated afterwards."""

    def list(
        self,
        *,
        provider_id: str | None = None,
        industry: str | None = None,
        template: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Sequence[OutcomeRecord]:
        """Return records matching the filters ordered by ``recorded_at``."""


class ProviderStatsRepository(Protocol):
    """Keyed table of provider aggregate statistics, updated in place."""

    def load_all(self) -> Mapping[str, ProviderStats]:
        """Return the stored snapshot of every provider."""

    def save(self, provider_id: str, stats: ProviderStats) -> None:
        """Upsert the snapshot of one provider.

        A snapshot covering fewer attempts than the stored one is older and
        is ignored, so out-of-order saves never roll statistics back.
        """
