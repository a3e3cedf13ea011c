"""Catalogue of generation providers with rolling outcome statistics.

Provider descriptors are read-only to the rest of the system. The only
cross-job mutable state are the per-provider :class:`ProviderStats`
snapshots; they are replaced as a whole by compare-and-swap under a lock
that belongs to that provider alone, so outcomes recorded for different
providers never contend.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Sequence

from ..config import AppConfig, ProviderSettings
from ..domain.models import (
    AttemptOutcome,
    JobKind,
    OutcomeRecord,
    Provider,
    ProviderStats,
    QualityTier,
)
from ..exceptions import NotFoundError
from .base import ProviderAdapter
from .circuit_breaker import CircuitBreaker
from .factory import create_adapter, provider_from_settings


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CapabilityFilter:
    """Structural filter applied by :meth:`ProviderRegistry.list`."""

    kind: JobKind | None = None
    min_duration_seconds: int | None = None
    quality: QualityTier | None = None
    features: frozenset[str] = field(default_factory=frozenset)

    def matches(self, provider: Provider) -> bool:
        caps = provider.capabilities
        if self.kind is not None and self.kind not in caps.kinds:
            return False
        if self.min_duration_seconds is not None and caps.max_duration_seconds < self.min_duration_seconds:
            return False
        if self.quality is not None and self.quality not in caps.quality_tiers:
            return False
        return self.features <= caps.features


def _ema(previous: float | None, value: float, alpha: float) -> float:
    if previous is None:
        return value
    return alpha * value + (1.0 - alpha) * previous


def apply_outcome(
    stats: ProviderStats,
    record: OutcomeRecord,
    *,
    alpha: float,
    now: datetime,
) -> ProviderStats:
    """Return a new snapshot with ``record`` folded into ``stats``."""

    success = record.outcome is AttemptOutcome.SUCCESS
    attempts = stats.attempts + 1
    successes = stats.successes + (1 if success else 0)
    latency = stats.avg_latency_seconds
    if success:
        latency = _ema(latency, record.generation_seconds, alpha)
    quality = stats.avg_quality_score
    if record.quality_score is not None:
        quality = _ema(quality, record.quality_score, alpha)
    cost = stats.avg_cost
    if record.cost is not None:
        cost = _ema(cost, record.cost, alpha)
    return ProviderStats(
        attempts=attempts,
        successes=successes,
        reliability=successes / attempts,
        avg_latency_seconds=latency,
        avg_quality_score=quality,
        avg_cost=cost,
        updated_at=now,
    )


class ProviderRegistry:
    """In-process registry of providers, their adapters and statistics."""

    def __init__(
        self,
        *,
        ema_alpha: float = 0.2,
        circuit_failure_threshold: int = 5,
        circuit_reset_seconds: float = 60.0,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not 0 < ema_alpha <= 1:
            raise ValueError("ema_alpha must be within (0, 1]")
        self._alpha = ema_alpha
        self._circuit_failure_threshold = circuit_failure_threshold
        self._circuit_reset_seconds = circuit_reset_seconds
        self._clock = clock or _default_clock
        self._logger = logger or logging.getLogger(__name__)
        self._providers: Dict[str, Provider] = {}
        self._adapters: Dict[str, ProviderAdapter] = {}
        self._stats: Dict[str, ProviderStats] = {}
        self._stats_locks: Dict[str, threading.Lock] = {}
        self._circuits: Dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(
        cls,
        entries: Iterable[ProviderSettings],
        config: AppConfig,
        *,
        adapter_factory: Callable[[ProviderSettings], ProviderAdapter] = create_adapter,
    ) -> "ProviderRegistry":
        registry = cls(
            ema_alpha=config.ema_alpha,
            circuit_failure_threshold=config.circuit_failure_threshold,
            circuit_reset_seconds=config.circuit_reset_seconds,
        )
        for entry in entries:
            registry.register(provider_from_settings(entry), adapter_factory(entry))
        return registry

    def register(self, provider: Provider, adapter: ProviderAdapter | None = None) -> None:
        """Add or replace a provider; existing statistics are preserved."""

        self._providers[provider.id] = provider
        self._stats_locks.setdefault(provider.id, threading.Lock())
        self._stats.setdefault(provider.id, provider.stats)
        self._circuits.setdefault(
            provider.id,
            CircuitBreaker(
                failure_threshold=self._circuit_failure_threshold,
                reset_seconds=self._circuit_reset_seconds,
            ),
        )
        if adapter is not None:
            self._adapters[provider.id] = adapter
        self._logger.info("registry.provider.registered", extra={"provider_id": provider.id})

    def unregister(self, provider_id: str) -> None:
        self._providers.pop(provider_id, None)
        self._adapters.pop(provider_id, None)
        self._logger.info("registry.provider.unregistered", extra={"provider_id": provider_id})

    def get(self, provider_id: str) -> Provider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise NotFoundError(f"provider '{provider_id}' not found")
        return replace(provider, stats=self._stats[provider_id])

    def adapter(self, provider_id: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise NotFoundError(f"adapter for provider '{provider_id}' not found")
        return adapter

    def all(self) -> list[Provider]:
        return [self.get(provider_id) for provider_id in sorted(self._providers)]

    def list(self, capability_filter: CapabilityFilter | None = None) -> list[Provider]:
        """Return providers satisfying ``capability_filter``, ordered by id."""

        providers = self.all()
        if capability_filter is None:
            return providers
        return [provider for provider in providers if capability_filter.matches(provider)]

    def stats(self, provider_id: str) -> ProviderStats:
        try:
            return self._stats[provider_id]
        except KeyError:
            raise NotFoundError(f"provider '{provider_id}' not found") from None

    def circuit(self, provider_id: str) -> CircuitBreaker:
        try:
            return self._circuits[provider_id]
        except KeyError:
            raise NotFoundError(f"provider '{provider_id}' not found") from None

    def is_available(self, provider_id: str) -> bool:
        circuit = self._circuits.get(provider_id)
        return provider_id in self._providers and (circuit is None or circuit.accepting)

    def acquire(self, provider_id: str) -> bool:
        """Reserve the provider for one attempt.

        Unlike :meth:`is_available` this claims the half-open trial of a
        recovering circuit.
        """
        circuit = self._circuits.get(provider_id)
        return provider_id in self._providers and (circuit is None or circuit.allows_request())

    def record_outcome(self, provider_id: str, record: OutcomeRecord) -> ProviderStats | None:
        """Fold an attempt outcome into the provider's rolling statistics.

        Unknown providers are logged and ignored. Cancelled attempts say
        nothing about the provider and leave the statistics untouched.
        """

        if provider_id not in self._providers:
            self._logger.warning(
                "registry.outcome.unknown_provider",
                extra={"provider_id": provider_id, "job_id": record.job_id},
            )
            return None
        if record.outcome is AttemptOutcome.CANCELLED:
            return self._stats[provider_id]

        circuit = self._circuits[provider_id]
        if record.outcome is AttemptOutcome.SUCCESS:
            circuit.record_success()
        else:
            circuit.record_failure()

        while True:
            current = self._stats[provider_id]
            updated = apply_outcome(current, record, alpha=self._alpha, now=self._clock())
            if self._compare_and_swap(provider_id, current, updated):
                return updated

    def restore_stats(self, snapshots: Mapping[str, ProviderStats]) -> None:
        """Load persisted statistics for known providers."""

        for provider_id, snapshot in snapshots.items():
            if provider_id in self._providers:
                with self._stats_locks[provider_id]:
                    self._stats[provider_id] = snapshot

    def snapshot_stats(self) -> dict[str, ProviderStats]:
        return {provider_id: self._stats[provider_id] for provider_id in sorted(self._providers)}

    def adapters(self) -> Sequence[ProviderAdapter]:
        return list(self._adapters.values())

    def _compare_and_swap(self, provider_id: str, expected: ProviderStats, new: ProviderStats) -> bool:
        with self._stats_locks[provider_id]:
            if self._stats[provider_id] is not expected:
                return False
            self._stats[provider_id] = new
            return True

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __len__(self) -> int:
        return len(self._providers)


__all__ = ["CapabilityFilter", "ProviderRegistry", "apply_outcome"]
