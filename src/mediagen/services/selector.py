"""Provider ranking for generation jobs.

Candidates must pass a hard structural filter (kind, duration, quality
tier, feature set, exclusions). Capable providers whose circuit breaker is
open are then set aside and reported in
:attr:`RankedProviderList.unavailable`, so callers can tell a temporary
outage from a job no provider can run. The remaining providers are
scored on four normalized components in ``[0, 1]``:

* capability match completeness (duration headroom, tier range, push
  callbacks),
* rolling reliability,
* inverse latency relative to the fastest candidate,
* cost fit against the budget ceiling (or against the cheapest candidate).

Component weights depend on the quality preference and speed priority of
the request. Ties are broken by lowest estimated cost, then provider id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from ..domain.models import (
    GenerationRequirements,
    Provider,
    QualityPreference,
    SelectionCriteria,
    SpeedPriority,
)
from ..exceptions import NotFoundError
from ..providers.base import estimate_cost
from ..providers.registry import CapabilityFilter, ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ScoreWeights:
    capability: float
    reliability: float
    latency: float
    cost: float

    def normalized(self) -> "ScoreWeights":
        total = self.capability + self.reliability + self.latency + self.cost
        return ScoreWeights(
            capability=self.capability / total,
            reliability=self.reliability / total,
            latency=self.latency / total,
            cost=self.cost / total,
        )


_PREFERENCE_WEIGHTS = {
    QualityPreference.BALANCED: ScoreWeights(capability=0.25, reliability=0.35, latency=0.20, cost=0.20),
    QualityPreference.QUALITY: ScoreWeights(capability=0.30, reliability=0.45, latency=0.10, cost=0.15),
    QualityPreference.COST: ScoreWeights(capability=0.20, reliability=0.25, latency=0.15, cost=0.40),
}

_SPEED_LATENCY_FACTOR = {
    SpeedPriority.LOW: 0.5,
    SpeedPriority.NORMAL: 1.0,
    SpeedPriority.HIGH: 2.5,
}


def weights_for(criteria: SelectionCriteria) -> ScoreWeights:
    base = _PREFERENCE_WEIGHTS[criteria.quality_preference]
    factor = _SPEED_LATENCY_FACTOR[criteria.speed_priority]
    return ScoreWeights(
        capability=base.capability,
        reliability=base.reliability,
        latency=base.latency * factor,
        cost=base.cost,
    ).normalized()


@dataclass(slots=True, frozen=True)
class RankedProvider:
    provider: Provider
    score: float
    estimated_cost: float
    reasons: tuple[str, ...] = ()

    @property
    def provider_id(self) -> str:
        return self.provider.id


@dataclass(frozen=True)
class RankedProviderList(Sequence[RankedProvider]):
    """Providers ordered best-to-worst for one job."""

    entries: tuple[RankedProvider, ...] = field(default_factory=tuple)
    unavailable: tuple[str, ...] = ()

    def __getitem__(self, index):  # type: ignore[override]
        return self.entries[index]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[RankedProvider]:
        return iter(self.entries)

    @property
    def top(self) -> RankedProvider | None:
        return self.entries[0] if self.entries else None

    def provider_ids(self) -> list[str]:
        return [entry.provider_id for entry in self.entries]


class ProviderSelector:
    """Rank registry providers for a job's requirements and criteria."""

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    def select(
        self,
        requirements: GenerationRequirements,
        criteria: SelectionCriteria | None = None,
    ) -> RankedProviderList:
        criteria = criteria or SelectionCriteria()
        features = frozenset(requirements.features) | frozenset(criteria.required_features)
        capability_filter = CapabilityFilter(
            kind=requirements.kind,
            min_duration_seconds=requirements.duration_seconds,
            quality=requirements.quality,
            features=features,
        )
        capable = [
            provider
            for provider in self._registry.list(capability_filter)
            if provider.id not in criteria.excluded_providers
        ]
        candidates: list[Provider] = []
        unavailable: list[str] = []
        for provider in capable:
            if self._registry.is_available(provider.id):
                candidates.append(provider)
            else:
                unavailable.append(provider.id)
        if not candidates:
            logger.info(
                "selector.no_candidates",
                extra={
                    "kind": requirements.kind.value,
                    "quality": requirements.quality.value,
                    "features": sorted(features),
                    "unavailable": sorted(unavailable),
                },
            )
            return RankedProviderList(unavailable=tuple(sorted(unavailable)))

        weights = weights_for(criteria)
        costs = {provider.id: self._estimate_cost(provider, requirements) for provider in candidates}
        latencies = {provider.id: _expected_latency(provider) for provider in candidates}
        fastest = min(latencies.values())
        cheapest = min(costs.values())

        ranked: list[RankedProvider] = []
        for provider in candidates:
            capability = _capability_completeness(provider, requirements)
            reliability = provider.stats.reliability
            latency = fastest / latencies[provider.id] if latencies[provider.id] > 0 else 1.0
            cost = _cost_fit(costs[provider.id], criteria.budget_ceiling, cheapest)
            score = (
                weights.capability * capability
                + weights.reliability * reliability
                + weights.latency * latency
                + weights.cost * cost
            )
            reasons = [
                f"capability match {capability:.2f}",
                f"reliability {reliability:.2f}",
                f"expected {latencies[provider.id]:.0f}s",
                f"estimated cost {costs[provider.id]:.2f}",
            ]
            if criteria.budget_ceiling is not None and costs[provider.id] > criteria.budget_ceiling:
                reasons.append("over budget")
            ranked.append(
                RankedProvider(
                    provider=provider,
                    score=round(score, 6),
                    estimated_cost=costs[provider.id],
                    reasons=tuple(reasons),
                )
            )

        ranked.sort(key=lambda entry: (-entry.score, entry.estimated_cost, entry.provider_id))
        result = RankedProviderList(tuple(ranked), unavailable=tuple(sorted(unavailable)))
        logger.debug(
            "selector.ranked",
            extra={
                "providers": result.provider_ids(),
                "scores": [entry.score for entry in result],
            },
        )
        return result

    def _estimate_cost(self, provider: Provider, requirements: GenerationRequirements) -> float:
        try:
            adapter = self._registry.adapter(provider.id)
        except NotFoundError:
            return estimate_cost(requirements, provider.base_cost)
        return adapter.estimate_cost(requirements, provider.base_cost)


def _expected_latency(provider: Provider) -> float:
    observed = provider.stats.avg_latency_seconds
    if observed is not None and observed > 0:
        return observed
    return provider.capabilities.expected_seconds


def _capability_completeness(provider: Provider, requirements: GenerationRequirements) -> float:
    caps = provider.capabilities
    headroom = min(1.0, caps.max_duration_seconds / (2 * requirements.duration_seconds))
    tiers_at_or_above = [tier for tier in caps.quality_tiers if tier.rank >= requirements.quality.rank]
    tier_range = min(1.0, len(tiers_at_or_above) / 2)
    callbacks = 1.0 if caps.supports_callbacks else 0.5
    return round((headroom + tier_range + callbacks) / 3, 6)


def _cost_fit(cost: float, budget: float | None, cheapest: float) -> float:
    if budget is not None and budget > 0:
        if cost <= budget:
            return 0.5 + 0.5 * (1.0 - cost / budget)
        return max(0.0, 0.5 * (1.0 - (cost - budget) / budget))
    if cost <= 0:
        return 1.0
    return cheapest / cost


__all__ = [
    "ProviderSelector",
    "RankedProvider",
    "RankedProviderList",
    "ScoreWeights",
    "weights_for",
]
