from __future__ import annotations

import pytest

from mediagen.domain.models import (
    DurationClass,
    GenerationRequirements,
    JobKind,
    ProviderStats,
    QualityPreference,
    QualityTier,
    SelectionCriteria,
    SpeedPriority,
)
from mediagen.providers.registry import ProviderRegistry
from mediagen.services.selector import ProviderSelector, weights_for
from tests.mocks.providers import make_provider


def _registry(*providers, stats: dict[str, float] | None = None) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    registry.restore_stats(
        {
            provider_id: ProviderStats(attempts=10, successes=int(value * 10), reliability=value)
            for provider_id, value in (stats or {}).items()
        }
    )
    return registry


def test_hard_filter_drops_incapable_providers():
    registry = _registry(
        make_provider("podcast-only", kinds=(JobKind.PODCAST,)),
        make_provider("too-short", max_duration_seconds=45),
        make_provider("basic-only", quality_tiers=(QualityTier.BASIC,)),
        make_provider("no-subtitles"),
        make_provider("capable", features=("subtitles", "name_card")),
    )
    requirements = GenerationRequirements(
        kind=JobKind.VIDEO,
        duration=DurationClass.MEDIUM,
        quality=QualityTier.STANDARD,
        features=frozenset({"subtitles"}),
    )

    ranked = ProviderSelector(registry).select(requirements)

    assert ranked.provider_ids() == ["capable"]


def test_required_features_from_criteria_are_merged():
    registry = _registry(
        make_provider("plain", features=("subtitles",)),
        make_provider("avatar", features=("subtitles", "custom_avatar")),
    )
    requirements = GenerationRequirements(kind=JobKind.VIDEO, features=frozenset({"subtitles"}))
    criteria = SelectionCriteria(required_features=frozenset({"custom_avatar"}))

    ranked = ProviderSelector(registry).select(requirements, criteria)

    assert ranked.provider_ids() == ["avatar"]


def test_excluded_and_open_circuit_providers_are_skipped():
    registry = _registry(make_provider("a"), make_provider("b"), make_provider("c"))
    circuit = registry.circuit("b")
    for _ in range(circuit.failure_threshold):
        circuit.record_failure()

    ranked = ProviderSelector(registry).select(
        GenerationRequirements(kind=JobKind.VIDEO),
        SelectionCriteria(excluded_providers=frozenset({"a"})),
    )

    assert ranked.provider_ids() == ["c"]
    assert ranked.unavailable == ("b",)


def test_no_candidates_returns_empty_list():
    registry = _registry(make_provider("a", kinds=(JobKind.PODCAST,)))

    ranked = ProviderSelector(registry).select(GenerationRequirements(kind=JobKind.VIDEO))

    assert len(ranked) == 0
    assert ranked.top is None
    assert ranked.provider_ids() == []
    assert ranked.unavailable == ()


def test_capable_providers_behind_open_circuits_are_reported_unavailable():
    registry = _registry(
        make_provider("a"),
        make_provider("b"),
        make_provider("podcast", kinds=(JobKind.PODCAST,)),
    )
    for provider_id in ("a", "b"):
        circuit = registry.circuit(provider_id)
        for _ in range(circuit.failure_threshold):
            circuit.record_failure()

    ranked = ProviderSelector(registry).select(GenerationRequirements(kind=JobKind.VIDEO))

    assert len(ranked) == 0
    assert ranked.unavailable == ("a", "b")


def test_selection_does_not_claim_half_open_trials():
    registry = _registry(make_provider("a"))
    circuit = registry.circuit("a")
    for _ in range(circuit.failure_threshold):
        circuit.record_failure()
    circuit.reset_seconds = 0

    selector = ProviderSelector(registry)
    first = selector.select(GenerationRequirements(kind=JobKind.VIDEO))
    second = selector.select(GenerationRequirements(kind=JobKind.VIDEO))

    assert first.provider_ids() == ["a"]
    assert second.provider_ids() == ["a"]
    assert not circuit.trial_in_flight


def test_reliability_orders_otherwise_equal_providers():
    registry = _registry(
        make_provider("p1"),
        make_provider("p2"),
        make_provider("p3"),
        stats={"p1": 0.80, "p2": 0.95, "p3": 0.90},
    )

    ranked = ProviderSelector(registry).select(GenerationRequirements(kind=JobKind.PODCAST))

    assert ranked.provider_ids() == ["p2", "p3", "p1"]
    scores = [entry.score for entry in ranked]
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= score <= 1.0 for score in scores)


def test_ties_break_on_provider_id():
    registry = _registry(make_provider("zeta"), make_provider("alpha"), make_provider("mid"))

    ranked = ProviderSelector(registry).select(GenerationRequirements(kind=JobKind.VIDEO))

    assert ranked.provider_ids() == ["alpha", "mid", "zeta"]


def test_quality_preference_controls_cost_versus_reliability():
    registry = _registry(
        make_provider("reliable", base_cost=1.0),
        make_provider("cheap", base_cost=0.4),
        stats={"reliable": 0.95, "cheap": 0.60},
    )
    selector = ProviderSelector(registry)
    requirements = GenerationRequirements(kind=JobKind.VIDEO)

    by_quality = selector.select(requirements, SelectionCriteria(quality_preference=QualityPreference.QUALITY))
    by_cost = selector.select(requirements, SelectionCriteria(quality_preference=QualityPreference.COST))

    assert by_quality.provider_ids() == ["reliable", "cheap"]
    assert by_cost.provider_ids() == ["cheap", "reliable"]


def test_high_speed_priority_prefers_faster_provider():
    registry = _registry(
        make_provider("fast", expected_seconds=30),
        make_provider("steady", expected_seconds=120),
        stats={"fast": 0.45, "steady": 0.95},
    )
    selector = ProviderSelector(registry)
    requirements = GenerationRequirements(kind=JobKind.VIDEO)

    normal = selector.select(requirements, SelectionCriteria(speed_priority=SpeedPriority.NORMAL))
    urgent = selector.select(requirements, SelectionCriteria(speed_priority=SpeedPriority.HIGH))

    assert normal.provider_ids() == ["steady", "fast"]
    assert urgent.provider_ids() == ["fast", "steady"]


def test_observed_latency_overrides_declared_expectation():
    registry = _registry(make_provider("declared-fast", expected_seconds=30), make_provider("observed-fast", expected_seconds=300))
    registry.restore_stats(
        {
            "declared-fast": ProviderStats(attempts=5, successes=5, reliability=1.0, avg_latency_seconds=400),
            "observed-fast": ProviderStats(attempts=5, successes=5, reliability=1.0, avg_latency_seconds=20),
        }
    )

    ranked = ProviderSelector(registry).select(GenerationRequirements(kind=JobKind.VIDEO))

    assert ranked.provider_ids()[0] == "observed-fast"


def test_budget_is_a_soft_constraint():
    registry = _registry(
        make_provider("affordable", base_cost=0.5),
        make_provider("expensive", base_cost=2.0),
    )
    criteria = SelectionCriteria(budget_ceiling=1.0)

    ranked = ProviderSelector(registry).select(GenerationRequirements(kind=JobKind.VIDEO), criteria)

    assert ranked.provider_ids() == ["affordable", "expensive"]
    assert "over budget" in ranked[1].reasons
    assert "over budget" not in ranked[0].reasons


def test_estimated_cost_reflects_requirements():
    registry = _registry(make_provider("p1", base_cost=1.0, features=("custom_avatar",)))
    selector = ProviderSelector(registry)

    standard = selector.select(GenerationRequirements(kind=JobKind.VIDEO))
    premium_long = selector.select(
        GenerationRequirements(
            kind=JobKind.VIDEO,
            duration=DurationClass.LONG,
            quality=QualityTier.PREMIUM,
            features=frozenset({"custom_avatar"}),
        )
    )

    assert standard[0].estimated_cost == pytest.approx(1.0)
    assert premium_long[0].estimated_cost == pytest.approx(1.5 * 1.3 * 1.4, rel=1e-3)


def test_weights_are_normalized():
    for preference in QualityPreference:
        for speed in SpeedPriority:
            weights = weights_for(SelectionCriteria(quality_preference=preference, speed_priority=speed))
            total = weights.capability + weights.reliability + weights.latency + weights.cost
            assert total == pytest.approx(1.0)
