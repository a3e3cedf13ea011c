"""Factory for provider adapters and catalogue entries."""

from ..config import ProviderSettings
from ..domain.models import CostTier, JobKind, Provider, ProviderCapabilities, QualityTier
from .base import ProviderAdapter
from .http import HttpProviderAdapter


def create_adapter(settings: ProviderSettings) -> ProviderAdapter:
    """Instantiate the adapter declared by a catalogue entry."""
    kind = settings.adapter.lower()
    if kind == "http":
        if not settings.base_url:
            raise ValueError(f"provider '{settings.id}' requires base_url for the http adapter")
        return HttpProviderAdapter(
            provider_id=settings.id,
            base_url=settings.base_url,
            api_key=settings.api_key,
            supports_callbacks=settings.supports_callbacks,
            timeout_seconds=settings.request_timeout_seconds,
        )
    raise ValueError(f"Unsupported provider adapter '{settings.adapter}'")


def provider_from_settings(settings: ProviderSettings) -> Provider:
    capabilities = ProviderCapabilities(
        kinds=frozenset(JobKind(kind) for kind in settings.kinds),
        max_duration_seconds=settings.max_duration_seconds,
        quality_tiers=frozenset(QualityTier(tier) for tier in settings.quality_tiers),
        features=frozenset(settings.features),
        supports_callbacks=settings.supports_callbacks,
        expected_seconds=settings.expected_seconds,
    )
    return Provider(
        id=settings.id,
        display_name=settings.display_name or settings.id,
        capabilities=capabilities,
        cost_tier=CostTier(settings.cost_tier),
        base_cost=settings.base_cost,
    )


__all__ = ["create_adapter", "provider_from_settings"]
