"""Application configuration for the media generation orchestrator.

Defaults are conservative: the poller gives a provider 1.5x its declared
expected generation time before synthesizing a timeout, and the attempt cap
defaults to the length of the ranked provider list. Secrets (provider API
keys, webhook secrets) are injected via environment variables.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseModel):
    """Catalogue entry describing one external generation provider."""

    id: str = Field(min_length=1)
    display_name: str = ""
    adapter: str = Field(default="http", description="Adapter type used by the factory.")
    base_url: str = ""
    api_key: str = ""
    webhook_secret: str = ""
    kinds: List[str] = Field(default_factory=lambda: ["video"])
    max_duration_seconds: int = Field(default=300, ge=1)
    quality_tiers: List[str] = Field(default_factory=lambda: ["basic", "standard"])
    features: List[str] = Field(default_factory=list)
    supports_callbacks: bool = False
    expected_seconds: float = Field(default=120.0, gt=0)
    cost_tier: str = "medium"
    base_cost: float = Field(default=0.5, ge=0)
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    enabled: bool = True


class AppConfig(BaseSettings):
    """Pydantic settings container for the service layer."""

    model_config = SettingsConfigDict(env_prefix="MEDIAGEN_", env_nested_delimiter="__")

    database_url: str = Field(
        default="sqlite:///mediagen.db",
        description="SQLAlchemy URL for jobs, outcome records and provider stats.",
    )
    max_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Upper bound on attempts per job; defaults to the ranked list length.",
    )
    timeout_multiplier: float = Field(
        default=1.5,
        ge=1.0,
        le=10.0,
        description="Multiplier applied to a provider's expected time before a timeout.",
    )
    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Base delay between status queries for poll-based providers.",
    )
    poll_jitter_ratio: float = Field(
        default=0.2,
        ge=0.0,
        lt=1.0,
        description="Relative jitter applied to each polling interval.",
    )
    poll_max_consecutive_errors: int = Field(
        default=3,
        ge=1,
        description="Transient status query errors tolerated before the attempt fails.",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout applied to provider submit/query/cancel calls.",
    )
    ema_alpha: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Smoothing factor for latency, quality and cost moving averages.",
    )
    circuit_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive provider failures that open its circuit breaker.",
    )
    circuit_reset_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Time an open circuit stays open before a half-open trial.",
    )
    webhook_timestamp_tolerance_seconds: int = Field(
        default=300,
        ge=0,
        description="Allowed clock skew for signed provider callbacks.",
    )
    quality_threshold: float = Field(
        default=8.0,
        ge=0.0,
        le=10.0,
        description="Quality score below which analytics flag an artifact.",
    )
    callback_url_template: str | None = Field(
        default=None,
        description="Public callback URL handed to providers, formatted with {provider_id}.",
    )
    stats_flush_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval of the background provider statistics flush.",
    )
    providers_file: Path | None = Field(
        default=None,
        description="Optional JSON file with a list of provider catalogue entries.",
    )
    providers: List[ProviderSettings] = Field(default_factory=list)

    def provider_catalogue(self) -> list[ProviderSettings]:
        """Return configured providers, reading ``providers_file`` when set."""

        entries = list(self.providers)
        if self.providers_file is not None:
            entries.extend(load_provider_file(self.providers_file))
        return [entry for entry in entries if entry.enabled]

    def webhook_secrets(self) -> Dict[str, str]:
        return {
            entry.id: entry.webhook_secret
            for entry in self.provider_catalogue()
            if entry.webhook_secret
        }

    @classmethod
    def build_default(cls) -> "AppConfig":
        """Construct configuration from the environment."""

        return cls()


def load_provider_file(path: Path) -> list[ProviderSettings]:
    """Parse a JSON catalogue file (a list of provider objects)."""

    raw: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"provider catalogue {path} must contain a JSON list")
    return [ProviderSettings.model_validate(item) for item in raw]


__all__ = ["AppConfig", "ProviderSettings", "load_provider_file"]
