from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from mediagen.config import AppConfig, ProviderSettings, load_provider_file


def test_defaults_are_conservative():
    config = AppConfig()

    assert config.timeout_multiplier == 1.5
    assert config.max_attempts is None
    assert config.quality_threshold == 8.0
    assert config.webhook_timestamp_tolerance_seconds == 300
    assert config.provider_catalogue() == []


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MEDIAGEN_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("MEDIAGEN_POLL_INTERVAL_SECONDS", "1.5")
    monkeypatch.setenv("MEDIAGEN_DATABASE_URL", "sqlite:///:memory:")

    config = AppConfig.build_default()

    assert config.max_attempts == 2
    assert config.poll_interval_seconds == 1.5
    assert config.database_url == "sqlite:///:memory:"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        AppConfig(timeout_multiplier=0.5)
    with pytest.raises(ValidationError):
        AppConfig(poll_jitter_ratio=1.0)
    with pytest.raises(ValidationError):
        ProviderSettings(id="")


def test_catalogue_file_is_merged_and_disabled_entries_skipped(tmp_path):
    path = tmp_path / "providers.json"
    path.write_text(
        json.dumps(
            [
                {"id": "studio", "base_url": "https://studio.test", "webhook_secret": "s1"},
                {"id": "retired", "base_url": "https://old.test", "enabled": False},
            ]
        ),
        encoding="utf-8",
    )
    config = AppConfig(
        providers=[ProviderSettings(id="inline", base_url="https://inline.test")],
        providers_file=path,
    )

    assert [entry.id for entry in config.provider_catalogue()] == ["inline", "studio"]
    assert config.webhook_secrets() == {"studio": "s1"}


def test_catalogue_file_must_be_a_list(tmp_path):
    path = tmp_path / "providers.json"
    path.write_text(json.dumps({"id": "studio"}), encoding="utf-8")

    with pytest.raises(ValueError):
        load_provider_file(path)
