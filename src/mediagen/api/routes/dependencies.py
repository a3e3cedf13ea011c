"""Request-scoped accessors for services attached to ``app.state``."""

from __future__ import annotations

from fastapi import Request

from ...config import AppConfig
from ...providers.registry import ProviderRegistry
from ...services.job_manager import JobLifecycleManager
from ...services.recorder import QualityRecorder


def get_app_config(request: Request) -> AppConfig:
    try:
        return request.app.state.config  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("AppConfig is not configured") from exc


def get_job_manager(request: Request) -> JobLifecycleManager:
    """Fetch the job lifecycle manager from application state."""
    try:
        return request.app.state.job_manager  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("JobLifecycleManager is not configured") from exc


def get_provider_registry(request: Request) -> ProviderRegistry:
    try:
        return request.app.state.provider_registry  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("ProviderRegistry is not configured") from exc


def get_quality_recorder(request: Request) -> QualityRecorder:
    try:
        return request.app.state.quality_recorder  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("QualityRecorder is not configured") from exc


__all__ = [
    "get_app_config",
    "get_job_manager",
    "get_provider_registry",
    "get_quality_recorder",
]
