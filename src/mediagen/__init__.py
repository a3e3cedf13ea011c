"""Asynchronous multi-provider media generation orchestrator."""

from .config import AppConfig, ProviderSettings

__all__ = ["AppConfig", "ProviderSettings"]
