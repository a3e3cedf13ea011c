"""Provider adapters, registry and circuit breakers."""

from .base import JobSpec, ProviderAdapter, ProviderJobStatus, ProviderStatus, estimate_cost
from .circuit_breaker import CircuitBreaker, CircuitState
from .errors import FailureClass, ProviderError, ProviderErrorKind
from .factory import create_adapter, provider_from_settings
from .http import HttpProviderAdapter
from .registry import CapabilityFilter, ProviderRegistry

__all__ = [
    "CapabilityFilter",
    "CircuitBreaker",
    "CircuitState",
    "FailureClass",
    "HttpProviderAdapter",
    "JobSpec",
    "ProviderAdapter",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderJobStatus",
    "ProviderRegistry",
    "ProviderStatus",
    "create_adapter",
    "estimate_cost",
    "provider_from_settings",
]
