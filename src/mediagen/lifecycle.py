"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
import logging

from .exceptions import RepositoryError
from .services.container import ServiceContainer


logger = logging.getLogger(__name__)


async def flush_provider_stats_once(services: ServiceContainer) -> int:
    """Persist every provider's statistics snapshot; returns rows written."""

    return await asyncio.to_thread(services.flush_provider_stats)


async def run_periodic_stats_flush(
    *,
    services: ServiceContainer,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 60.0,
) -> None:
    """Flush provider statistics until ``shutdown_event`` is signalled."""

    interval = max(1.0, float(interval_seconds))
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        try:
            flushed = await flush_provider_stats_once(services)
        except RepositoryError:
            logger.exception("lifecycle.stats_flush.failed")
        else:
            logger.debug("lifecycle.stats_flush.completed", extra={"providers": flushed})


__all__ = [
    "flush_provider_stats_once",
    "run_periodic_stats_flush",
]
