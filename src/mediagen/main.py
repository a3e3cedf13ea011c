"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI

from .api.errors import ApiError, api_error_handler
from .config import AppConfig
from .dependencies import include_routers
from .lifecycle import run_periodic_stats_flush
from .logging import configure_logging
from .services.container import ServiceContainer, build_services


def create_app(
    config: AppConfig | None = None,
    *,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or (services.config if services is not None else AppConfig.build_default())
    container = services or build_services(cfg)

    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        shutdown_event = asyncio.Event()
        flush_task = asyncio.create_task(
            run_periodic_stats_flush(
                services=container,
                shutdown_event=shutdown_event,
                interval_seconds=cfg.stats_flush_interval_seconds,
            )
        )
        try:
            yield
        finally:
            shutdown_event.set()
            await flush_task
            await container.aclose()

    app = FastAPI(title="mediagen", lifespan=lifespan)
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    include_routers(app, container)
    return app


__all__ = ["create_app"]
