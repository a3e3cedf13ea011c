"""Dependency wiring helpers."""

from fastapi import FastAPI

from .api.routes import analytics_router, jobs_router, providers_router, webhooks_router
from .services.container import ServiceContainer


def include_routers(app: FastAPI, services: ServiceContainer) -> None:
    """Mount module routers and attach services."""
    app.state.config = services.config
    app.state.services = services
    app.state.job_manager = services.manager
    app.state.provider_registry = services.registry
    app.state.quality_recorder = services.recorder

    app.include_router(jobs_router)
    app.include_router(webhooks_router)
    app.include_router(providers_router)
    app.include_router(analytics_router)
