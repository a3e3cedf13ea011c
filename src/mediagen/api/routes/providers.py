"""Read-only provider catalogue endpoint."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ...providers.registry import ProviderRegistry
from ..schemas import ProviderSchema
from .dependencies import get_provider_registry

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("", response_model=List[ProviderSchema])
def list_providers(
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> List[ProviderSchema]:
    return [
        ProviderSchema.from_provider(provider, registry.circuit(provider.id).state)
        for provider in registry.all()
    ]
