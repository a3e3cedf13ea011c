"""Inbound provider callbacks (push status updates)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from pydantic import ValidationError

from ...config import AppConfig
from ...exceptions import SignatureVerificationError
from ...providers.errors import ProviderError
from ...providers.registry import ProviderRegistry
from ...security.signatures import SIGNATURE_HEADER, verify_signature
from ...services.job_manager import JobLifecycleManager
from ..errors import invalid_request_error, not_found_error, unauthorized_error
from ..schemas import CallbackAcceptedResponse, CallbackPayload
from .dependencies import get_app_config, get_job_manager, get_provider_registry

router = APIRouter(prefix="/api/providers", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post(
    "/{provider_id}/callbacks",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CallbackAcceptedResponse,
)
async def provider_callback(
    provider_id: str,
    request: Request,
    config: AppConfig = Depends(get_app_config),
    registry: ProviderRegistry = Depends(get_provider_registry),
    manager: JobLifecycleManager = Depends(get_job_manager),
) -> CallbackAcceptedResponse:
    """Verify and forward a provider status push.

    Callbacks for attempts that are finished or superseded are acknowledged
    with ``accepted=false`` so providers stop retrying them.
    """
    if provider_id not in registry:
        raise not_found_error(f"Provider '{provider_id}' not found")

    body = await request.body()
    try:
        payload = CallbackPayload.model_validate_json(body)
    except ValidationError:
        logger.warning("webhook.payload.invalid", extra={"provider_id": provider_id})
        raise invalid_request_error("Callback payload is malformed") from None

    secret = config.webhook_secrets().get(provider_id)
    if secret:
        try:
            verify_signature(
                body,
                request.headers.get(SIGNATURE_HEADER),
                secret,
                timestamp=payload.timestamp,
                tolerance_seconds=config.webhook_timestamp_tolerance_seconds,
            )
        except SignatureVerificationError as exc:
            logger.warning(
                "webhook.signature.rejected",
                extra={"provider_id": provider_id, "reason": str(exc)},
            )
            raise unauthorized_error(str(exc)) from None

    try:
        accepted = await manager.poller.on_callback(
            provider_id,
            payload.external_job_ref,
            payload.model_dump(exclude_none=True),
        )
    except ProviderError as exc:
        logger.warning(
            "webhook.payload.rejected",
            extra={"provider_id": provider_id, "error_kind": exc.kind.value},
        )
        raise invalid_request_error(str(exc)) from None
    return CallbackAcceptedResponse(accepted=accepted)
