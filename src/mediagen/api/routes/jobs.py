"""Job submission, status and cancellation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from ...exceptions import NotFoundError
from ...services.job_manager import JobLifecycleManager
from ..errors import not_found_error
from ..schemas import JobStatusResponse, JobSubmitRequest, JobSubmitResponse
from .dependencies import get_job_manager

router = APIRouter(prefix="/api/jobs", tags=["jobs"])
logger = logging.getLogger(__name__)


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=JobSubmitResponse)
async def submit_job(
    payload: JobSubmitRequest,
    manager: JobLifecycleManager = Depends(get_job_manager),
) -> JobSubmitResponse:
    """Accept a generation job; the provider call happens in the background."""
    job_id = await manager.submit(payload.kind, payload.to_requirements(), payload.to_criteria())
    job = await manager.get_status(job_id)
    logger.info(
        "api.jobs.submitted",
        extra={"job_id": job_id, "kind": payload.kind.value, "state": job.state.value},
    )
    return JobSubmitResponse(job_id=job_id, state=job.state)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job(
    job_id: str,
    manager: JobLifecycleManager = Depends(get_job_manager),
) -> JobStatusResponse:
    try:
        job = await manager.get_status(job_id)
    except NotFoundError:
        raise not_found_error(f"Job '{job_id}' not found") from None
    return JobStatusResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(
    job_id: str,
    manager: JobLifecycleManager = Depends(get_job_manager),
) -> JobStatusResponse:
    """Cancel a job; cancelling a finished job returns it unchanged."""
    try:
        job = await manager.cancel(job_id)
    except NotFoundError:
        raise not_found_error(f"Job '{job_id}' not found") from None
    return JobStatusResponse.from_job(job)
