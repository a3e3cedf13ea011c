"""Analytics report endpoint."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...services.recorder import QualityRecorder, ReportFilter, ReportWindow
from ..schemas import AnalyticsReportSchema
from .dependencies import get_quality_recorder

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/report", response_model=AnalyticsReportSchema)
def analytics_report(
    provider_id: Optional[str] = Query(None),
    industry: Optional[str] = Query(None),
    template: Optional[str] = Query(None),
    window: Optional[ReportWindow] = Query(None),
    recorder: QualityRecorder = Depends(get_quality_recorder),
) -> AnalyticsReportSchema:
    """Aggregate recorded outcomes, optionally filtered and windowed."""
    report = recorder.report(
        ReportFilter(
            provider_id=provider_id,
            industry=industry,
            template=template,
            window=window,
        )
    )
    return AnalyticsReportSchema.from_report(report)
