"""Pydantic request/response models for the public HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain.models import (
    DurationClass,
    GenerationRequirements,
    Job,
    JobKind,
    JobState,
    Provider,
    QualityPreference,
    QualityTier,
    SelectionCriteria,
    SpeedPriority,
)
from ..providers.circuit_breaker import CircuitState
from ..services.recorder import AnalyticsReport, ReportWindow


class CriteriaSchema(BaseModel):
    """Optional ranking preferences supplied with a job."""

    model_config = ConfigDict(extra="forbid")

    required_features: List[str] = Field(default_factory=list)
    quality_preference: QualityPreference = QualityPreference.BALANCED
    speed_priority: SpeedPriority = SpeedPriority.NORMAL
    budget_ceiling: Optional[float] = Field(default=None, gt=0)
    excluded_providers: List[str] = Field(default_factory=list)

    def to_domain(self) -> SelectionCriteria:
        return SelectionCriteria(
            required_features=frozenset(self.required_features),
            quality_preference=self.quality_preference,
            speed_priority=self.speed_priority,
            budget_ceiling=self.budget_ceiling,
            excluded_providers=frozenset(self.excluded_providers),
        )


class JobSubmitRequest(BaseModel):
    """Body of ``POST /api/jobs``."""

    model_config = ConfigDict(extra="forbid")

    kind: JobKind
    duration: DurationClass = DurationClass.MEDIUM
    quality: QualityTier = QualityTier.STANDARD
    style: str = Field(default="professional", min_length=1, max_length=64)
    industry: Optional[str] = Field(default=None, max_length=64)
    template: Optional[str] = Field(default=None, max_length=64)
    features: List[str] = Field(default_factory=list)
    script: Optional[str] = Field(default=None, max_length=20000)
    options: Dict[str, Any] = Field(default_factory=dict)
    criteria: Optional[CriteriaSchema] = None

    def to_requirements(self) -> GenerationRequirements:
        return GenerationRequirements(
            kind=self.kind,
            duration=self.duration,
            quality=self.quality,
            style=self.style,
            industry=self.industry,
            template=self.template,
            features=frozenset(self.features),
            script=self.script,
            options=dict(self.options),
        )

    def to_criteria(self) -> SelectionCriteria:
        return self.criteria.to_domain() if self.criteria else SelectionCriteria()


class JobSubmitResponse(BaseModel):
    job_id: str
    state: JobState


class JobResultSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    artifact_url: str
    duration_seconds: Optional[float] = None
    transcript: Optional[str] = None
    thumbnail_url: Optional[str] = None
    quality_score: Optional[float] = None


class JobErrorSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    retryable: bool
    cause: Optional[str] = None


class JobStatusResponse(BaseModel):
    """Client-facing snapshot of a job; attempts are summarized, not exposed."""

    job_id: str
    kind: JobKind
    state: JobState
    progress: int
    selected_provider_id: Optional[str] = None
    attempt_count: int
    result: Optional[JobResultSchema] = None
    error: Optional[JobErrorSchema] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        error = None
        if job.error is not None:
            error = JobErrorSchema(
                code=job.error.code.value,
                message=job.error.message,
                retryable=job.error.retryable,
                cause=job.error.cause.value if job.error.cause else None,
            )
        return cls(
            job_id=job.id,
            kind=job.kind,
            state=job.state,
            progress=job.progress,
            selected_provider_id=job.selected_provider_id,
            attempt_count=job.attempt_count,
            result=JobResultSchema.model_validate(job.result) if job.result else None,
            error=error,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
        )


class CallbackPayload(BaseModel):
    """Provider push notification; unknown keys are kept for the adapter."""

    model_config = ConfigDict(extra="allow")

    external_job_ref: str = Field(min_length=1)
    status: str = Field(min_length=1)
    progress: Optional[float] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Any] = None
    timestamp: Optional[float] = None


class CallbackAcceptedResponse(BaseModel):
    accepted: bool


class ProviderStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempts: int
    successes: int
    reliability: float
    avg_latency_seconds: Optional[float] = None
    avg_quality_score: Optional[float] = None
    avg_cost: Optional[float] = None
    updated_at: Optional[datetime] = None


class ProviderSchema(BaseModel):
    id: str
    display_name: str
    kinds: List[JobKind]
    max_duration_seconds: int
    quality_tiers: List[QualityTier]
    features: List[str]
    supports_callbacks: bool
    expected_seconds: float
    cost_tier: str
    base_cost: float
    circuit_state: CircuitState
    stats: ProviderStatsSchema

    @classmethod
    def from_provider(cls, provider: Provider, circuit_state: CircuitState) -> "ProviderSchema":
        caps = provider.capabilities
        return cls(
            id=provider.id,
            display_name=provider.display_name,
            kinds=sorted(caps.kinds, key=lambda kind: kind.value),
            max_duration_seconds=caps.max_duration_seconds,
            quality_tiers=sorted(caps.quality_tiers, key=lambda tier: tier.rank),
            features=sorted(caps.features),
            supports_callbacks=caps.supports_callbacks,
            expected_seconds=caps.expected_seconds,
            cost_tier=provider.cost_tier.value,
            base_cost=provider.base_cost,
            circuit_state=circuit_state,
            stats=ProviderStatsSchema.model_validate(provider.stats),
        )


class GroupStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempts: int
    successes: int
    failures: int
    timeouts: int
    success_rate: float
    avg_generation_seconds: Optional[float] = None
    avg_quality_score: Optional[float] = None
    below_quality_threshold: int
    total_cost: float


class TimeBucketSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    stats: GroupStatsSchema


class AnalyticsReportSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    generated_at: datetime
    window: Optional[ReportWindow] = None
    since: Optional[datetime] = None
    summary: GroupStatsSchema
    by_provider: Dict[str, GroupStatsSchema]
    by_industry: Dict[str, GroupStatsSchema]
    by_template: Dict[str, GroupStatsSchema]
    timeline: List[TimeBucketSchema]

    @classmethod
    def from_report(cls, report: AnalyticsReport) -> "AnalyticsReportSchema":
        return cls.model_validate(report)


__all__ = [
    "AnalyticsReportSchema",
    "CallbackAcceptedResponse",
    "CallbackPayload",
    "CriteriaSchema",
    "JobStatusResponse",
    "JobSubmitRequest",
    "JobSubmitResponse",
    "ProviderSchema",
]
