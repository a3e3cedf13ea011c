"""Domain models for the media generation orchestrator.

Jobs, providers and outcome records are plain dataclasses; persistence and
API layers translate them to their own representations. Only the
:class:`~mediagen.services.job_manager.JobLifecycleManager` mutates
``Job.state`` (see :mod:`mediagen.domain.transitions`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class JobKind(str, Enum):
    """Kind of media artifact requested by the client."""

    PODCAST = "podcast"
    VIDEO = "video"


class JobState(str, Enum):
    """Generation job lifecycle states.

    ``queued`` is the initial state; ``completed``, ``failed`` and
    ``cancelled`` are terminal.
    """

    QUEUED = "queued"
    PROVIDER_SELECTED = "provider-selected"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


class DurationClass(str, Enum):
    """Requested length of the artifact."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    def target_seconds(self, kind: JobKind) -> int:
        """Return the target duration in seconds for ``kind``."""

        return _DURATION_SECONDS[kind][self]


_DURATION_SECONDS: Mapping[JobKind, Mapping[DurationClass, int]] = {
    JobKind.VIDEO: {
        DurationClass.SHORT: 30,
        DurationClass.MEDIUM: 60,
        DurationClass.LONG: 90,
    },
    JobKind.PODCAST: {
        DurationClass.SHORT: 180,
        DurationClass.MEDIUM: 300,
        DurationClass.LONG: 600,
    },
}


class QualityTier(str, Enum):
    """Ordered quality tiers supported by providers."""

    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]


_QUALITY_RANK = {QualityTier.BASIC: 0, QualityTier.STANDARD: 1, QualityTier.PREMIUM: 2}


class QualityPreference(str, Enum):
    BALANCED = "balanced"
    QUALITY = "quality"
    COST = "cost"


class SpeedPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class CostTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AttemptOutcome(str, Enum):
    """Result of a single provider attempt."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class FailureCode(str, Enum):
    """Normalized failure reasons exposed to clients."""

    NO_CAPABLE_PROVIDER = "no_capable_provider"
    PROVIDER_TIMEOUT = "provider_timeout"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INVALID_PARAMETERS = "invalid_parameters"
    UNSUPPORTED_FEATURE = "unsupported_feature"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    AUTHENTICATION = "authentication"
    NETWORK_ERROR = "network_error"
    INTERNAL_ERROR = "internal_error"


class FailureCause(str, Enum):
    """Why a failed job could not be completed."""

    SELECTION = "selection"
    EXHAUSTED = "exhausted"
    NON_RETRYABLE = "non_retryable"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True)
class GenerationRequirements:
    """What the client asked for; the hard constraints used by the selector."""

    kind: JobKind
    duration: DurationClass = DurationClass.MEDIUM
    quality: QualityTier = QualityTier.STANDARD
    style: str = "professional"
    industry: str | None = None
    template: str | None = None
    features: frozenset[str] = field(default_factory=frozenset)
    script: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> int:
        return self.duration.target_seconds(self.kind)


@dataclass(slots=True)
class SelectionCriteria:
    """Per-request ranking preferences. Never persisted on its own."""

    required_features: frozenset[str] = field(default_factory=frozenset)
    quality_preference: QualityPreference = QualityPreference.BALANCED
    speed_priority: SpeedPriority = SpeedPriority.NORMAL
    budget_ceiling: float | None = None
    excluded_providers: frozenset[str] = field(default_factory=frozenset)


@dataclass(slots=True)
class JobResult:
    """Artifact produced by a successful attempt."""

    artifact_url: str
    duration_seconds: float | None = None
    transcript: str | None = None
    thumbnail_url: str | None = None
    quality_score: float | None = None


@dataclass(slots=True)
class JobError:
    """Normalized error shown to clients; never the raw provider payload."""

    code: FailureCode
    message: str
    retryable: bool
    cause: FailureCause | None = None


@dataclass(slots=True)
class Attempt:
    """One submission of a job to one provider."""

    id: str
    number: int
    provider_id: str
    started_at: datetime
    external_ref: str | None = None
    finished_at: datetime | None = None
    outcome: AttemptOutcome | None = None
    error: JobError | None = None
    progress: int = 0
    cost: float | None = None


@dataclass(slots=True)
class Job:
    """Queue entry representing one media generation request."""

    id: str
    kind: JobKind
    requirements: GenerationRequirements
    criteria: SelectionCriteria
    state: JobState
    created_at: datetime
    updated_at: datetime
    selected_provider_id: str | None = None
    ranked_provider_ids: list[str] = field(default_factory=list)
    attempts: list[Attempt] = field(default_factory=list)
    attempt_count: int = 0
    provider_specific_fallbacks: int = 0
    progress: int = 0
    result: JobResult | None = None
    error: JobError | None = None
    completed_at: datetime | None = None

    @property
    def current_attempt(self) -> Attempt | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def remaining_providers(self) -> list[str]:
        """Ranked providers not yet tried, in ranked order."""

        tried = {attempt.provider_id for attempt in self.attempts}
        return [pid for pid in self.ranked_provider_ids if pid not in tried]


@dataclass(slots=True)
class ProviderCapabilities:
    """Structural capabilities declared by a provider."""

    kinds: frozenset[JobKind]
    max_duration_seconds: int
    quality_tiers: frozenset[QualityTier]
    features: frozenset[str] = field(default_factory=frozenset)
    supports_callbacks: bool = False
    expected_seconds: float = 120.0


@dataclass(slots=True, frozen=True)
class ProviderStats:
    """Rolling statistics snapshot; replaced as a whole on every update."""

    attempts: int = 0
    successes: int = 0
    reliability: float = 1.0
    avg_latency_seconds: float | None = None
    avg_quality_score: float | None = None
    avg_cost: float | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class Provider:
    """External capability descriptor; not a live connection."""

    id: str
    display_name: str
    capabilities: ProviderCapabilities
    cost_tier: CostTier = CostTier.MEDIUM
    base_cost: float = 0.5
    stats: ProviderStats = field(default_factory=ProviderStats)


@dataclass(slots=True, frozen=True)
class OutcomeRecord:
    """Append-only log entry describing one finished attempt."""

    job_id: str
    attempt_id: str
    provider_id: str
    kind: JobKind
    outcome: AttemptOutcome
    generation_seconds: float
    recorded_at: datetime
    quality_score: float | None = None
    cost: float | None = None
    industry: str | None = None
    template: str | None = None
    error_code: FailureCode | None = None


__all__ = [
    "Attempt",
    "AttemptOutcome",
    "CostTier",
    "DurationClass",
    "FailureCause",
    "FailureCode",
    "GenerationRequirements",
    "Job",
    "JobError",
    "JobKind",
    "JobResult",
    "JobState",
    "OutcomeRecord",
    "Provider",
    "ProviderCapabilities",
    "ProviderStats",
    "QualityPreference",
    "QualityTier",
    "SelectionCriteria",
    "SpeedPriority",
    "TERMINAL_STATES",
]
