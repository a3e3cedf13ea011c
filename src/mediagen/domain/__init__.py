"""Domain models and state machine rules of the orchestrator."""

from .models import (
    TERMINAL_STATES,
    Attempt,
    AttemptOutcome,
    CostTier,
    DurationClass,
    FailureCause,
    FailureCode,
    GenerationRequirements,
    Job,
    JobError,
    JobKind,
    JobResult,
    JobState,
    OutcomeRecord,
    Provider,
    ProviderCapabilities,
    ProviderStats,
    QualityPreference,
    QualityTier,
    SelectionCriteria,
    SpeedPriority,
)
from .transitions import ALLOWED_TRANSITIONS, can_transition, ensure_transition

__all__ = [
    "ALLOWED_TRANSITIONS",
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
    "can_transition",
    "ensure_transition",
]
