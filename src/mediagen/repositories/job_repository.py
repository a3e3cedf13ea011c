"""Persistence layer for generation jobs."""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from ..db.db_models import JobModel
from ..domain.models import (
    Attempt,
    AttemptOutcome,
    DurationClass,
    FailureCause,
    FailureCode,
    GenerationRequirements,
    Job,
    JobError,
    JobKind,
    JobResult,
    JobState,
    QualityPreference,
    QualityTier,
    SelectionCriteria,
    SpeedPriority,
)
from ..exceptions import handle_sqlalchemy_errors


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return _aware(datetime.fromisoformat(value)) if value else None


def requirements_to_dict(requirements: GenerationRequirements) -> dict[str, Any]:
    return {
        "kind": requirements.kind.value,
        "duration": requirements.duration.value,
        "quality": requirements.quality.value,
        "style": requirements.style,
        "industry": requirements.industry,
        "template": requirements.template,
        "features": sorted(requirements.features),
        "script": requirements.script,
        "options": dict(requirements.options),
    }


def requirements_from_dict(data: dict[str, Any]) -> GenerationRequirements:
    return GenerationRequirements(
        kind=JobKind(data["kind"]),
        duration=DurationClass(data["duration"]),
        quality=QualityTier(data["quality"]),
        style=data.get("style") or "professional",
        industry=data.get("industry"),
        template=data.get("template"),
        features=frozenset(data.get("features") or ()),
        script=data.get("script"),
        options=dict(data.get("options") or {}),
    )


def criteria_to_dict(criteria: SelectionCriteria) -> dict[str, Any]:
    return {
        "required_features": sorted(criteria.required_features),
        "quality_preference": criteria.quality_preference.value,
        "speed_priority": criteria.speed_priority.value,
        "budget_ceiling": criteria.budget_ceiling,
        "excluded_providers": sorted(criteria.excluded_providers),
    }


def criteria_from_dict(data: dict[str, Any]) -> SelectionCriteria:
    return SelectionCriteria(
        required_features=frozenset(data.get("required_features") or ()),
        quality_preference=QualityPreference(data.get("quality_preference", "balanced")),
        speed_priority=SpeedPriority(data.get("speed_priority", "normal")),
        budget_ceiling=data.get("budget_ceiling"),
        excluded_providers=frozenset(data.get("excluded_providers") or ()),
    )


def _error_to_dict(error: JobError | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "code": error.code.value,
        "message": error.message,
        "retryable": error.retryable,
        "cause": error.cause.value if error.cause else None,
    }


def _error_from_dict(data: dict[str, Any] | None) -> JobError | None:
    if not data:
        return None
    return JobError(
        code=FailureCode(data["code"]),
        message=data["message"],
        retryable=bool(data["retryable"]),
        cause=FailureCause(data["cause"]) if data.get("cause") else None,
    )


def _result_to_dict(result: JobResult | None) -> dict[str, Any] | None:
    if result is None:
        return None
    return {
        "artifact_url": result.artifact_url,
        "duration_seconds": result.duration_seconds,
        "transcript": result.transcript,
        "thumbnail_url": result.thumbnail_url,
        "quality_score": result.quality_score,
    }


def _result_from_dict(data: dict[str, Any] | None) -> JobResult | None:
    if not data:
        return None
    return JobResult(**data)


def _attempt_to_dict(attempt: Attempt) -> dict[str, Any]:
    return {
        "id": attempt.id,
        "number": attempt.number,
        "provider_id": attempt.provider_id,
        "started_at": _iso(attempt.started_at),
        "external_ref": attempt.external_ref,
        "finished_at": _iso(attempt.finished_at),
        "outcome": attempt.outcome.value if attempt.outcome else None,
        "error": _error_to_dict(attempt.error),
        "progress": attempt.progress,
        "cost": attempt.cost,
    }


def _attempt_from_dict(data: dict[str, Any]) -> Attempt:
    return Attempt(
        id=data["id"],
        number=data["number"],
        provider_id=data["provider_id"],
        started_at=_from_iso(data["started_at"]),
        external_ref=data.get("external_ref"),
        finished_at=_from_iso(data.get("finished_at")),
        outcome=AttemptOutcome(data["outcome"]) if data.get("outcome") else None,
        error=_error_from_dict(data.get("error")),
        progress=data.get("progress", 0),
        cost=data.get("cost"),
    )


def _apply_to_model(model: JobModel, job: Job) -> None:
    model.kind = job.kind.value
    model.state = job.state.value
    model.selected_provider_id = job.selected_provider_id
    model.attempt_count = job.attempt_count
    model.provider_specific_fallbacks = job.provider_specific_fallbacks
    model.progress = job.progress
    model.requirements = requirements_to_dict(job.requirements)
    model.criteria = criteria_to_dict(job.criteria)
    model.ranked_provider_ids = list(job.ranked_provider_ids)
    model.attempts = [_attempt_to_dict(attempt) for attempt in job.attempts]
    model.result = _result_to_dict(job.result)
    model.error = _error_to_dict(job.error)
    model.created_at = job.created_at
    model.updated_at = job.updated_at
    model.completed_at = job.completed_at


def _model_to_job(model: JobModel) -> Job:
    return Job(
        id=model.id,
        kind=JobKind(model.kind),
        requirements=requirements_from_dict(model.requirements),
        criteria=criteria_from_dict(model.criteria),
        state=JobState(model.state),
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
        selected_provider_id=model.selected_provider_id,
        ranked_provider_ids=list(model.ranked_provider_ids or []),
        attempts=[_attempt_from_dict(item) for item in model.attempts or []],
        attempt_count=model.attempt_count,
        provider_specific_fallbacks=model.provider_specific_fallbacks,
        progress=model.progress,
        result=_result_from_dict(model.result),
        error=_error_from_dict(model.error),
        completed_at=_aware(model.completed_at),
    )


class InMemoryJobRepository:
    """Keep job snapshots in a dictionary; used by tests and ephemeral runs."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def save(self, job: Job) -> None:
        snapshot = copy.deepcopy(job)
        with self._lock:
            self._jobs[job.id] = snapshot

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job is not None else None


class SqlAlchemyJobRepository:
    """Manage rows of the ``job`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def save(self, job: Job) -> None:
        with handle_sqlalchemy_errors(entity="job"):
            with self._session_factory() as session:
                model = session.get(JobModel, job.id)
                if model is None:
                    model = JobModel(id=job.id)
                    session.add(model)
                _apply_to_model(model, job)
                session.commit()

    def get(self, job_id: str) -> Job | None:
        with handle_sqlalchemy_errors(entity="job"):
            with self._session_factory() as session:
                model = session.get(JobModel, job_id)
                if model is None:
                    return None
                return _model_to_job(model)


__all__ = [
    "InMemoryJobRepository",
    "SqlAlchemyJobRepository",
    "criteria_from_dict",
    "criteria_to_dict",
    "requirements_from_dict",
    "requirements_to_dict",
]
