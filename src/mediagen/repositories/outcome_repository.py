"""Append-only storage of attempt outcome records."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import OutcomeRecordModel
from ..domain.models import AttemptOutcome, FailureCode, JobKind, OutcomeRecord
from ..exceptions import handle_sqlalchemy_errors


def _matches(
    record: OutcomeRecord,
    *,
    provider_id: str | None,
    industry: str | None,
    template: str | None,
    since: datetime | None,
    until: datetime | None,
) -> bool:
    if provider_id is not None and record.provider_id != provider_id:
        return False
    if industry is not None and record.industry != industry:
        return False
    if template is not None and record.template != template:
        return False
    if since is not None and record.recorded_at < since:
        return False
    if until is not None and record.recorded_at >= until:
        return False
    return True


class InMemoryOutcomeStore:
    def __init__(self) -> None:
        self._records: list[OutcomeRecord] = []
        self._lock = threading.Lock()

    def append(self, record: OutcomeRecord) -> None:
        with self._lock:
            self._records.append(record)

    def list(
        self,
        *,
        provider_id: str | None = None,
        industry: str | None = None,
        template: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Sequence[OutcomeRecord]:
        with self._lock:
            records = list(self._records)
        return sorted(
            (
                record
                for record in records
                if _matches(
                    record,
                    provider_id=provider_id,
                    industry=industry,
                    template=template,
                    since=since,
                    until=until,
                )
            ),
            key=lambda record: record.recorded_at,
        )

    def __len__(self) -> int:
        return len(self._records)


class SqlOutcomeStore:
    """Write outcome records to the ``outcome_record`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def append(self, record: OutcomeRecord) -> None:
        with handle_sqlalchemy_errors(entity="outcome_record"):
            with self._session_factory() as session:
                session.add(
                    OutcomeRecordModel(
                        job_id=record.job_id,
                        attempt_id=record.attempt_id,
                        provider_id=record.provider_id,
                        kind=record.kind.value,
                        outcome=record.outcome.value,
                        generation_seconds=record.generation_seconds,
                        quality_score=record.quality_score,
                        cost=record.cost,
                        industry=record.industry,
                        template=record.template,
                        error_code=record.error_code.value if record.error_code else None,
                        recorded_at=record.recorded_at,
                    )
                )
                session.commit()

    def list(
        self,
        *,
        provider_id: str | None = None,
        industry: str | None = None,
        template: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Sequence[OutcomeRecord]:
        statement = select(OutcomeRecordModel)
        if provider_id is not None:
            statement = statement.where(OutcomeRecordModel.provider_id == provider_id)
        if industry is not None:
            statement = statement.where(OutcomeRecordModel.industry == industry)
        if template is not None:
            statement = statement.where(OutcomeRecordModel.template == template)
        if since is not None:
            statement = statement.where(OutcomeRecordModel.recorded_at >= since)
        if until is not None:
            statement = statement.where(OutcomeRecordModel.recorded_at < until)
        statement = statement.order_by(OutcomeRecordModel.recorded_at, OutcomeRecordModel.id)
        with handle_sqlalchemy_errors(entity="outcome_record"):
            with self._session_factory() as session:
                return [_to_record(model) for model in session.scalars(statement)]


def _to_record(model: OutcomeRecordModel) -> OutcomeRecord:
    recorded_at = model.recorded_at
    if recorded_at.tzinfo is None:
        recorded_at = recorded_at.replace(tzinfo=timezone.utc)
    return OutcomeRecord(
        job_id=model.job_id,
        attempt_id=model.attempt_id,
        provider_id=model.provider_id,
        kind=JobKind(model.kind),
        outcome=AttemptOutcome(model.outcome),
        generation_seconds=model.generation_seconds,
        recorded_at=recorded_at,
        quality_score=model.quality_score,
        cost=model.cost,
        industry=model.industry,
        template=model.template,
        error_code=FailureCode(model.error_code) if model.error_code else None,
    )


__all__ = ["InMemoryOutcomeStore", "SqlOutcomeStore"]
