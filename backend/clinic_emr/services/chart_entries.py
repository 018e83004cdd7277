from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clinic_emr.core.settings import settings
from clinic_emr.db.session import retry_read
from clinic_emr.errors import ChartError, Conflict, NotFound, ValidationFailed
from clinic_emr.models.chart_entry import ChartEntry, ChartEntryEvent, ChartEntryEventType
from clinic_emr.models.patient import Patient
from clinic_emr.services.audit import record_event
from clinic_emr.services.chart_validation import (
    normalize_therapy_methods,
    validate_entry_changes,
    validate_new_entry,
    validate_reason,
)

logger = logging.getLogger("clinic_emr.chart")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChartEntryRepository(Protocol):
    def get_patient(self, patient_id: str) -> Patient | None: ...

    def get_entry(
        self, patient_id: str, entry_id: str, *, for_update: bool = False
    ) -> ChartEntry | None: ...

    def list_entries(self, patient_id: str, *, include_deleted: bool) -> list[ChartEntry]: ...

    def list_events(self, entry_id: str) -> list[ChartEntryEvent]: ...

    def add_entry(self, entry: ChartEntry) -> None: ...

    def append_event(
        self,
        entry: ChartEntry,
        event_type: ChartEntryEventType,
        occurred_at: datetime,
        reason: str | None,
    ) -> ChartEntryEvent: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class SqlAlchemyChartEntryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_patient(self, patient_id: str) -> Patient | None:
        return retry_read(self.db, lambda: self.db.get(Patient, patient_id))

    def get_entry(
        self, patient_id: str, entry_id: str, *, for_update: bool = False
    ) -> ChartEntry | None:
        stmt = select(ChartEntry).where(
            ChartEntry.id == entry_id, ChartEntry.patient_id == patient_id
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
            return self.db.scalar(stmt)
        return retry_read(self.db, lambda: self.db.scalar(stmt))

    def list_entries(self, patient_id: str, *, include_deleted: bool) -> list[ChartEntry]:
        stmt = (
            select(ChartEntry)
            .where(ChartEntry.patient_id == patient_id)
            .order_by(ChartEntry.visit_date.desc(), ChartEntry.created_at.desc())
        )
        if not include_deleted:
            stmt = stmt.where(ChartEntry.deleted_at.is_(None))
        return retry_read(self.db, lambda: list(self.db.scalars(stmt)))

    def list_events(self, entry_id: str) -> list[ChartEntryEvent]:
        stmt = (
            select(ChartEntryEvent)
            .where(ChartEntryEvent.chart_entry_id == entry_id)
            .order_by(ChartEntryEvent.sequence.asc())
        )
        return retry_read(self.db, lambda: list(self.db.scalars(stmt)))

    def add_entry(self, entry: ChartEntry) -> None:
        self.db.add(entry)

    def append_event(
        self,
        entry: ChartEntry,
        event_type: ChartEntryEventType,
        occurred_at: datetime,
        reason: str | None,
    ) -> ChartEntryEvent:
        return record_event(
            self.db, entry=entry, event_type=event_type, occurred_at=occurred_at, reason=reason
        )

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


class ChartEntryService:
    """Create, edit and soft-delete chart entries.

    Every accepted operation commits on its own and appends one event to the
    entry's history. Rejected operations leave the entry untouched.
    """

    def __init__(
        self,
        repo: ChartEntryRepository,
        *,
        now: Callable[[], datetime] = utcnow,
        reason_min_length: int | None = None,
    ):
        self.repo = repo
        self.now = now
        self.reason_min_length = reason_min_length or settings.reason_min_length

    def _require_patient(self, patient_id: str) -> Patient:
        patient = self.repo.get_patient(patient_id)
        if patient is None:
            raise NotFound("Patient not found")
        return patient

    def get_patient(self, patient_id: str) -> Patient:
        return self._require_patient(patient_id)

    def _require_live_entry(self, patient_id: str, entry_id: str) -> ChartEntry:
        self._require_patient(patient_id)
        entry = self.repo.get_entry(patient_id, entry_id, for_update=True)
        if entry is None:
            raise NotFound("Chart entry not found")
        if entry.is_deleted:
            raise Conflict("Chart entry has been deleted")
        return entry

    def _commit(self, action: str, entry_id: str) -> None:
        try:
            self.repo.commit()
        except StaleDataError as exc:
            self.repo.rollback()
            logger.info("Chart entry %s rejected: concurrent modification (%s)", action, entry_id)
            raise Conflict("Chart entry was modified concurrently") from exc

    def add_entry(
        self,
        patient_id: str,
        *,
        visit_date: date | str,
        content: str,
        therapy_methods: Iterable[str] | None = None,
        next_appointment: date | str | None = None,
    ) -> ChartEntry:
        self._require_patient(patient_id)
        parsed_date, parsed_next, errors = validate_new_entry(visit_date, content, next_appointment)
        if errors:
            logger.info("Chart entry create rejected for patient %s: validation", patient_id)
            raise ValidationFailed(errors)

        entry = ChartEntry(
            patient_id=patient_id,
            visit_date=parsed_date,
            content=content,
            therapy_methods=normalize_therapy_methods(therapy_methods),
            next_appointment=parsed_next,
            created_at=self.now(),
        )
        try:
            self.repo.add_entry(entry)
            self.repo.append_event(entry, ChartEntryEventType.create, entry.created_at, None)
            self._commit("create", entry.id)
        except Exception:
            self.repo.rollback()
            raise
        logger.info("Chart entry %s created for patient %s", entry.id, patient_id)
        return entry

    def edit_entry(
        self,
        patient_id: str,
        entry_id: str,
        *,
        content: str,
        therapy_methods: Iterable[str] | None,
        next_appointment: date | str | None = None,
        reason: str,
        expected_version: int | None = None,
    ) -> ChartEntry:
        try:
            entry = self._require_live_entry(patient_id, entry_id)
            if expected_version is not None and entry.version != expected_version:
                raise Conflict("Chart entry was modified since it was read")
            parsed_next, errors = validate_entry_changes(
                entry.visit_date,
                content,
                next_appointment,
                reason,
                min_length=self.reason_min_length,
            )
            if errors:
                raise ValidationFailed(errors)

            entry.content = content
            entry.therapy_methods = normalize_therapy_methods(therapy_methods)
            entry.next_appointment = parsed_next
            entry.modified_at = self.now()
            entry.modified_reason = reason
            self.repo.append_event(entry, ChartEntryEventType.edit, entry.modified_at, entry.modified_reason)
            self._commit("edit", entry_id)
        except ChartError as exc:
            self.repo.rollback()
            logger.info("Chart entry edit rejected (%s): %s", entry_id, exc.kind)
            raise
        except StaleDataError as exc:
            self.repo.rollback()
            raise Conflict("Chart entry was modified concurrently") from exc
        except Exception:
            self.repo.rollback()
            raise
        logger.info("Chart entry %s edited for patient %s", entry_id, patient_id)
        return entry

    def delete_entry(self, patient_id: str, entry_id: str, *, reason: str) -> ChartEntry:
        try:
            entry = self._require_live_entry(patient_id, entry_id)
            errors = validate_reason(
                reason, field="reason", label="削除理由", min_length=self.reason_min_length
            )
            if errors:
                raise ValidationFailed(errors)

            entry.deleted_at = self.now()
            entry.delete_reason = reason
            self.repo.append_event(entry, ChartEntryEventType.delete, entry.deleted_at, entry.delete_reason)
            self._commit("delete", entry_id)
        except ChartError as exc:
            self.repo.rollback()
            logger.info("Chart entry delete rejected (%s): %s", entry_id, exc.kind)
            raise
        except StaleDataError as exc:
            self.repo.rollback()
            raise Conflict("Chart entry was modified concurrently") from exc
        except Exception:
            self.repo.rollback()
            raise
        logger.info("Chart entry %s deleted for patient %s", entry_id, patient_id)
        return entry

    def list_entries(self, patient_id: str, *, include_deleted: bool = True) -> list[ChartEntry]:
        self._require_patient(patient_id)
        return self.repo.list_entries(patient_id, include_deleted=include_deleted)

    def list_entry_history(self, patient_id: str, entry_id: str) -> list[ChartEntryEvent]:
        self._require_patient(patient_id)
        if self.repo.get_entry(patient_id, entry_id) is None:
            raise NotFound("Chart entry not found")
        return self.repo.list_events(entry_id)
