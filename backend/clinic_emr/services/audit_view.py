"""Modification/deletion history derived from chart entry metadata.

The listing holds no state of its own; it is rebuilt from the patients'
entries on every call. An entry that cannot be read is skipped and reported
in ``warnings`` instead of failing the whole listing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Iterable, Literal

from clinic_emr.core.settings import clinic_tz
from clinic_emr.models.patient import person_name
from clinic_emr.services.chart_validation import coerce_date

logger = logging.getLogger("clinic_emr.audit_view")

ModificationType = Literal["edit", "delete"]
ModificationTypeFilter = Literal["all", "edit", "delete"]


@dataclass(frozen=True)
class ModificationFilter:
    type: ModificationTypeFilter = "all"
    search_text: str = ""
    date_from: date | None = None
    date_to: date | None = None
    # Day boundaries for the date range; the clinic time zone when unset.
    tz: tzinfo | None = None


@dataclass(frozen=True)
class ModificationLogEntry:
    patient_id: str
    entry_id: str
    patient_name: str
    patient_name_kana: str
    entry_date: date
    event_timestamp: datetime
    type: ModificationType
    reason: str | None
    content: str
    next_appointment: date | None


@dataclass(frozen=True)
class ListingWarning:
    patient_id: str | None
    entry_id: str | None
    message: str


@dataclass
class ModificationListing:
    rows: list[ModificationLogEntry] = field(default_factory=list)
    warnings: list[ListingWarning] = field(default_factory=list)


def _coerce_timestamp(value: Any, label: str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"{label} is missing")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _build_row(patient: Any, entry: Any) -> ModificationLogEntry | None:
    is_deleted = bool(getattr(entry, "is_deleted", False))
    modified_at = getattr(entry, "modified_at", None)
    if not is_deleted and not modified_at:
        return None

    # Deletion supersedes any earlier edit for this entry.
    if is_deleted:
        event_timestamp = _coerce_timestamp(entry.deleted_at, "deleted_at")
        reason = entry.delete_reason
    else:
        event_timestamp = _coerce_timestamp(modified_at, "modified_at")
        reason = entry.modified_reason

    entry_date = coerce_date(entry.visit_date)
    if entry_date is None:
        raise ValueError("visit date is malformed")
    next_appointment = entry.next_appointment
    if next_appointment is not None:
        next_appointment = coerce_date(next_appointment)

    return ModificationLogEntry(
        patient_id=str(patient.id),
        entry_id=str(entry.id),
        patient_name=person_name(patient.last_name, patient.first_name),
        patient_name_kana=person_name(patient.last_name_kana, patient.first_name_kana),
        entry_date=entry_date,
        event_timestamp=event_timestamp,
        type="delete" if is_deleted else "edit",
        reason=reason,
        content=entry.content or "",
        next_appointment=next_appointment,
    )


def _matches(row: ModificationLogEntry, flt: ModificationFilter) -> bool:
    if flt.type != "all" and row.type != flt.type:
        return False
    needle = flt.search_text.strip().lower()
    if needle:
        haystack = (row.patient_name, row.patient_name_kana, row.reason or "", row.content)
        if not any(needle in value.lower() for value in haystack):
            return False
    event_day = row.event_timestamp.astimezone(flt.tz or clinic_tz()).date()
    if flt.date_from is not None and event_day < flt.date_from:
        return False
    if flt.date_to is not None and event_day > flt.date_to:
        return False
    return True


def build_modification_rows(patients: Iterable[Any]) -> ModificationListing:
    listing = ModificationListing()
    for patient in patients:
        patient_id = getattr(patient, "id", None)
        for entry in getattr(patient, "chart_entries", None) or []:
            entry_id = getattr(entry, "id", None)
            try:
                row = _build_row(patient, entry)
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping chart entry %s of patient %s in modification history: %s",
                    entry_id,
                    patient_id,
                    exc,
                )
                listing.warnings.append(
                    ListingWarning(
                        patient_id=str(patient_id) if patient_id is not None else None,
                        entry_id=str(entry_id) if entry_id is not None else None,
                        message=str(exc),
                    )
                )
                continue
            if row is not None:
                listing.rows.append(row)

    listing.rows.sort(key=lambda row: row.entry_id)
    listing.rows.sort(key=lambda row: row.event_timestamp, reverse=True)
    return listing


def list_modifications(
    patients: Iterable[Any], flt: ModificationFilter | None = None
) -> ModificationListing:
    flt = flt or ModificationFilter()
    listing = build_modification_rows(patients)
    listing.rows = [row for row in listing.rows if _matches(row, flt)]
    return listing
