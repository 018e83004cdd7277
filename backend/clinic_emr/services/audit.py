from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from clinic_emr.models.chart_entry import ChartEntry, ChartEntryEvent, ChartEntryEventType


def _json_value(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return list(value)
    return value


def snapshot_model(obj: Any | None) -> dict | None:
    if obj is None:
        return None
    data: dict[str, Any] = {}
    mapper = inspect(obj).mapper
    for attr in mapper.column_attrs:
        data[attr.key] = _json_value(getattr(obj, attr.key))
    return data


def next_sequence(db: Session, chart_entry_id: str) -> int:
    current = db.scalar(
        select(func.max(ChartEntryEvent.sequence)).where(
            ChartEntryEvent.chart_entry_id == chart_entry_id
        )
    )
    return (current or 0) + 1


def record_event(
    db: Session,
    *,
    entry: ChartEntry,
    event_type: ChartEntryEventType,
    occurred_at: datetime,
    reason: str | None = None,
) -> ChartEntryEvent:
    db.flush()
    snapshot = snapshot_model(entry)
    snapshot["is_deleted"] = entry.is_deleted
    event = ChartEntryEvent(
        chart_entry_id=entry.id,
        patient_id=entry.patient_id,
        sequence=next_sequence(db, entry.id),
        event_type=event_type,
        reason=reason,
        occurred_at=occurred_at,
        snapshot=snapshot,
    )
    db.add(event)
    return event
