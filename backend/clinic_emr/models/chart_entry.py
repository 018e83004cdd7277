from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import JSON, Date, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_emr.models.base import Base, CreatedAtMixin, SoftDeleteMixin
from clinic_emr.models.patient import new_id
from clinic_emr.models.types import UTCDateTime


class ChartEntry(Base, CreatedAtMixin, SoftDeleteMixin):
    __tablename__ = "chart_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    patient_id: Mapped[str] = mapped_column(
        ForeignKey("patients.id"), nullable=False, index=True
    )
    visit_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    therapy_methods: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    next_appointment: Mapped[date | None] = mapped_column(Date, nullable=True)
    modified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    modified_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    patient = relationship("Patient", back_populates="chart_entries")
    events = relationship(
        "ChartEntryEvent",
        back_populates="chart_entry",
        order_by="ChartEntryEvent.sequence",
    )

    __mapper_args__ = {"version_id_col": version}


class ChartEntryEventType(str, enum.Enum):
    create = "create"
    edit = "edit"
    delete = "delete"


class ChartEntryEvent(Base):
    __tablename__ = "chart_entry_events"
    __table_args__ = (UniqueConstraint("chart_entry_id", "sequence"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chart_entry_id: Mapped[str] = mapped_column(
        ForeignKey("chart_entries.id"), nullable=False, index=True
    )
    patient_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[ChartEntryEventType] = mapped_column(
        Enum(ChartEntryEventType, name="chart_entry_event_type"), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)

    chart_entry = relationship("ChartEntry", back_populates="events")
