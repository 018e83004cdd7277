from __future__ import annotations

import enum
import uuid
from datetime import date

from sqlalchemy import Date, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_emr.models.base import Base, CreatedAtMixin


class PatientStatus(str, enum.Enum):
    active = "active"
    completed = "completed"


def new_id() -> str:
    return str(uuid.uuid4())


def person_name(family: str, given: str) -> str:
    """Family name first, separated by a single space."""
    return f"{family} {given}"


class Patient(Base, CreatedAtMixin):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name_kana: Mapped[str] = mapped_column(String(120), nullable=False)
    first_name_kana: Mapped[str] = mapped_column(String(120), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    first_visit_date: Mapped[date] = mapped_column(Date, nullable=False)
    address: Mapped[str | None] = mapped_column(String(300), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    emergency_contact: Mapped[str | None] = mapped_column(String(200), nullable=True)
    medical_history: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_medications: Mapped[str | None] = mapped_column(Text, nullable=True)
    allergies: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[PatientStatus] = mapped_column(
        Enum(PatientStatus, name="patient_status"),
        default=PatientStatus.active,
        nullable=False,
    )

    chart_entries = relationship(
        "ChartEntry",
        back_populates="patient",
        order_by="ChartEntry.created_at",
    )

    @property
    def display_name(self) -> str:
        return person_name(self.last_name, self.first_name)

    @property
    def display_name_kana(self) -> str:
        return person_name(self.last_name_kana, self.first_name_kana)
