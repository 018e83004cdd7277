from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from clinic_emr.db.session import retry_read
from clinic_emr.errors import FieldError, NotFound, ValidationFailed
from clinic_emr.models.patient import Patient, PatientStatus
from clinic_emr.services.duration import TreatmentDuration, elapsed_since_first_visit

logger = logging.getLogger("clinic_emr.patients")

REQUIRED_NAME_FIELDS = {
    "last_name": "姓",
    "first_name": "名",
    "last_name_kana": "姓（カナ）",
    "first_name_kana": "名（カナ）",
}


@dataclass(frozen=True)
class ActivePatient:
    patient: Patient
    elapsed: TreatmentDuration


def register_patient(db: Session, *, created_at: datetime, **fields) -> Patient:
    errors = [
        FieldError(key, f"{label}を入力してください")
        for key, label in REQUIRED_NAME_FIELDS.items()
        if not str(fields.get(key) or "").strip()
    ]
    if not isinstance(fields.get("first_visit_date"), date):
        errors.append(FieldError("first_visit_date", "初診日を入力してください"))
    if errors:
        raise ValidationFailed(errors, detail="Invalid patient data")

    patient = Patient(status=PatientStatus.active, created_at=created_at, **fields)
    db.add(patient)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Patient %s registered", patient.id)
    return patient


def get_patient(db: Session, patient_id: str, *, with_entries: bool = False) -> Patient:
    stmt = select(Patient).where(Patient.id == patient_id)
    if with_entries:
        stmt = stmt.options(selectinload(Patient.chart_entries)).execution_options(
            populate_existing=True
        )
    patient = retry_read(db, lambda: db.scalar(stmt))
    if patient is None:
        raise NotFound("Patient not found")
    return patient


def list_patients(
    db: Session, *, status: PatientStatus | None = None, with_entries: bool = False
) -> list[Patient]:
    stmt = select(Patient).order_by(Patient.last_name_kana.asc(), Patient.first_name_kana.asc())
    if status is not None:
        stmt = stmt.where(Patient.status == status)
    if with_entries:
        stmt = stmt.options(selectinload(Patient.chart_entries)).execution_options(
            populate_existing=True
        )
    return retry_read(db, lambda: list(db.scalars(stmt)))


def list_active_patients(db: Session, *, today: date | None = None) -> list[ActivePatient]:
    return [
        ActivePatient(patient=patient, elapsed=elapsed_since_first_visit(patient.first_visit_date, today))
        for patient in list_patients(db, status=PatientStatus.active)
    ]


def update_patient_status(db: Session, patient_id: str, status: PatientStatus) -> Patient:
    patient = get_patient(db, patient_id)
    if patient.status == status:
        return patient
    patient.status = status
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Patient %s status set to %s", patient_id, status.value)
    return patient
