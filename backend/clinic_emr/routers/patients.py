from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from clinic_emr.db.session import get_db
from clinic_emr.models.patient import PatientStatus
from clinic_emr.schemas.patient import (
    ActivePatientOut,
    PatientCreate,
    PatientOut,
    PatientStatusUpdate,
    TreatmentDurationOut,
)
from clinic_emr.services.chart_documents import render_export
from clinic_emr.services.chart_export import ExportFormat, export_filename
from clinic_emr.services.patients import (
    get_patient,
    list_active_patients,
    list_patients,
    register_patient,
    update_patient_status,
)

router = APIRouter(prefix="/patients", tags=["patients"])


@router.post("", response_model=PatientOut, status_code=status.HTTP_201_CREATED)
def create_patient(payload: PatientCreate, db: Session = Depends(get_db)):
    return register_patient(db, created_at=datetime.now(timezone.utc), **payload.model_dump())


@router.get("", response_model=list[PatientOut])
def list_all_patients(
    db: Session = Depends(get_db),
    status_filter: PatientStatus | None = Query(default=None, alias="status"),
):
    return list_patients(db, status=status_filter)


@router.get("/active", response_model=list[ActivePatientOut])
def active_patients(
    db: Session = Depends(get_db),
    today: date | None = Query(default=None),
):
    return [
        ActivePatientOut(
            patient=PatientOut.model_validate(item.patient),
            elapsed=TreatmentDurationOut.model_validate(item.elapsed),
        )
        for item in list_active_patients(db, today=today)
    ]


@router.get("/{patient_id}", response_model=PatientOut)
def read_patient(patient_id: str, db: Session = Depends(get_db)):
    return get_patient(db, patient_id)


@router.patch("/{patient_id}/status", response_model=PatientOut)
def set_patient_status(patient_id: str, payload: PatientStatusUpdate, db: Session = Depends(get_db)):
    return update_patient_status(db, patient_id, payload.status)


@router.get("/{patient_id}/export")
def export_chart(
    patient_id: str,
    db: Session = Depends(get_db),
    export_format: ExportFormat = Query(default="pdf", alias="format"),
):
    patient = get_patient(db, patient_id, with_entries=True)
    body, media_type = render_export(patient, patient.chart_entries, export_format)
    filename = export_filename(patient, export_format)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
