from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from clinic_emr.db.session import get_db
from clinic_emr.models.chart_entry import ChartEntry
from clinic_emr.schemas.chart_entry import (
    ChartEntryCreate,
    ChartEntryDelete,
    ChartEntryEdit,
    ChartEntryEventOut,
    ChartEntryOut,
)
from clinic_emr.schemas.patient import TreatmentDurationOut
from clinic_emr.services.chart_entries import ChartEntryService, SqlAlchemyChartEntryRepository
from clinic_emr.services.duration import treatment_duration

router = APIRouter(prefix="/patients/{patient_id}/chart-entries", tags=["chart-entries"])


def get_chart_service(db: Session = Depends(get_db)) -> ChartEntryService:
    return ChartEntryService(SqlAlchemyChartEntryRepository(db))


def _entry_out(entry: ChartEntry, first_visit_date: date) -> ChartEntryOut:
    out = ChartEntryOut.model_validate(entry)
    duration = treatment_duration(entry.visit_date, first_visit_date)
    return out.model_copy(update={"duration": TreatmentDurationOut.model_validate(duration)})


@router.get("", response_model=list[ChartEntryOut])
def list_chart_entries(
    patient_id: str,
    service: ChartEntryService = Depends(get_chart_service),
    include_deleted: bool = Query(default=True),
):
    patient = service.get_patient(patient_id)
    entries = service.list_entries(patient_id, include_deleted=include_deleted)
    return [_entry_out(entry, patient.first_visit_date) for entry in entries]


@router.post("", response_model=ChartEntryOut, status_code=status.HTTP_201_CREATED)
def create_chart_entry(
    patient_id: str,
    payload: ChartEntryCreate,
    service: ChartEntryService = Depends(get_chart_service),
):
    entry = service.add_entry(patient_id, **payload.model_dump())
    return _entry_out(entry, service.get_patient(patient_id).first_visit_date)


@router.patch("/{entry_id}", response_model=ChartEntryOut)
def edit_chart_entry(
    patient_id: str,
    entry_id: str,
    payload: ChartEntryEdit,
    service: ChartEntryService = Depends(get_chart_service),
):
    entry = service.edit_entry(patient_id, entry_id, **payload.model_dump())
    return _entry_out(entry, service.get_patient(patient_id).first_visit_date)


@router.post("/{entry_id}/delete", response_model=ChartEntryOut)
def delete_chart_entry(
    patient_id: str,
    entry_id: str,
    payload: ChartEntryDelete,
    service: ChartEntryService = Depends(get_chart_service),
):
    entry = service.delete_entry(patient_id, entry_id, reason=payload.reason)
    return _entry_out(entry, service.get_patient(patient_id).first_visit_date)


@router.get("/{entry_id}/history", response_model=list[ChartEntryEventOut])
def chart_entry_history(
    patient_id: str,
    entry_id: str,
    service: ChartEntryService = Depends(get_chart_service),
):
    return service.list_entry_history(patient_id, entry_id)
