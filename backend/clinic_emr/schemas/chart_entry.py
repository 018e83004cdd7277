from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from clinic_emr.models.chart_entry import ChartEntryEventType
from clinic_emr.schemas.patient import TreatmentDurationOut


class ChartEntryCreate(BaseModel):
    visit_date: date
    content: str
    therapy_methods: list[str] = Field(default_factory=list)
    next_appointment: Optional[date] = None


class ChartEntryEdit(BaseModel):
    content: str
    therapy_methods: list[str] = Field(default_factory=list)
    next_appointment: Optional[date] = None
    reason: str
    expected_version: Optional[int] = None


class ChartEntryDelete(BaseModel):
    reason: str


class ChartEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    visit_date: date
    content: str
    therapy_methods: list[str]
    next_appointment: Optional[date] = None
    created_at: datetime
    modified_at: Optional[datetime] = None
    modified_reason: Optional[str] = None
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    delete_reason: Optional[str] = None
    version: int
    duration: Optional[TreatmentDurationOut] = None


class ChartEntryEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    event_type: ChartEntryEventType
    reason: Optional[str] = None
    occurred_at: datetime
    snapshot: dict
