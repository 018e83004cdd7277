from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from clinic_emr.models.patient import PatientStatus


class PatientBase(BaseModel):
    last_name: str
    first_name: str
    last_name_kana: str
    first_name_kana: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    first_visit_date: date
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    emergency_contact: Optional[str] = None
    medical_history: Optional[str] = None
    current_medications: Optional[str] = None
    allergies: Optional[str] = None


class PatientCreate(PatientBase):
    pass


class PatientStatusUpdate(BaseModel):
    status: PatientStatus


class PatientOut(PatientBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: PatientStatus
    created_at: datetime


class TreatmentDurationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    weeks: int
    days: int
    before_first_visit: bool


class ActivePatientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient: PatientOut
    elapsed: TreatmentDurationOut
