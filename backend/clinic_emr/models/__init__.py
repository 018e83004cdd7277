from clinic_emr.models.base import Base
from clinic_emr.models.patient import Patient, PatientStatus
from clinic_emr.models.chart_entry import ChartEntry, ChartEntryEvent, ChartEntryEventType

__all__ = [
    "Base",
    "Patient",
    "PatientStatus",
    "ChartEntry",
    "ChartEntryEvent",
    "ChartEntryEventType",
]
