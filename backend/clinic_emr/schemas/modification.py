from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class ModificationLogEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_id: str
    entry_id: str
    patient_name: str
    patient_name_kana: str
    entry_date: date
    event_timestamp: datetime
    type: Literal["edit", "delete"]
    reason: Optional[str] = None
    content: str
    next_appointment: Optional[date] = None


class ListingWarningOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_id: Optional[str] = None
    entry_id: Optional[str] = None
    message: str


class ModificationListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rows: list[ModificationLogEntryOut]
    warnings: list[ListingWarningOut]
