from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_emr.db.session import get_db
from clinic_emr.schemas.modification import ModificationListingOut
from clinic_emr.services.audit_view import ModificationFilter, list_modifications
from clinic_emr.services.patients import list_patients

router = APIRouter(prefix="/modifications", tags=["modifications"])


@router.get("", response_model=ModificationListingOut)
def modification_history(
    db: Session = Depends(get_db),
    log_type: Literal["all", "edit", "delete"] = Query(default="all", alias="type"),
    q: str = Query(default=""),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
):
    patients = list_patients(db, with_entries=True)
    flt = ModificationFilter(type=log_type, search_text=q, date_from=date_from, date_to=date_to)
    return ModificationListingOut.model_validate(list_modifications(patients, flt))
