from __future__ import annotations

from dataclasses import dataclass
from datetime import date

BEFORE_FIRST_VISIT_LABEL = "初診前"


@dataclass(frozen=True)
class TreatmentDuration:
    weeks: int
    days: int
    before_first_visit: bool = False

    @property
    def total_days(self) -> int:
        return self.weeks * 7 + self.days


def treatment_duration(visit_date: date, first_visit_date: date) -> TreatmentDuration:
    """Weeks and remainder days between the first visit and ``visit_date``.

    Whole calendar days only. Visits dated before the first visit clamp to
    ``(0, 0)`` with ``before_first_visit`` set.
    """
    elapsed = (visit_date - first_visit_date).days
    if elapsed < 0:
        return TreatmentDuration(weeks=0, days=0, before_first_visit=True)
    weeks, days = divmod(elapsed, 7)
    return TreatmentDuration(weeks=weeks, days=days)


def elapsed_since_first_visit(first_visit_date: date, today: date | None = None) -> TreatmentDuration:
    return treatment_duration(today or date.today(), first_visit_date)


def format_duration(duration: TreatmentDuration) -> str:
    if duration.before_first_visit:
        return BEFORE_FIRST_VISIT_LABEL
    return f"{duration.weeks}週{duration.days}日"
