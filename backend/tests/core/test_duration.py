from datetime import date, timedelta

import pytest

from clinic_emr.services.duration import (
    TreatmentDuration,
    elapsed_since_first_visit,
    format_duration,
    treatment_duration,
)

FIRST_VISIT = date(2024, 1, 1)


@pytest.mark.parametrize(
    ("visit_date", "expected"),
    [
        (date(2024, 1, 1), (0, 0)),
        (date(2024, 1, 7), (0, 6)),
        (date(2024, 1, 8), (1, 0)),
        (date(2024, 1, 10), (1, 2)),
        (date(2024, 3, 1), (8, 4)),
        (date(2025, 1, 1), (52, 2)),
    ],
)
def test_weeks_and_remainder_days(visit_date, expected):
    duration = treatment_duration(visit_date, FIRST_VISIT)

    assert (duration.weeks, duration.days) == expected
    assert duration.before_first_visit is False


def test_total_days_matches_calendar_difference():
    for offset in range(0, 400, 3):
        duration = treatment_duration(FIRST_VISIT + timedelta(days=offset), FIRST_VISIT)
        assert duration.weeks * 7 + duration.days == offset
        assert 0 <= duration.days <= 6


@pytest.mark.parametrize("offset", [1, 6, 7, 30])
def test_visits_before_first_visit_clamp_to_zero(offset):
    duration = treatment_duration(FIRST_VISIT - timedelta(days=offset), FIRST_VISIT)

    assert duration == TreatmentDuration(weeks=0, days=0, before_first_visit=True)


def test_format_duration():
    assert format_duration(TreatmentDuration(1, 2)) == "1週2日"
    assert format_duration(TreatmentDuration(0, 0, before_first_visit=True)) == "初診前"


def test_elapsed_since_first_visit_uses_given_day():
    assert elapsed_since_first_visit(FIRST_VISIT, date(2024, 1, 15)) == TreatmentDuration(2, 0)
