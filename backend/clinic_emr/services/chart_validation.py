from __future__ import annotations

from datetime import date, datetime
from typing import Iterable

from clinic_emr.core.settings import MIN_REASON_LENGTH
from clinic_emr.errors import FieldError


def coerce_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def normalize_therapy_methods(methods: Iterable[str] | None) -> list[str]:
    seen: list[str] = []
    for method in methods or []:
        cleaned = str(method).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def validate_content(content: str | None) -> list[FieldError]:
    if content is None or not str(content).strip():
        return [FieldError("content", "施術内容を入力してください")]
    return []


def validate_reason(
    reason: str | None, *, field: str, label: str, min_length: int = MIN_REASON_LENGTH
) -> list[FieldError]:
    text = reason or ""
    if len(text) < min_length or not text.strip():
        return [FieldError(field, f"{label}は{min_length}文字以上で入力してください")]
    return []


def validate_next_appointment(
    next_appointment: object, visit_date: date | None
) -> tuple[date | None, list[FieldError]]:
    if next_appointment in (None, ""):
        return None, []
    parsed = coerce_date(next_appointment)
    if parsed is None:
        return None, [FieldError("next_appointment", "次回予約日が正しくありません")]
    if visit_date is not None and parsed < visit_date:
        return None, [FieldError("next_appointment", "次回予約日は施術日以降を指定してください")]
    return parsed, []


def validate_new_entry(
    visit_date: object, content: str | None, next_appointment: object
) -> tuple[date | None, date | None, list[FieldError]]:
    errors: list[FieldError] = []
    parsed_date = coerce_date(visit_date)
    if parsed_date is None:
        errors.append(FieldError("visit_date", "施術日が正しくありません"))
    errors.extend(validate_content(content))
    parsed_next, next_errors = validate_next_appointment(next_appointment, parsed_date)
    errors.extend(next_errors)
    return parsed_date, parsed_next, errors


def validate_entry_changes(
    visit_date: date,
    content: str | None,
    next_appointment: object,
    reason: str | None,
    *,
    min_length: int = MIN_REASON_LENGTH,
) -> tuple[date | None, list[FieldError]]:
    errors = validate_content(content)
    parsed_next, next_errors = validate_next_appointment(next_appointment, visit_date)
    errors.extend(next_errors)
    errors.extend(validate_reason(reason, field="reason", label="修正理由", min_length=min_length))
    return parsed_next, errors
