from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Literal

from clinic_emr.core.settings import clinic_tz
from clinic_emr.models.chart_entry import ChartEntry
from clinic_emr.models.patient import Patient
from clinic_emr.services.duration import TreatmentDuration, format_duration, treatment_duration

ExportFormat = Literal["csv", "json", "text", "pdf"]

WEEKDAYS_JA = "月火水木金土日"

CSV_COLUMNS = [
    "施術日",
    "初診からの期間",
    "施術内容",
    "実施した物療",
    "次回予約",
    "状態",
    "修正日時",
    "修正理由",
    "削除日時",
    "削除理由",
]

DELETED_LABEL = "削除済み"
ACTIVE_LABEL = "有効"


class ExportFailed(Exception):
    def __init__(self, export_format: str, detail: str):
        super().__init__(detail)
        self.export_format = export_format
        self.detail = detail


@dataclass(frozen=True)
class ExportRow:
    entry: ChartEntry
    duration: TreatmentDuration

    @property
    def period_label(self) -> str:
        return format_duration(self.duration)


def format_jp_date(value: date | None, *, weekday: bool = True) -> str:
    if value is None:
        return ""
    label = f"{value.year}年{value.month}月{value.day}日"
    if weekday:
        label += f"({WEEKDAYS_JA[value.weekday()]})"
    return label


def format_jp_datetime(value: datetime | None, tz: tzinfo | None = None) -> str:
    """Render a stored UTC timestamp as clinic-local wall time."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(tz or clinic_tz())
    return f"{format_jp_date(value.date(), weekday=False)} {value:%H:%M:%S}"


def export_rows(patient: Patient, entries: Iterable[ChartEntry]) -> list[ExportRow]:
    ordered = sorted(entries, key=lambda entry: (entry.visit_date, entry.created_at), reverse=True)
    return [
        ExportRow(entry=entry, duration=treatment_duration(entry.visit_date, patient.first_visit_date))
        for entry in ordered
    ]


def export_filename(patient: Patient, export_format: ExportFormat, today: date | None = None) -> str:
    extension = "txt" if export_format == "text" else export_format
    stamp = (today or date.today()).strftime("%Y%m%d")
    return f"chart_{patient.id}_{stamp}.{extension}"


def build_chart_csv(patient: Patient, entries: Iterable[ChartEntry]) -> str:
    buffer = io.StringIO()
    buffer.write("\ufeff")
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["患者情報"])
    writer.writerow(["氏名", patient.display_name])
    writer.writerow(["フリガナ", patient.display_name_kana])
    writer.writerow(["初診日", format_jp_date(patient.first_visit_date, weekday=False)])
    writer.writerow([])
    writer.writerow(["診療記録"])
    writer.writerow(CSV_COLUMNS)
    for row in export_rows(patient, entries):
        entry = row.entry
        writer.writerow(
            [
                format_jp_date(entry.visit_date),
                row.period_label,
                entry.content,
                "、".join(entry.therapy_methods or []),
                format_jp_date(entry.next_appointment),
                DELETED_LABEL if entry.is_deleted else ACTIVE_LABEL,
                format_jp_datetime(entry.modified_at),
                entry.modified_reason or "",
                format_jp_datetime(entry.deleted_at),
                entry.delete_reason or "",
            ]
        )
    return buffer.getvalue()


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def build_chart_json(patient: Patient, entries: Iterable[ChartEntry]) -> str:
    data = {
        "patient": {
            "id": patient.id,
            "name": patient.display_name,
            "nameKana": patient.display_name_kana,
            "dateOfBirth": _iso(patient.date_of_birth),
            "firstVisitDate": _iso(patient.first_visit_date),
        },
        "chartEntries": [
            {
                "id": row.entry.id,
                "date": _iso(row.entry.visit_date),
                "treatmentPeriod": row.period_label,
                "weeks": row.duration.weeks,
                "days": row.duration.days,
                "content": row.entry.content,
                "therapyMethods": list(row.entry.therapy_methods or []),
                "nextAppointment": _iso(row.entry.next_appointment),
                "createdAt": _iso(row.entry.created_at),
                "modifiedAt": _iso(row.entry.modified_at),
                "modifiedReason": row.entry.modified_reason,
                "isDeleted": row.entry.is_deleted,
                "deletedAt": _iso(row.entry.deleted_at),
                "deleteReason": row.entry.delete_reason,
            }
            for row in export_rows(patient, entries)
        ],
    }
    return json.dumps(data, ensure_ascii=False, indent=2)


def build_chart_text(patient: Patient, entries: Iterable[ChartEntry]) -> str:
    lines = [
        "=== 診療記録 ===",
        "",
        "【患者情報】",
        f"氏名: {patient.display_name}",
        f"フリガナ: {patient.display_name_kana}",
        f"初診日: {format_jp_date(patient.first_visit_date, weekday=False)}",
        "",
        "【診療記録一覧】",
        "",
    ]
    rows = export_rows(patient, entries)
    if not rows:
        lines.append("診療記録はありません。")
    for row in rows:
        entry = row.entry
        heading = f"施術日: {format_jp_date(entry.visit_date)}"
        if entry.is_deleted:
            heading += f" [{DELETED_LABEL}]"
        lines.append(heading)
        lines.append(f"初診からの期間: {row.period_label}")
        lines.append("施術内容:")
        lines.append(entry.content)
        if entry.therapy_methods:
            lines.append(f"実施した物療: {'、'.join(entry.therapy_methods)}")
        if entry.next_appointment:
            lines.append(f"次回予約: {format_jp_date(entry.next_appointment)}")
        if entry.modified_at:
            lines.append(f"修正日時: {format_jp_datetime(entry.modified_at)}")
            lines.append(f"修正理由: {entry.modified_reason or ''}")
        if entry.is_deleted:
            lines.append(f"削除日時: {format_jp_datetime(entry.deleted_at)}")
            lines.append(f"削除理由: {entry.delete_reason or ''}")
        lines.extend(["", "---", ""])
    return "\n".join(lines) + "\n"

