from __future__ import annotations

from io import BytesIO
from typing import Iterable

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfgen import canvas

from clinic_emr.core.settings import settings
from clinic_emr.models.chart_entry import ChartEntry
from clinic_emr.models.patient import Patient
from clinic_emr.services.chart_export import (
    DELETED_LABEL,
    export_rows,
    format_jp_date,
    format_jp_datetime,
)

FONT_NAME = "HeiseiKakuGo-W5"
LEFT = 20 * mm
RIGHT = 190 * mm
TOP = 280 * mm
BOTTOM = 20 * mm
CONTENT_WIDTH = RIGHT - LEFT


def _ensure_font() -> None:
    if FONT_NAME not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(UnicodeCIDFont(FONT_NAME))


def wrap_text(text: str, font_size: float, max_width: float = CONTENT_WIDTH) -> list[str]:
    """Split text into lines that fit ``max_width``, character by character.

    Japanese prose has no spaces to break on, so width is measured per glyph.
    """
    lines: list[str] = []
    for paragraph in text.splitlines() or [""]:
        current = ""
        for char in paragraph:
            candidate = current + char
            if current and pdfmetrics.stringWidth(candidate, FONT_NAME, font_size) > max_width:
                lines.append(current)
                current = char
            else:
                current = candidate
        lines.append(current)
    return lines


class _ChartCanvas:
    def __init__(self, buffer: BytesIO):
        self.pdf = canvas.Canvas(buffer, pagesize=A4)
        self.y = TOP

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < BOTTOM:
            self.pdf.showPage()
            self.y = TOP

    def line(self, text: str, *, size: float = 10, step: float = 6 * mm, color=colors.black) -> None:
        self.ensure_space(step)
        self.pdf.setFont(FONT_NAME, size)
        self.pdf.setFillColor(color)
        self.pdf.drawString(LEFT, self.y, text)
        self.y -= step

    def paragraph(self, text: str, *, size: float = 10) -> None:
        for chunk in wrap_text(text, size):
            self.line(chunk, size=size, step=5 * mm)

    def rule(self) -> None:
        self.ensure_space(4 * mm)
        self.pdf.setStrokeColor(colors.lightgrey)
        self.pdf.line(LEFT, self.y, RIGHT, self.y)
        self.y -= 4 * mm


def _draw_header(chart: _ChartCanvas) -> None:
    if settings.clinic_name:
        chart.line(settings.clinic_name, size=10, step=6 * mm)
    chart.line("診療記録", size=16, step=10 * mm)


def _draw_patient_block(chart: _ChartCanvas, patient: Patient) -> None:
    chart.line(f"患者ID: {patient.id}", size=11)
    chart.line(f"氏名: {patient.display_name}", size=11)
    chart.line(f"カナ: {patient.display_name_kana}", size=11)
    if patient.date_of_birth:
        chart.line(f"生年月日: {format_jp_date(patient.date_of_birth, weekday=False)}", size=11)
    chart.line(f"初診日: {format_jp_date(patient.first_visit_date, weekday=False)}", size=11)
    chart.rule()


def build_chart_pdf(patient: Patient, entries: Iterable[ChartEntry]) -> bytes:
    _ensure_font()
    buffer = BytesIO()
    chart = _ChartCanvas(buffer)
    _draw_header(chart)
    _draw_patient_block(chart, patient)

    rows = export_rows(patient, entries)
    if not rows:
        chart.line("診療記録はありません。")
    for row in rows:
        entry = row.entry
        heading = f"{format_jp_date(entry.visit_date)}  初診から{row.period_label}"
        if entry.is_deleted:
            heading += f"  [{DELETED_LABEL}]"
        chart.line(heading, size=12, step=7 * mm, color=colors.red if entry.is_deleted else colors.black)
        chart.paragraph(entry.content)
        if entry.therapy_methods:
            chart.paragraph(f"実施療法: {'、'.join(entry.therapy_methods)}")
        if entry.next_appointment:
            chart.line(f"次回予約: {format_jp_date(entry.next_appointment)}")
        if entry.modified_at:
            chart.paragraph(
                f"修正: {format_jp_datetime(entry.modified_at)} 理由: {entry.modified_reason or ''}"
            )
        if entry.is_deleted:
            chart.paragraph(
                f"削除: {format_jp_datetime(entry.deleted_at)} 理由: {entry.delete_reason or ''}"
            )
        chart.rule()

    chart.pdf.showPage()
    chart.pdf.save()
    return buffer.getvalue()
