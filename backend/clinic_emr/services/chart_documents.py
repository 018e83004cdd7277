from __future__ import annotations

import logging
from typing import Iterable

from clinic_emr.models.chart_entry import ChartEntry
from clinic_emr.models.patient import Patient
from clinic_emr.services.chart_export import (
    ExportFailed,
    ExportFormat,
    build_chart_csv,
    build_chart_json,
    build_chart_text,
)
from clinic_emr.services.chart_pdf import build_chart_pdf

logger = logging.getLogger("clinic_emr.export")

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
    "text": "text/plain; charset=utf-8",
    "pdf": "application/pdf",
}


def render_export(
    patient: Patient, entries: Iterable[ChartEntry], export_format: ExportFormat
) -> tuple[bytes, str]:
    """Render a patient's chart in the requested format.

    Returns the document bytes and its media type. Deleted entries are always
    included and flagged.
    """
    if export_format not in MEDIA_TYPES:
        raise ExportFailed(export_format, f"unsupported export format: {export_format}")
    entries = list(entries)
    try:
        if export_format == "csv":
            body = build_chart_csv(patient, entries).encode("utf-8")
        elif export_format == "json":
            body = build_chart_json(patient, entries).encode("utf-8")
        elif export_format == "text":
            body = build_chart_text(patient, entries).encode("utf-8")
        else:
            body = build_chart_pdf(patient, entries)
    except Exception as exc:
        logger.exception("Chart export failed (%s) for patient %s", export_format, patient.id)
        raise ExportFailed(export_format, f"{export_format} export failed") from exc
    logger.info("Chart exported as %s for patient %s (%s entries)", export_format, patient.id, len(entries))
    return body, MEDIA_TYPES[export_format]
