from datetime import date

import pytest
from sqlalchemy.orm.exc import StaleDataError

from clinic_emr.errors import Conflict, NotFound, ValidationFailed
from clinic_emr.models.chart_entry import ChartEntryEventType
from clinic_emr.services.audit_view import ModificationFilter, list_modifications
from clinic_emr.services.chart_entries import ChartEntryService, SqlAlchemyChartEntryRepository
from clinic_emr.services.duration import treatment_duration
from clinic_emr.services.patients import list_patients

EDIT_REASON = "記載内容に誤りがあったため修正"
DELETE_REASON = "誤って登録されたため削除"


def _add(service, patient, **overrides):
    fields = {
        "visit_date": date(2024, 1, 10),
        "content": "初回評価を実施",
        "therapy_methods": ["電気療法"],
    }
    fields.update(overrides)
    return service.add_entry(patient.id, **fields)


def _rows_for(db, entry_id):
    listing = list_modifications(list_patients(db, with_entries=True))
    return [row for row in listing.rows if row.entry_id == entry_id]


def _state(entry):
    return (
        entry.content,
        list(entry.therapy_methods),
        entry.next_appointment,
        entry.modified_at,
        entry.modified_reason,
        entry.deleted_at,
        entry.delete_reason,
        entry.version,
    )


def test_create_entry_and_duration_from_first_visit(service, patient, clock):
    entry = _add(service, patient)

    assert entry.id
    assert entry.created_at.isoformat() == "2024-01-10T09:00:00+00:00"
    assert entry.is_deleted is False
    assert entry.modified_at is None
    duration = treatment_duration(entry.visit_date, patient.first_visit_date)
    assert (duration.weeks, duration.days) == (1, 2)


def test_edit_stamps_modification_and_keeps_identity(db, service, patient):
    entry = _add(service, patient)
    entry_id, created_at = entry.id, entry.created_at

    edited = service.edit_entry(
        patient.id,
        entry_id,
        content="初回評価を実施（訂正）",
        therapy_methods=["温熱療法"],
        next_appointment=date(2024, 1, 17),
        reason=EDIT_REASON,
    )

    assert edited.id == entry_id
    assert edited.created_at == created_at
    assert edited.content == "初回評価を実施（訂正）"
    assert edited.therapy_methods == ["温熱療法"]
    assert edited.next_appointment == date(2024, 1, 17)
    assert edited.modified_reason == EDIT_REASON
    assert edited.modified_at is not None
    assert edited.modified_at > created_at

    rows = _rows_for(db, entry_id)
    assert [row.type for row in rows] == ["edit"]
    assert rows[0].reason == EDIT_REASON


@pytest.mark.parametrize("reason", ["短い", "", "          ", "123456789"])
def test_edit_with_short_reason_is_rejected_without_change(service, patient, reason):
    entry = _add(service, patient)
    before = _state(entry)

    with pytest.raises(ValidationFailed) as excinfo:
        service.edit_entry(
            patient.id,
            entry.id,
            content="別の内容",
            therapy_methods=[],
            reason=reason,
        )

    assert [err.field for err in excinfo.value.errors] == ["reason"]
    reloaded = service.repo.get_entry(patient.id, entry.id)
    assert _state(reloaded) == before


def test_edit_with_empty_content_is_rejected(service, patient):
    entry = _add(service, patient)

    with pytest.raises(ValidationFailed) as excinfo:
        service.edit_entry(patient.id, entry.id, content="  ", therapy_methods=[], reason=EDIT_REASON)

    assert "content" in {err.field for err in excinfo.value.errors}
    assert service.repo.get_entry(patient.id, entry.id).content == "初回評価を実施"


def test_delete_supersedes_edit_in_history(db, service, patient):
    entry = _add(service, patient)
    service.edit_entry(patient.id, entry.id, content="修正後", therapy_methods=[], reason=EDIT_REASON)
    entry_id, created_at = entry.id, entry.created_at

    deleted = service.delete_entry(patient.id, entry_id, reason=DELETE_REASON)

    assert deleted.is_deleted is True
    assert deleted.deleted_at is not None
    assert deleted.delete_reason == DELETE_REASON
    assert deleted.id == entry_id
    assert deleted.created_at == created_at
    rows = _rows_for(db, entry_id)
    assert [row.type for row in rows] == ["delete"]
    assert rows[0].reason == DELETE_REASON


def test_deleted_entry_stays_in_collection(service, patient):
    kept = _add(service, patient, visit_date=date(2024, 1, 3))
    removed = _add(service, patient, visit_date=date(2024, 1, 5))
    service.delete_entry(patient.id, removed.id, reason=DELETE_REASON)

    all_ids = [entry.id for entry in service.list_entries(patient.id)]
    live_ids = [entry.id for entry in service.list_entries(patient.id, include_deleted=False)]

    assert all_ids == [removed.id, kept.id]
    assert live_ids == [kept.id]


def test_delete_is_terminal(service, patient):
    entry = _add(service, patient)
    service.delete_entry(patient.id, entry.id, reason=DELETE_REASON)

    with pytest.raises(Conflict):
        service.delete_entry(patient.id, entry.id, reason=DELETE_REASON)
    with pytest.raises(Conflict):
        service.edit_entry(patient.id, entry.id, content="再編集", therapy_methods=[], reason=EDIT_REASON)


def test_delete_with_short_reason_is_rejected(service, patient):
    entry = _add(service, patient)

    with pytest.raises(ValidationFailed):
        service.delete_entry(patient.id, entry.id, reason="短い")

    reloaded = service.repo.get_entry(patient.id, entry.id)
    assert reloaded.is_deleted is False
    assert reloaded.delete_reason is None


def test_conflict_is_reported_before_reason_validation(service, patient):
    entry = _add(service, patient)
    service.delete_entry(patient.id, entry.id, reason=DELETE_REASON)

    with pytest.raises(Conflict):
        service.delete_entry(patient.id, entry.id, reason="短い")


def test_unknown_patient_and_entry(service, patient):
    with pytest.raises(NotFound):
        service.add_entry("missing", visit_date=date(2024, 1, 10), content="内容")
    with pytest.raises(NotFound):
        service.edit_entry(patient.id, "missing", content="内容", therapy_methods=[], reason=EDIT_REASON)
    with pytest.raises(NotFound):
        service.delete_entry(patient.id, "missing", reason=DELETE_REASON)


def test_entry_of_another_patient_is_not_found(service, patient, make_patient):
    other = make_patient(last_name="佐藤", last_name_kana="サトウ")
    entry = _add(service, patient)

    with pytest.raises(NotFound):
        service.delete_entry(other.id, entry.id, reason=DELETE_REASON)


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"content": ""}, "content"),
        ({"visit_date": "2024-02-30"}, "visit_date"),
        ({"visit_date": None}, "visit_date"),
        ({"next_appointment": date(2024, 1, 9)}, "next_appointment"),
    ],
)
def test_add_entry_validation(service, patient, overrides, field):
    with pytest.raises(ValidationFailed) as excinfo:
        _add(service, patient, **overrides)

    assert field in {err.field for err in excinfo.value.errors}
    assert service.list_entries(patient.id) == []


def test_add_entry_accepts_iso_date_and_normalises_therapies(service, patient):
    entry = _add(
        service,
        patient,
        visit_date="2024-01-12",
        therapy_methods=[" 電気療法 ", "", "電気療法", "牽引"],
    )

    assert entry.visit_date == date(2024, 1, 12)
    assert entry.therapy_methods == ["電気療法", "牽引"]


def test_repeated_identical_edit_is_recorded_twice(service, patient):
    entry = _add(service, patient)
    kwargs = {"content": "同じ内容", "therapy_methods": [], "reason": EDIT_REASON}

    first = service.edit_entry(patient.id, entry.id, **kwargs)
    first_modified = first.modified_at
    second = service.edit_entry(patient.id, entry.id, **kwargs)

    assert second.modified_at > first_modified
    events = service.list_entry_history(patient.id, entry.id)
    assert [event.event_type for event in events] == [
        ChartEntryEventType.create,
        ChartEntryEventType.edit,
        ChartEntryEventType.edit,
    ]


def test_history_keeps_every_reason(service, patient):
    entry = _add(service, patient)
    service.edit_entry(patient.id, entry.id, content="一回目", therapy_methods=[], reason=EDIT_REASON)
    service.edit_entry(
        patient.id, entry.id, content="二回目", therapy_methods=[], reason="追記漏れがあったため再修正"
    )
    service.delete_entry(patient.id, entry.id, reason=DELETE_REASON)

    events = service.list_entry_history(patient.id, entry.id)

    assert [event.sequence for event in events] == [1, 2, 3, 4]
    assert [event.reason for event in events] == [
        None,
        EDIT_REASON,
        "追記漏れがあったため再修正",
        DELETE_REASON,
    ]
    assert events[1].snapshot["content"] == "一回目"
    assert events[2].snapshot["content"] == "二回目"
    assert events[3].snapshot["is_deleted"] is True
    assert events[0].snapshot["visit_date"] == "2024-01-10"


def test_history_for_unknown_entry(service, patient):
    with pytest.raises(NotFound):
        service.list_entry_history(patient.id, "missing")


def test_expected_version_mismatch_is_conflict(session_factory, clock, patient):
    writer_a = ChartEntryService(SqlAlchemyChartEntryRepository(session_factory()), now=clock)
    writer_b = ChartEntryService(SqlAlchemyChartEntryRepository(session_factory()), now=clock)
    entry = writer_a.add_entry(patient.id, visit_date=date(2024, 1, 10), content="初回評価を実施")
    read_version = entry.version

    writer_b.edit_entry(
        patient.id,
        entry.id,
        content="別端末での修正",
        therapy_methods=[],
        reason=EDIT_REASON,
        expected_version=read_version,
    )

    with pytest.raises(Conflict):
        writer_a.edit_entry(
            patient.id,
            entry.id,
            content="古い画面からの修正",
            therapy_methods=[],
            reason=EDIT_REASON,
            expected_version=read_version,
        )
    assert writer_a.repo.get_entry(patient.id, entry.id).content == "別端末での修正"


def test_stale_flush_is_reported_as_conflict(service, patient, monkeypatch):
    entry = _add(service, patient)

    def _stale_commit():
        raise StaleDataError("version mismatch")

    monkeypatch.setattr(service.repo, "commit", _stale_commit)

    with pytest.raises(Conflict):
        service.edit_entry(patient.id, entry.id, content="更新", therapy_methods=[], reason=EDIT_REASON)

    monkeypatch.undo()
    assert service.repo.get_entry(patient.id, entry.id).content == "初回評価を実施"


def test_edit_only_listing_excludes_deleted_entries(db, service, patient):
    edited = _add(service, patient)
    service.edit_entry(patient.id, edited.id, content="修正", therapy_methods=[], reason=EDIT_REASON)
    removed = _add(service, patient, visit_date=date(2024, 1, 11))
    service.delete_entry(patient.id, removed.id, reason=DELETE_REASON)

    listing = list_modifications(list_patients(db, with_entries=True), ModificationFilter(type="edit"))

    assert [row.entry_id for row in listing.rows] == [edited.id]


def test_reasons_are_stored_exactly_as_given(service, patient):
    edit_reason = "  記載内容に誤りがあったため修正  "
    delete_reason = "\t誤って登録されたため削除\n"
    entry = _add(service, patient)

    edited = service.edit_entry(patient.id, entry.id, content="修正", therapy_methods=[], reason=edit_reason)
    assert edited.modified_reason == edit_reason

    deleted = service.delete_entry(patient.id, entry.id, reason=delete_reason)
    assert deleted.delete_reason == delete_reason
    events = service.list_entry_history(patient.id, entry.id)
    assert [event.reason for event in events[1:]] == [edit_reason, delete_reason]


def test_reason_length_counts_surrounding_whitespace(service, patient):
    entry = _add(service, patient)

    edited = service.edit_entry(patient.id, entry.id, content="修正", therapy_methods=[], reason="abcdefghi ")

    assert edited.modified_reason == "abcdefghi "
