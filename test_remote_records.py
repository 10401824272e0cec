"""Tests for worklog payload conversion and the actionable-record filter."""

from datetime import date, datetime, time, timezone

import pytest

from conftest import ME, OTHER
from models import SYSTEM_AUTHOR_ID, UNKNOWN_ISSUE, ReconcileConfig
from remote_records import default_start_record, filter_actionable, record_from_api, records_from_api

TODAY = date(2026, 10, 18)


def worklog(**overrides):
    raw = {
        "tempoWorklogId": 1764,
        "issue": {"id": 1001, "key": "ITST-1"},
        "timeSpentSeconds": 5400,
        "startDate": "2026-10-12",
        "startTime": "09:00:00",
        "description": "Working on issue ITST-1",
        "createdAt": "2026-10-12T10:00:00Z",
        "author": {"accountId": ME},
    }
    raw.update(overrides)
    return raw


# ---------------------------------------------------------------------------
# record_from_api
# ---------------------------------------------------------------------------

class TestRecordFromApi:

    def test_full_payload(self):
        record = record_from_api(worklog())
        assert record.remote_id == 1764
        assert record.date == date(2026, 10, 12)
        assert record.start_time == time(9, 0)
        assert record.duration_seconds == 5400
        assert record.duration_hours == 1.5
        assert record.author_id == ME
        assert record.issue_id == 1001
        assert record.issue_key == "ITST-1"
        assert record.created == datetime(2026, 10, 12, 10, 0, tzinfo=timezone.utc)
        assert record.is_system_authored is False

    def test_key_from_reverse_lookup(self):
        record = record_from_api(worklog(issue={"id": 1002}), key_for_id={1002: "ITST-2"}.get)
        assert record.issue_key == "ITST-2"

    def test_key_from_description(self):
        record = record_from_api(worklog(issue={"id": 5}, description="Working on issue ABC-9"))
        assert record.issue_key == "ABC-9"

    def test_unknown_key(self):
        record = record_from_api(worklog(issue={"id": 5}, description="Team Daily"))
        assert record.issue_key == UNKNOWN_ISSUE
        assert not record.has_known_issue

    def test_missing_start_time(self):
        record = record_from_api(worklog(startTime=None))
        assert record.start_time is None
        assert record.start == datetime(2026, 10, 12, 9, 0)

    def test_system_author(self):
        record = record_from_api(worklog(author={"accountId": SYSTEM_AUTHOR_ID}))
        assert record.is_system_authored is True

    def test_custom_system_author(self):
        record = record_from_api(worklog(author={"accountId": "ghost"}), system_author_id="ghost")
        assert record.is_system_authored is True

    def test_unreadable_payloads_are_skipped(self, caplog):
        records = records_from_api([worklog(), worklog(tempoWorklogId=2, startDate="bad"), {"startDate": "2026-10-12"}])
        assert [r.remote_id for r in records] == [1764]
        assert "Ignoring unreadable worklog 2" in caplog.text

    def test_default_start_record(self):
        record = record_from_api(worklog(startTime=None))
        filled = default_start_record(record, time(8, 0))
        assert filled.start_time == time(8, 0)
        assert record.start_time is None
        assert default_start_record(filled) is filled


# ---------------------------------------------------------------------------
# filter_actionable
# ---------------------------------------------------------------------------

class TestFilterActionable:

    @pytest.mark.parametrize(
        "day, author, kept",
        [
            ("2026-10-12", ME, True),
            ("2026-10-12", OTHER, True),  # after the cutoff
            ("2024-06-01", ME, True),  # own worklog, any age
            ("2024-06-01", OTHER, False),  # before the cutoff
            ("2025-01-01", OTHER, True),  # cutoff day itself
            ("2024-12-31", OTHER, False),
        ],
    )
    def test_recency_cutoff(self, make_record, day, author, kept):
        records = [make_record(1, day=day, author=author)]
        assert bool(filter_actionable(records, ME, today=TODAY)) is kept

    @pytest.mark.parametrize("day", ["2026-10-18", "2024-06-01"])
    def test_system_authored_always_dropped(self, make_record, day):
        records = [
            make_record(1, day=day, author=SYSTEM_AUTHOR_ID, is_system_authored=True),
            make_record(2, day=day, author=SYSTEM_AUTHOR_ID),
        ]
        assert filter_actionable(records, SYSTEM_AUTHOR_ID, today=TODAY) == []

    def test_grace_window(self, make_record):
        config = ReconcileConfig(recency_cutoff=date(2026, 10, 17), grace_days=3)
        records = [
            make_record(1, day="2026-10-15", author=OTHER),
            make_record(2, day="2026-10-14", author=OTHER),
        ]
        kept = filter_actionable(records, ME, config, today=TODAY)
        assert [r.remote_id for r in kept] == [1]

    def test_unknown_current_user(self, make_record):
        records = [make_record(1, day="2024-06-01", author=None)]
        assert filter_actionable(records, None, today=TODAY) == []
