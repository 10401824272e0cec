"""Shared fixtures: an in-memory worklog store and record/entry factories."""

from dataclasses import replace
from datetime import date, datetime

import pytest

from errors import RemoteError
from issue_resolver import IssueResolver
from models import CanonicalEntry, RemoteRecord
from timeutils import parse_date, parse_time

ME = "me-123"
OTHER = "other-456"

MAPPING = {
    "ITST-1": {"id": "1001", "summary": "Internal tooling"},
    "ITST-2": {"id": "1002", "summary": "Meetings"},
    "ITST-3": {"id": "1003", "summary": "Support"},
}


class FakeStore:
    """Remote store double keeping worklogs in a dict and recording every call."""

    def __init__(self, records=()):
        self.records = {r.remote_id: r for r in records}
        self.calls = []
        self.next_id = 9000
        self.fail = {}  # (method, remote_id or issue_id) -> RemoteError

    def _check(self, method, key):
        error = self.fail.get((method, key))
        if error:
            raise error

    def fetch_records(self, date_from, date_to):
        self.calls.append(("fetch", date_from, date_to))
        return [r for r in self.records.values() if date_from <= r.date <= date_to]

    def create_record(self, issue_id, duration_seconds, day, start_time, description, author_id):
        self.calls.append(("create", issue_id, duration_seconds, day, start_time, description, author_id))
        self._check("create", issue_id)
        self.next_id += 1
        key = next(k for k, v in MAPPING.items() if int(v["id"]) == issue_id)
        self.records[self.next_id] = RemoteRecord(
            remote_id=self.next_id,
            date=day,
            start_time=start_time,
            duration_seconds=duration_seconds,
            author_id=author_id,
            issue_id=issue_id,
            issue_key=key,
            description=description,
            created=datetime(2026, 1, 1, 12, 0),
        )
        return self.next_id

    def update_record(self, remote_id, issue_id, duration_seconds, day, start_time, description, author_id):
        self.calls.append(("update", remote_id, issue_id, duration_seconds, day, start_time, description))
        self._check("update", remote_id)
        if remote_id not in self.records:
            raise RemoteError("Tempo: Resource not found.", 404)
        self.records[remote_id] = replace(
            self.records[remote_id],
            duration_seconds=duration_seconds,
            date=day,
            start_time=start_time,
            description=description,
        )

    def delete_record(self, remote_id):
        self.calls.append(("delete", remote_id))
        self._check("delete", remote_id)
        if remote_id not in self.records:
            raise RemoteError("Tempo: Resource not found.", 404)
        del self.records[remote_id]

    @property
    def writes(self):
        return [call for call in self.calls if call[0] != "fetch"]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def resolver():
    return IssueResolver(dict(MAPPING))


@pytest.fixture
def make_entry():
    def factory(day="2025-08-25", start="09:00:00", end="11:00:00", issue="ITST-1", description="Work", **kwargs):
        start_time = parse_time(start)
        end_time = parse_time(end) if end else None
        hours = kwargs.pop("duration_hours", None)
        if hours is None:
            if end_time:
                hours = (datetime.combine(date.min, end_time) - datetime.combine(date.min, start_time)).seconds / 3600
            else:
                hours = 0.0
        return CanonicalEntry(
            date=parse_date(day),
            start_time=start_time,
            end_time=end_time,
            duration_hours=hours,
            issue_key=issue,
            description=description,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_record():
    def factory(
        remote_id,
        day="2025-08-25",
        start="09:00:00",
        hours=2.0,
        issue="ITST-1",
        description="Work",
        author=ME,
        created=None,
        **kwargs,
    ):
        issue_id = int(MAPPING[issue]["id"]) if issue in MAPPING else None
        return RemoteRecord(
            remote_id=remote_id,
            date=parse_date(day),
            start_time=parse_time(start) if start else None,
            duration_seconds=int(hours * 3600),
            author_id=author,
            issue_id=issue_id,
            issue_key=issue,
            description=description,
            created=created,
            **kwargs,
        )

    return factory


def row(day="2025-08-25", start="09:00:00", end="11:00:00", issue="ITST-1", description="Work", delete=""):
    return {"date": day, "startTime": start, "endTime": end, "issue": issue, "description": description, "delete": delete}

