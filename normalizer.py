"""Turn raw CSV rows into CanonicalEntry records.

Expected columns (header order is authoritative, not position):
    date, startTime, endTime, issue, description[, delete]
Legacy exports use ``hours`` instead of an end time; a handful of aliases
(``issueKey``, ``comment``, ``startDate``, ...) are accepted as well.
"""

import csv
import logging
from datetime import datetime
from typing import IO, Iterable

from errors import FormatError
from models import DEFAULT_START_TIME, CanonicalEntry
from patterns import Patterns
from timeutils import add_seconds, duration_hours, hours_to_seconds, parse_date, parse_time, round_quarter

logger = logging.getLogger(__name__)

DELETE_VALUES = {"true", "1", "yes"}
LONG_DURATION_HOURS = 10

ALIASES = {
    "date": ("date", "startDate"),
    "start": ("startTime", "time"),
    "end": ("endTime",),
    "issue": ("issue", "issueKey", "key"),
    "description": ("description", "comment"),
    "hours": ("hours", "timeSpent"),
    "delete": ("delete",),
}


def read_csv(stream: IO[str]) -> list[dict[str, str]]:
    """Read rows keyed by the (trimmed) header names."""
    reader = csv.reader(stream)
    try:
        header = next(reader)
    except StopIteration:
        return []

    header = [name.lstrip("\ufeff").strip() for name in header]
    rows = []
    for values in reader:
        if not any(value.strip() for value in values):
            continue
        row = {}
        for index, name in enumerate(header):
            row[name] = values[index].strip() if index < len(values) else ""
        rows.append(row)
    return rows


def _field(row: dict, name: str) -> str:
    for alias in ALIASES[name]:
        value = row.get(alias)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _parse_hours(value: str) -> float:
    if not Patterns.HOURS_VALUE.match(value):
        raise FormatError(f"Invalid hours value '{value}'")
    return round_quarter(float(value.replace(",", ".")))


def parse_row(row: dict, row_number: int | None = None, default_start=DEFAULT_START_TIME) -> CanonicalEntry:
    """Parse one row, raising FormatError on the first problem."""
    issue_key = _field(row, "issue")
    date_value = _field(row, "date")
    if not issue_key or not date_value:
        raise FormatError("Missing required field 'issue' or 'date'")

    day = parse_date(date_value)
    should_delete = _field(row, "delete").lower() in DELETE_VALUES
    start_value = _field(row, "start")
    end_value = _field(row, "end")
    hours_value = _field(row, "hours")

    if start_value and end_value:
        start_time = parse_time(start_value)
        end_time = parse_time(end_value)
        hours = duration_hours(datetime.combine(day, start_time), datetime.combine(day, end_time))
    elif hours_value:
        start_time = parse_time(start_value) if start_value else default_start
        hours = _parse_hours(hours_value)
        end = add_seconds(day, start_time, hours_to_seconds(hours))
        if end.date() != day:
            raise FormatError(f"{hours}h starting at {start_value or start_time} runs past midnight")
        end_time = end.time()
        if end_time == start_time and should_delete:
            end_time = None
    elif should_delete:
        start_time = parse_time(start_value) if start_value else default_start
        end_time = None
        hours = 0.0
    else:
        raise FormatError("Row needs startTime and endTime, or hours")

    if hours > LONG_DURATION_HOURS:
        logger.warning(f"Row {row_number}: long work duration ({hours}h) - please verify")

    return CanonicalEntry(
        date=day,
        start_time=start_time,
        end_time=end_time,
        duration_hours=hours,
        issue_key=issue_key,
        description=_field(row, "description"),
        should_delete=should_delete,
        row_number=row_number,
    )


def normalize(row: dict, row_number: int | None = None, default_start=DEFAULT_START_TIME) -> CanonicalEntry | None:
    """Parse one row; malformed rows are logged and return None."""
    try:
        return parse_row(row, row_number, default_start)
    except FormatError as e:
        logger.warning(f"Skipping row {row_number}: {e}")
        return None


def normalize_rows(
    rows: Iterable[dict], default_start=DEFAULT_START_TIME
) -> tuple[list[CanonicalEntry], list[str]]:
    """Normalize a batch.

    Returns:
        - entries: parsed rows, in input order
        - skipped: one message per rejected row
    """
    entries = []
    skipped = []
    # Row 1 is the header
    for row_number, row in enumerate(rows, start=2):
        try:
            entries.append(parse_row(row, row_number, default_start))
        except FormatError as e:
            logger.warning(f"Skipping row {row_number}: {e}")
            skipped.append(f"Row {row_number}: {e}")
    return entries, skipped


def dedupe(entries: list[CanonicalEntry]) -> tuple[list[CanonicalEntry], list[str]]:
    """Collapse rows repeating the same range and issue; the last one wins."""
    latest: dict[tuple, CanonicalEntry] = {}
    for entry in entries:
        latest[(entry.date, entry.start_time, entry.end_time, entry.issue_key, entry.should_delete)] = entry

    kept = []
    dropped = []
    for entry in entries:
        key = (entry.date, entry.start_time, entry.end_time, entry.issue_key, entry.should_delete)
        if latest[key] is entry:
            kept.append(entry)
        else:
            logger.warning(f"Row {entry.row_number}: duplicate of a later row, ignored")
            dropped.append(f"Row {entry.row_number}: duplicate of {entry.label()}")
    return kept, dropped
