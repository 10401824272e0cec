"""Export Tempo worklogs as an import-ready CSV."""

import csv
import logging
from datetime import time
from typing import IO, Iterable

from models import RemoteRecord
from patterns import Patterns

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["date", "startTime", "endTime", "hours", "issue", "description", "delete"]
MAX_DESCRIPTION = 80
LAST_SECOND = time(23, 59, 59)


def clean_description(description: str, issue_key: str) -> str:
    """Drop anonymized text and redundant issue mentions, truncate long text."""
    if not description or description == Patterns.ANONYMIZED_DESCRIPTION:
        return f"Working on {issue_key}"

    cleaned = description.replace(f"Working on issue {issue_key}", "").strip()
    if not cleaned:
        return f"Working on {issue_key}"

    if len(cleaned) > MAX_DESCRIPTION:
        cleaned = cleaned[: MAX_DESCRIPTION - 3] + "..."
    return cleaned


def _end_time(record: RemoteRecord) -> time:
    # Import rows cannot cross midnight
    if record.end.date() != record.date:
        logger.warning(f"Worklog {record.label()} runs past midnight, exporting it as ending at 23:59:59")
        return LAST_SECOND
    return record.end.time()


def prepare_export_rows(records: Iterable[RemoteRecord], issue_keys: set[str] | None = None) -> list[dict]:
    """Rows in import format, sorted by date and start time.

    Worklogs with an UNKNOWN issue key are left out; so are keys outside
    ``issue_keys`` when it is given.
    """
    rows = []
    for record in records:
        if not record.has_known_issue:
            continue
        if issue_keys is not None and record.issue_key not in issue_keys:
            continue
        rows.append(
            {
                "date": record.date.isoformat(),
                "startTime": f"{record.start:%H:%M:%S}",
                "endTime": f"{_end_time(record):%H:%M:%S}",
                "hours": f"{record.duration_hours:g}",
                "issue": record.issue_key,
                "description": clean_description(record.description, record.issue_key),
                "delete": "",
            }
        )

    rows.sort(key=lambda row: (row["date"], row["startTime"]))
    return rows


def write_csv(rows: list[dict], stream: IO[str]) -> None:
    writer = csv.DictWriter(stream, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)


def summarize(rows: list[dict]) -> dict[str, float]:
    """Booked hours per issue, largest first."""
    totals: dict[str, float] = {}
    for row in rows:
        totals[row["issue"]] = totals.get(row["issue"], 0.0) + float(row["hours"])
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))
