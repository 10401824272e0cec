"""Convert Tempo worklogs to RemoteRecords and filter out the ones we cannot touch."""

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from errors import FormatError
from issue_resolver import derive_issue_key
from models import DEFAULT_START_TIME, SYSTEM_AUTHOR_ID, ReconcileConfig, RemoteRecord
from timeutils import parse_date, parse_time, start_of_previous_year

logger = logging.getLogger(__name__)


def _parse_created(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def record_from_api(
    raw: dict,
    key_for_id: Callable[[int | None], str | None] | None = None,
    system_author_id: str = SYSTEM_AUTHOR_ID,
) -> RemoteRecord:
    """Build a RemoteRecord from a Tempo API worklog payload."""
    issue = raw.get("issue") or {}
    author = raw.get("author") or {}
    author_id = author.get("accountId") or raw.get("authorAccountId")
    issue_id = issue.get("id")
    issue_id = int(issue_id) if issue_id is not None else None

    start_value = raw.get("startTime")
    start_time = parse_time(start_value) if start_value else None

    return RemoteRecord(
        remote_id=int(raw["tempoWorklogId"]),
        date=parse_date(raw["startDate"]),
        start_time=start_time,
        duration_seconds=int(raw.get("timeSpentSeconds", 0)),
        author_id=author_id,
        issue_id=issue_id,
        issue_key=derive_issue_key(issue.get("key"), issue_id, raw.get("description"), key_for_id),
        description=raw.get("description") or "",
        created=_parse_created(raw.get("createdAt") or raw.get("created")),
        is_system_authored=author_id == system_author_id,
    )


def records_from_api(
    raw_worklogs: Iterable[dict],
    key_for_id: Callable[[int | None], str | None] | None = None,
    system_author_id: str = SYSTEM_AUTHOR_ID,
) -> list[RemoteRecord]:
    """Convert a page of worklogs, skipping payloads that cannot be parsed."""
    records = []
    for raw in raw_worklogs:
        try:
            records.append(record_from_api(raw, key_for_id, system_author_id))
        except (KeyError, TypeError, ValueError, FormatError) as e:
            logger.warning(f"Ignoring unreadable worklog {raw.get('tempoWorklogId', '?')}: {e}")
    return records


def filter_actionable(
    records: Iterable[RemoteRecord],
    current_user_id: str | None,
    config: ReconcileConfig | None = None,
    today: date | None = None,
) -> list[RemoteRecord]:
    """Keep only worklogs the import may safely update or delete.

    - System/anonymous worklogs are always dropped.
    - Worklogs before the recency cutoff are dropped unless they are the
      current user's or fall within the grace window.
    """
    config = config or ReconcileConfig()
    today = today or date.today()
    cutoff = config.recency_cutoff or start_of_previous_year(today)
    grace_start = today - timedelta(days=config.grace_days)

    records = list(records)
    actionable = []
    for record in records:
        if record.is_system_authored or record.author_id == config.system_author_id:
            continue
        if record.date < cutoff:
            is_own = current_user_id is not None and record.author_id == current_user_id
            if not (is_own or record.date >= grace_start):
                continue
        actionable.append(record)

    skipped = len(records) - len(actionable)
    logger.info(f"Filtered {len(records)} -> {len(actionable)} actionable worklogs")
    if skipped:
        logger.info(f"Skipped {skipped} system-authored or older worklogs")
    return actionable


def filter_own(
    records: Iterable[RemoteRecord], current_user_id: str | None, config: ReconcileConfig | None = None
) -> list[RemoteRecord]:
    """The current user's worklogs, minus system-authored ones. Used when clearing a range."""
    config = config or ReconcileConfig()
    if current_user_id is None:
        return []
    return [
        record
        for record in records
        if record.author_id == current_user_id
        and not record.is_system_authored
        and record.author_id != config.system_author_id
    ]


def default_start_record(record: RemoteRecord, default_start=DEFAULT_START_TIME) -> RemoteRecord:
    """Return the record with a missing start time filled in."""
    if record.start_time is not None:
        return record
    return replace(record, start_time=default_start)
