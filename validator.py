"""Detect overlapping time ranges inside a batch and against Tempo."""

import logging
from collections import defaultdict
from typing import Iterable

from errors import ConflictError
from models import CanonicalEntry, ConflictReport, RemoteRecord
from timeutils import overlaps

logger = logging.getLogger(__name__)


def _ranged(entries: Iterable[CanonicalEntry]) -> list[CanonicalEntry]:
    # Delete rows do not book time, so they cannot collide
    return [e for e in entries if not e.should_delete and e.end_time is not None]


def is_same_entry(entry: CanonicalEntry, record: RemoteRecord) -> bool:
    """True when the record is exactly what the entry would book.

    Same start, same end (start + rounded duration) and the same issue key.
    Records with an UNKNOWN key never qualify.
    """
    return (
        record.has_known_issue
        and entry.issue_key == record.issue_key
        and entry.start == record.start
        and entry.booked_end == record.end
    )


def overlapping_records(entry: CanonicalEntry, records: Iterable[RemoteRecord]) -> list[RemoteRecord]:
    """Records on the entry's date whose range overlaps the entry's range."""
    return [
        record
        for record in records
        if record.date == entry.date and overlaps(entry.start, entry.end, record.start, record.end)
    ]


def find_internal_conflicts(entries: Iterable[CanonicalEntry]) -> list[ConflictReport]:
    """Compare every pair of entries on the same date.

    Two rows with the same start, end and issue are duplicates, not conflicts.
    """
    by_date: dict = defaultdict(list)
    for entry in _ranged(entries):
        by_date[entry.date].append(entry)

    conflicts = []
    for day in sorted(by_date):
        day_entries = sorted(by_date[day], key=lambda e: (e.start_time, e.end_time))
        for i, first in enumerate(day_entries):
            for second in day_entries[i + 1:]:
                if not overlaps(first.start, first.end, second.start, second.end):
                    continue
                exact = first.start_time == second.start_time and first.end_time == second.end_time
                if exact and first.issue_key == second.issue_key:
                    continue
                overlap_type = "exact" if exact else "partial"
                conflicts.append(
                    ConflictReport(
                        entry=first,
                        other=second,
                        overlap_type=overlap_type,
                        description=f"{day.isoformat()} - {overlap_type} overlap: {first.label()} vs {second.label()}",
                    )
                )
    return conflicts


def check_internal_conflicts(entries: list[CanonicalEntry]) -> None:
    """Raise ConflictError when the batch overlaps itself."""
    conflicts = find_internal_conflicts(entries)
    if conflicts:
        for index, conflict in enumerate(conflicts, start=1):
            logger.error(f"Conflict {index}: {conflict.description}")
        raise ConflictError(conflicts)
    logger.info(f"All {len(entries)} entries validated - no internal conflicts")


def find_external_conflicts(
    entries: Iterable[CanonicalEntry], records: list[RemoteRecord]
) -> list[ConflictReport]:
    """Overlaps between the batch and existing worklogs on the same dates.

    These are reported, not fatal: the classifier resolves them by replacing
    the existing worklogs. A worklog sitting at another entry's own key is
    that entry's to keep or change, so it is not reported.
    """
    entries = list(entries)
    keys = {entry.identity for entry in entries}
    conflicts = []
    for entry in _ranged(entries):
        for record in overlapping_records(entry, records):
            if is_same_entry(entry, record):
                continue
            record_key = (record.date, record.start.time(), record.issue_key)
            if record.has_known_issue and record_key != entry.identity and record_key in keys:
                continue
            exact = entry.start == record.start and entry.end == record.end
            overlap_type = "exact" if exact else "partial"
            conflicts.append(
                ConflictReport(
                    entry=entry,
                    other=record,
                    overlap_type=overlap_type,
                    description=f"Import {entry.label()} overlaps existing {record.label()} ({record.issue_key})",
                )
            )

    if conflicts:
        logger.warning(f"Found {len(conflicts)} overlap(s) with existing worklogs, they will be replaced")
    return conflicts
