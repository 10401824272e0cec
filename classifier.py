"""Classify import entries against existing worklogs.

Every entry lands in exactly one bag:

- delete:    row flagged for deletion and a worklog exists at its key
- replace:   the entry overlaps existing worklogs; delete them, create the entry
- add:       nothing exists at the key and nothing overlaps
- update:    the worklog at the key differs only in patchable fields
- no_change: the worklog at the key already matches

Delete rows without a target are skipped (nothing to delete). A worklog at
one entry's key is never deleted on behalf of another entry, and no worklog
is listed in two operations.
"""

import logging
from collections import defaultdict

from models import (
    CanonicalEntry,
    DeleteOperation,
    OperationSet,
    RemoteRecord,
    ReplaceOperation,
    UpdateOperation,
)
from validator import is_same_entry, overlapping_records

logger = logging.getLogger(__name__)


def _recency(record: RemoteRecord) -> tuple:
    created = record.created.timestamp() if record.created else float("-inf")
    return (created, record.remote_id)


def build_key_index(records: list[RemoteRecord]) -> dict[tuple, list[RemoteRecord]]:
    """Index records by (date, start time, issue key), newest first.

    Records with an UNKNOWN issue key are left out: they can only be matched
    by overlap.
    """
    index: dict[tuple, list[RemoteRecord]] = defaultdict(list)
    for record in records:
        if record.has_known_issue:
            index[(record.date, record.start.time(), record.issue_key)].append(record)
    for group in index.values():
        group.sort(key=_recency, reverse=True)
    return dict(index)


def differences(entry: CanonicalEntry, record: RemoteRecord) -> list[str]:
    """Human-readable list of fields where the record differs from the entry."""
    diffs = []
    if entry.duration_seconds != record.duration_seconds:
        diffs.append(f"hours: {record.duration_hours}h -> {entry.duration_hours}h")
    if entry.description != record.description:
        diffs.append(f'description: "{record.description}" -> "{entry.description}"')
    if entry.start_time != record.start.time():
        diffs.append(f"time: {record.start:%H:%M:%S} -> {entry.start_time:%H:%M:%S}")
    if entry.date != record.date:
        diffs.append(f"date: {record.date} -> {entry.date}")
    if entry.issue_key != record.issue_key:
        diffs.append(f"issue: {record.issue_key} -> {entry.issue_key}")
    return diffs


def _ordered(records: list[RemoteRecord]) -> tuple[RemoteRecord, ...]:
    unique = {record.remote_id: record for record in records}
    return tuple(sorted(unique.values(), key=lambda r: (r.start, r.remote_id)))


def classify_entry(
    entry: CanonicalEntry,
    records: list[RemoteRecord],
    key_index: dict[tuple, list[RemoteRecord]],
    operations: OperationSet,
    unavailable: set[int] | None = None,
) -> str | None:
    """Classify one entry into ``operations``; return the bag name or None.

    ``unavailable`` holds remote ids this entry must not delete: worklogs
    matched at the key of another batch entry, or already listed in an
    earlier replace.
    """
    unavailable = unavailable or set()
    matches = [r for r in key_index.get(entry.identity, []) if r.remote_id not in unavailable]
    candidate = matches[0] if matches else None

    if entry.should_delete:
        if candidate:
            operations.delete.append(DeleteOperation(entry=entry, remote_id=candidate.remote_id))
            logger.debug(f"{entry.label()} -> DELETE ID:{candidate.remote_id}")
            return "delete"
        logger.debug(f"{entry.label()} -> DELETE skipped (not found)")
        return None

    # Older duplicates at the same key are folded into a replace
    overlapping = overlapping_records(entry, records) + matches[1:]
    overlapping = [r for r in overlapping if r.remote_id not in unavailable]
    if candidate and is_same_entry(entry, candidate):
        # An identical worklog is the update target, not a conflict
        overlapping = [r for r in overlapping if r.remote_id != candidate.remote_id]

    if overlapping:
        # Deleting the rest but keeping the candidate would leave a duplicate
        conflicting = overlapping + ([candidate] if candidate else [])
        operations.replace.append(ReplaceOperation(entry=entry, conflicting_worklogs=_ordered(conflicting)))
        logger.debug(f"{entry.label()} -> REPLACE (remove {len(operations.replace[-1].conflicting_worklogs)}, add 1)")
        return "replace"

    if candidate is None:
        operations.add.append(entry)
        logger.debug(f"{entry.label()} -> ADD")
        return "add"

    diffs = differences(entry, candidate)
    if not diffs:
        operations.no_change.append(entry)
        logger.debug(f"{entry.label()} -> NO CHANGE")
        return "no_change"

    operations.update.append(
        UpdateOperation(
            entry=entry,
            remote_id=candidate.remote_id,
            previous_duration_hours=candidate.duration_hours,
            previous_description=candidate.description,
        )
    )
    logger.debug(f"{entry.label()} -> UPDATE ({', '.join(diffs)})")
    return "update"


def classify(entries: list[CanonicalEntry], records: list[RemoteRecord]) -> OperationSet:
    """Classify a conflict-free batch against the filtered worklogs."""
    logger.info(f"Categorizing {len(entries)} import entries against {len(records)} existing worklogs")
    key_index = build_key_index(records)
    duplicates = sum(len(group) - 1 for group in key_index.values())
    if duplicates:
        logger.warning(f"Found {duplicates} duplicate worklog(s) sharing a date, time and issue")

    # The worklog at an entry's key belongs to that entry; no other entry may delete it
    owners: dict[int, int] = {}
    for position, entry in enumerate(entries):
        matches = key_index.get(entry.identity)
        if matches:
            owners.setdefault(matches[0].remote_id, position)

    operations = OperationSet()
    claimed: set[int] = set()
    for position, entry in enumerate(entries):
        unavailable = claimed | {rid for rid, owner in owners.items() if owner != position}
        bag = classify_entry(entry, records, key_index, operations, unavailable)
        if bag == "replace":
            claimed.update(r.remote_id for r in operations.replace[-1].conflicting_worklogs)
        elif bag == "delete":
            claimed.add(operations.delete[-1].remote_id)
    return operations

