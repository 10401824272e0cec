"""Apply an OperationSet to the remote worklog store."""

import logging
import time
from typing import Callable

from clients import RemoteStore
from errors import RemoteError, ResolutionError
from issue_resolver import IssueResolver
from models import (
    BAG_ORDER,
    CanonicalEntry,
    DeleteOperation,
    ExecutionResult,
    ItemFailure,
    OperationSet,
    ReplaceOperation,
    UpdateOperation,
)

logger = logging.getLogger(__name__)


def describe_failure(error: Exception) -> str:
    """Short reason for a failed item: permission, not found, transport or the message."""
    if isinstance(error, RemoteError):
        if error.is_permission_denied:
            return f"permission denied: {error}"
        if error.is_not_found:
            return f"not found: {error}"
        if error.kind == "transport":
            return f"transport error: {error}"
    return str(error)


class Executor:
    """Walks the bags in order delete -> replace -> add -> update.

    Every item is independent: a failure is logged and counted, then the
    next item runs. A fixed delay separates consecutive remote calls.
    """

    def __init__(
        self,
        store: RemoteStore,
        resolver: IssueResolver,
        author_id: str | None,
        delay_s: float = 0.3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.resolver = resolver
        self.author_id = author_id
        self.delay_s = delay_s
        self.sleep = sleep
        self._calls = 0

    def _pace(self) -> None:
        if self._calls and self.delay_s > 0:
            self.sleep(self.delay_s)
        self._calls += 1

    def _create(self, entry: CanonicalEntry) -> int:
        issue = self.resolver.require(entry.issue_key)
        self._pace()
        return self.store.create_record(
            issue.id, entry.duration_seconds, entry.date, entry.start_time, entry.description, self.author_id
        )

    def _delete(self, remote_id: int) -> None:
        self._pace()
        self.store.delete_record(remote_id)

    def run_delete(self, op: DeleteOperation) -> None:
        self._delete(op.remote_id)
        logger.info(f"Deleted: {op.entry.label()} (ID:{op.remote_id})")

    def run_replace(self, op: ReplaceOperation, result: ExecutionResult) -> None:
        # Never delete the old worklogs when the new one cannot be created
        self.resolver.require(op.entry.issue_key)
        deleted = 0
        for record in op.conflicting_worklogs:
            try:
                self._delete(record.remote_id)
                deleted += 1
                logger.info(f"  Deleted conflicting worklog ID:{record.remote_id}")
            except RemoteError as e:
                # Keep going: recording the new work matters more than one old worklog
                logger.error(f"  Could not delete worklog ID:{record.remote_id}: {describe_failure(e)}")
                result.failures.append(ItemFailure("replace", record.label(), describe_failure(e)))

        remote_id = self._create(op.entry)
        total = len(op.conflicting_worklogs)
        if deleted < total:
            result.partial_replaces += 1
            logger.warning(f"Replaced partially: removed {deleted}/{total} + created {op.entry.label()} (ID:{remote_id})")
        else:
            logger.info(f"Replaced: removed {deleted} + created {op.entry.label()} (ID:{remote_id})")

    def run_add(self, entry: CanonicalEntry) -> None:
        remote_id = self._create(entry)
        logger.info(f"Added: {entry.label()} {entry.duration_hours}h (ID:{remote_id})")

    def run_update(self, op: UpdateOperation) -> None:
        entry = op.entry
        issue = self.resolver.require(entry.issue_key)
        self._pace()
        self.store.update_record(
            op.remote_id,
            issue.id,
            entry.duration_seconds,
            entry.date,
            entry.start_time,
            entry.description,
            self.author_id,
        )
        logger.info(f"Updated: {entry.label()} {op.previous_duration_hours}h -> {entry.duration_hours}h")

    def execute(self, operations: OperationSet) -> ExecutionResult:
        result = ExecutionResult()
        runners = {
            "delete": self.run_delete,
            "replace": lambda op: self.run_replace(op, result),
            "add": self.run_add,
            "update": self.run_update,
        }

        try:
            for bag in BAG_ORDER:
                items = getattr(operations, bag)
                if not items:
                    continue
                logger.info(f"Executing {len(items)} {bag.upper()} operation(s)...")
                for index, item in enumerate(items, start=1):
                    entry = item if isinstance(item, CanonicalEntry) else item.entry
                    try:
                        runners[bag](item)
                        result.bags[bag].succeeded += 1
                    except (RemoteError, ResolutionError) as e:
                        reason = describe_failure(e)
                        logger.error(f"Failed to {bag} {index}/{len(items)} {entry.label()}: {reason}")
                        result.bags[bag].failed += 1
                        result.failures.append(ItemFailure(bag, entry.label(), reason))
                bag_result = result.bags[bag]
                logger.info(f"{bag.upper()} Results: {bag_result.succeeded} successful, {bag_result.failed} failed")
        except KeyboardInterrupt:
            logger.warning("Interrupted: remaining operations were not executed")
            result.interrupted = True

        return result
