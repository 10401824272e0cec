"""One reconciliation run: normalize -> validate -> classify -> execute."""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable

from classifier import classify
from clients import RemoteStore
from executor import Executor
from issue_resolver import IssueResolver
from models import (
    CanonicalEntry,
    ClearResult,
    ConflictReport,
    DeleteOperation,
    OperationSet,
    ReconcileConfig,
    ReconcileResult,
    RemoteRecord,
)
from normalizer import dedupe, normalize_rows
from remote_records import default_start_record, filter_actionable, filter_own
from validator import check_internal_conflicts, find_external_conflicts

logger = logging.getLogger(__name__)


@dataclass
class Plan:
    """Everything decided before the first write."""

    entries: list[CanonicalEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    records: list[RemoteRecord] = field(default_factory=list)
    conflicts: list[ConflictReport] = field(default_factory=list)
    operations: OperationSet = field(default_factory=OperationSet)
    date_from: date | None = None
    date_to: date | None = None


class Reconciler:
    """Makes Tempo reflect exactly what an import CSV says."""

    def __init__(
        self,
        store: RemoteStore,
        resolver: IssueResolver,
        current_user_id: str | None,
        config: ReconcileConfig | None = None,
        today: date | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.resolver = resolver
        self.current_user_id = current_user_id
        self.config = config or ReconcileConfig()
        self.today = today
        self.sleep = sleep

    def prepare(
        self, rows: Iterable[dict], date_window: tuple[date, date] | None = None
    ) -> tuple[list[CanonicalEntry], list[str]]:
        """Normalize, window, dedupe, check for internal conflicts and resolve issues.

        Raises ConflictError before any remote call when the batch overlaps itself.
        """
        entries, skipped = normalize_rows(rows, self.config.default_start_time)
        logger.info(f"Parsed {len(entries)} entries, skipped {len(skipped)} row(s)")

        if date_window:
            date_from, date_to = date_window
            before = len(entries)
            entries = [e for e in entries if date_from <= e.date <= date_to]
            logger.info(f"Date filter {date_from} to {date_to}: {before} -> {len(entries)} entries")

        entries, duplicates = dedupe(entries)
        skipped.extend(duplicates)

        check_internal_conflicts(entries)

        resolved = []
        for entry in entries:
            if not entry.should_delete and self.resolver.resolve(entry.issue_key) is None:
                skipped.append(f"Row {entry.row_number}: cannot resolve issue {entry.issue_key}")
                continue
            resolved.append(entry)
        return resolved, skipped

    def plan(self, rows: Iterable[dict], date_window: tuple[date, date] | None = None) -> Plan:
        entries, skipped = self.prepare(rows, date_window)
        plan = Plan(entries=entries, skipped=skipped)
        if not entries:
            logger.info("No entries to import")
            return plan

        if date_window:
            plan.date_from, plan.date_to = date_window
        else:
            dates = sorted(e.date for e in entries)
            plan.date_from, plan.date_to = dates[0], dates[-1]

        fetched = self.store.fetch_records(plan.date_from, plan.date_to)
        fetched = [default_start_record(r, self.config.default_start_time) for r in fetched]
        plan.records = filter_actionable(fetched, self.current_user_id, self.config, self.today)

        plan.conflicts = find_external_conflicts(entries, plan.records)
        plan.operations = classify(entries, plan.records)
        return plan

    def execute(self, plan: Plan) -> ReconcileResult:
        executor = Executor(
            self.store,
            self.resolver,
            self.current_user_id,
            delay_s=self.config.request_delay_s,
            sleep=self.sleep,
        )
        execution = executor.execute(plan.operations)
        return ReconcileResult(
            added=execution.succeeded("add"),
            updated=execution.succeeded("update"),
            deleted=execution.succeeded("delete"),
            replaced=execution.succeeded("replace"),
            unchanged=len(plan.operations.no_change),
            skipped=len(plan.skipped),
            errors=plan.skipped + [f"{f.bag}: {f.item}: {f.reason}" for f in execution.failures],
            conflicts=plan.conflicts,
            operations=plan.operations,
            execution=execution,
        )

    def reconcile(
        self,
        rows: Iterable[dict],
        date_window: tuple[date, date] | None = None,
        dry_run: bool = False,
    ) -> ReconcileResult:
        plan = self.plan(rows, date_window)
        if dry_run:
            return self.preview(plan)
        return self.execute(plan)

    def preview(self, plan: Plan) -> ReconcileResult:
        """Planned counts without touching the store."""
        operations = plan.operations
        return ReconcileResult(
            added=len(operations.add),
            updated=len(operations.update),
            deleted=len(operations.delete),
            replaced=len(operations.replace),
            unchanged=len(operations.no_change),
            skipped=len(plan.skipped),
            errors=list(plan.skipped),
            conflicts=plan.conflicts,
            operations=operations,
            dry_run=True,
        )

    def clear(self, date_from: date, date_to: date, dry_run: bool = False) -> ClearResult:
        """Delete the current user's worklogs between two dates.

        Worklogs of other authors and system-authored ones are skipped. Deletes
        run through the Executor, so pacing and per-item isolation apply.
        """
        fetched = self.store.fetch_records(date_from, date_to)
        fetched = [default_start_record(r, self.config.default_start_time) for r in fetched]
        own = filter_own(fetched, self.current_user_id, self.config)
        result = ClearResult(found=len(fetched), skipped=len(fetched) - len(own), dry_run=dry_run)
        result.operations.delete = [
            DeleteOperation(entry=_clear_entry(record), remote_id=record.remote_id) for record in own
        ]
        logger.info(f"Found {len(own)} deletable worklogs (skipping {result.skipped} not owned or system-authored)")

        if dry_run:
            result.deleted = len(own)
            return result

        executor = Executor(
            self.store,
            self.resolver,
            self.current_user_id,
            delay_s=self.config.request_delay_s,
            sleep=self.sleep,
        )
        result.execution = executor.execute(result.operations)
        result.deleted = result.execution.succeeded("delete")
        return result


def _clear_entry(record: RemoteRecord) -> CanonicalEntry:
    return CanonicalEntry(
        date=record.date,
        start_time=record.start.time(),
        end_time=None,
        duration_hours=record.duration_hours,
        issue_key=record.issue_key,
        description=record.description,
        should_delete=True,
    )


def reconcile(
    rows: Iterable[dict],
    store: RemoteStore,
    resolver: IssueResolver,
    current_user_id: str | None,
    config: ReconcileConfig | None = None,
    date_window: tuple[date, date] | None = None,
    dry_run: bool = False,
    today: date | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReconcileResult:
    """Reconcile a batch of raw CSV rows against the remote store."""
    reconciler = Reconciler(store, resolver, current_user_id, config, today, sleep)
    return reconciler.reconcile(rows, date_window, dry_run)
