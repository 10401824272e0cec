"""
Import a CSV of time entries into Tempo.

Usage:
    # Dry-run (default) - shows what would happen
    python import_csv_to_tempo.py import worklogs.csv

    # Execute - actually creates, updates and deletes worklogs
    python import_csv_to_tempo.py import worklogs.csv --execute

    # Only rows of one week
    python import_csv_to_tempo.py import worklogs.csv --week 202605 --execute

    # Export existing worklogs in the import format
    python import_csv_to_tempo.py export --from 2026-01-26 --to 2026-02-01 -o worklogs.csv

    # Remove your own worklogs of one week (dry-run first)
    python import_csv_to_tempo.py clear --week 202605 --execute
"""

import argparse

from clients import JiraClient, TempoClient
from errors import ConflictError, FormatError, RemoteError
from exporter import prepare_export_rows, summarize, write_csv
from issue_resolver import IssueResolver
from models import ClearResult, ReconcileConfig, ReconcileResult
from normalizer import read_csv
from reconcile import Reconciler
from timeutils import get_current_week, get_week_dates, parse_date
from utils import MAPPING_FILE, configure_logging, issue_mapping, load_config_safe, load_mapping, save_mapping


# ============================================================================
# Setup
# ============================================================================


def build_reconciler(config: dict) -> Reconciler:
    """Wire clients, resolver and settings for one run."""
    settings = ReconcileConfig.from_dict(config.get("import"))
    jira = JiraClient(config)

    account_id = (config.get("user") or {}).get("account_id")
    if not account_id:
        print("[*] Fetching Jira account ID...", end=" ", flush=True)
        account_id = jira.get_my_account_id()
        print(account_id)

    resolver = IssueResolver(issue_mapping(config), lookup=jira.lookup_issue)
    tempo = TempoClient(config, key_for_id=resolver.key_for_id, system_author_id=settings.system_author_id)
    return Reconciler(tempo, resolver, account_id, settings)


def parse_window(args) -> tuple | None:
    if args.week:
        return get_week_dates(args.week)
    if args.date_from or args.date_to:
        if not (args.date_from and args.date_to):
            raise FormatError("--from and --to must be given together")
        return parse_date(args.date_from), parse_date(args.date_to)
    return None


def remember_lookups(reconciler: Reconciler, path: str = MAPPING_FILE) -> None:
    """Persist issues resolved via Jira so the next run skips the lookup."""
    learned = reconciler.resolver.learned()
    if not learned:
        return
    mapping = load_mapping(path)
    new = {key: info for key, info in learned.items() if key not in mapping}
    if not new:
        return
    mapping.update(new)
    save_mapping(mapping, path)
    print(f"[+] Saved {len(new)} new issue mapping(s) to {path}")


# ============================================================================
# Reporting
# ============================================================================


def print_plan(result: ReconcileResult) -> None:
    operations = result.operations

    if operations.add:
        print()
        print(f"[+] ADD ({len(operations.add)}):")
        for entry in operations.add:
            print(f"    - {entry.label()} | {entry.duration_hours}h | {entry.description}")

    if operations.update:
        print()
        print(f"[~] UPDATE ({len(operations.update)}):")
        for op in operations.update:
            print(f"    - {op.entry.label()} | {op.previous_duration_hours}h -> {op.entry.duration_hours}h")
            print(f'      "{op.previous_description}" -> "{op.entry.description}"')

    if operations.delete:
        print()
        print(f"[-] DELETE ({len(operations.delete)}):")
        for op in operations.delete:
            print(f"    - {op.entry.label()} [ID:{op.remote_id}]")

    if operations.replace:
        print()
        print(f"[!] REPLACE ({len(operations.replace)}):")
        for op in operations.replace:
            print(f"    - NEW: {op.entry.label()} | {op.entry.duration_hours}h | {op.entry.description}")
            for record in op.conflicting_worklogs:
                print(f"      REMOVES: {record.label()} {record.issue_key} {record.duration_hours:.2f}h")

    if operations.no_change:
        print()
        print(f"[=] NO CHANGE: {len(operations.no_change)} entries already up to date")


def print_summary(result: ReconcileResult) -> None:
    print()
    verb = "Would" if result.dry_run else "Done:"
    print(
        f"[*] {verb} add {result.added}, update {result.updated}, delete {result.deleted}, "
        f"replace {result.replaced}, unchanged {result.unchanged}, skipped {result.skipped}"
    )
    if result.execution and result.execution.partial_replaces:
        print(f"    {result.execution.partial_replaces} replace(s) could not remove every old worklog")
    if result.execution and result.execution.interrupted:
        print("[!] Interrupted - remaining operations were not executed")
    if result.errors:
        print()
        print(f"[!] {len(result.errors)} problem(s):")
        for error in result.errors:
            print(f"    - {error}")


# ============================================================================
# Commands
# ============================================================================


def run_import(config: dict, args) -> int:
    window = parse_window(args)

    print(f"[1] Reading {args.csv_file}...")
    with open(args.csv_file, encoding="utf-8", newline="") as f:
        rows = read_csv(f)
    print(f"    Found {len(rows)} rows")

    print("[2] Connecting to Jira and Tempo...")
    reconciler = build_reconciler(config)

    print("[3] Validating and classifying...")
    try:
        plan = reconciler.plan(rows, window)
    except ConflictError as e:
        print()
        print(f"[!] {e}:")
        for index, conflict in enumerate(e.conflicts, start=1):
            print(f"    {index}. {conflict.description}")
        print()
        print("    Check for duplicate entries or adjust time ranges to avoid overlaps.")
        print("    Nothing was changed in Tempo.")
        return 1

    remember_lookups(reconciler)
    stats = reconciler.resolver.stats()
    if stats["lookups"]:
        print(f"    Looked up {stats['lookups']} issue(s) in Jira, {stats['misses']} unknown")

    if plan.conflicts:
        print(f"    {len(plan.conflicts)} overlap(s) with existing worklogs - import wins")

    if not args.execute:
        result = reconciler.preview(plan)
        print_plan(result)
        print_summary(result)
        print()
        print("Run with --execute to apply changes.")
        return 0

    if not plan.operations.has_writes:
        result = reconciler.preview(plan)
        print_summary(result)
        print()
        print("[*] Nothing to do.")
        return 0

    print("[4] Executing...")
    result = reconciler.execute(plan)
    print_plan(result)
    print_summary(result)
    return 1 if result.execution and result.execution.total_failed else 0


def print_clear(result: ClearResult) -> None:
    for op in result.operations.delete:
        print(f"    - {op.entry.label()} | {op.entry.duration_hours:.2f}h [ID:{op.remote_id}]")
    print()
    verb = "Would delete" if result.dry_run else "Deleted"
    print(f"[*] {verb} {result.deleted} of {result.found} worklog(s), skipped {result.skipped} not owned or system-authored")
    if result.failed:
        print(f"[!] {result.failed} worklog(s) could not be deleted")
        for failure in result.execution.failures:
            print(f"    - {failure.item}: {failure.reason}")
    if result.execution and result.execution.interrupted:
        print("[!] Interrupted - remaining worklogs were not deleted")


def run_clear(config: dict, args) -> int:
    window = parse_window(args)
    if window is None:
        raise FormatError("clear needs --week or --from and --to")
    date_from, date_to = window

    print("[1] Connecting to Jira and Tempo...")
    reconciler = build_reconciler(config)

    print(f"[2] Collecting your worklogs {date_from} to {date_to}...")
    if not args.execute:
        print_clear(reconciler.clear(date_from, date_to, dry_run=True))
        print()
        print("Run with --execute to apply changes.")
        return 0

    print("[3] Deleting...")
    result = reconciler.clear(date_from, date_to)
    print_clear(result)
    return 1 if result.failed else 0


def run_export(config: dict, args) -> int:
    window = parse_window(args)
    if window is None:
        window = get_week_dates(get_current_week())
    date_from, date_to = window

    resolver = IssueResolver(issue_mapping(config))
    settings = ReconcileConfig.from_dict(config.get("import"))
    tempo = TempoClient(config, key_for_id=resolver.key_for_id, system_author_id=settings.system_author_id)

    print(f"[1] Fetching worklogs {date_from} to {date_to}...")
    records = tempo.fetch_records(date_from, date_to)
    issue_keys = set(resolver.mapping) if args.known_only else None
    rows = prepare_export_rows(records, issue_keys)
    if not rows:
        print("[!] No matching worklogs found.")
        return 0

    with open(args.output, "w", encoding="utf-8", newline="") as f:
        write_csv(rows, f)
    print(f"[+] Exported {len(rows)} worklogs to {args.output}")

    print()
    print("By issue:")
    for issue_key, hours in summarize(rows).items():
        print(f"    {issue_key}: {hours:.1f}h")
    return 0


# ============================================================================
# CLI
# ============================================================================


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Import CSV time entries into Tempo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Dry-run (default) - shows what would happen
    python import_csv_to_tempo.py import worklogs.csv

    # Execute - actually writes to Tempo
    python import_csv_to_tempo.py import worklogs.csv --execute

    # Export a week in the import format
    python import_csv_to_tempo.py export --week 202605 -o worklogs.csv

    # Preview clearing your own worklogs of a week
    python import_csv_to_tempo.py clear --week 202605
        """,
    )
    parser.add_argument("--config", default="config.json", help="Path to config.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")

    window = argparse.ArgumentParser(add_help=False)
    window.add_argument("--week", help="Only this week (YYYYWW)")
    window.add_argument("--from", dest="date_from", help="Window start (YYYY-MM-DD)")
    window.add_argument("--to", dest="date_to", help="Window end (YYYY-MM-DD)")

    commands = parser.add_subparsers(dest="command", required=True)

    import_parser = commands.add_parser("import", parents=[window], help="Import a CSV file")
    import_parser.add_argument("csv_file", help="CSV with date,startTime,endTime,issue,description[,delete]")
    import_parser.add_argument(
        "--execute", action="store_true", help="Actually execute changes (default: dry-run)"
    )

    export_parser = commands.add_parser("export", parents=[window], help="Export worklogs to CSV")
    export_parser.add_argument("-o", "--output", default="worklogs.csv", help="Output file")
    export_parser.add_argument(
        "--known-only", action="store_true", help="Only issues listed in the issue mapping"
    )

    clear_parser = commands.add_parser("clear", parents=[window], help="Delete your worklogs in a date range")
    clear_parser.add_argument(
        "--execute", action="store_true", help="Actually delete worklogs (default: dry-run)"
    )

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    config = load_config_safe(args.config)
    if config is None:
        return 1

    try:
        if args.command == "import":
            return run_import(config, args)
        if args.command == "clear":
            return run_clear(config, args)
        return run_export(config, args)
    except FormatError as e:
        print(f"Error: {e}")
        return 1
    except RemoteError as e:
        print(f"[!] {e}")
        return 1
    except OSError as e:
        print(f"[!] {e}")
        return 1


if __name__ == "__main__":
    exit(main())
