"""Data models for CSV to Tempo reconciliation."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from errors import FormatError, RangeError
from timeutils import hours_to_seconds, parse_date, parse_time

UNKNOWN_ISSUE = "UNKNOWN"
SYSTEM_AUTHOR_ID = "__tempo-io__unknown_user"
DEFAULT_START_TIME = time(9, 0, 0)

BAG_ORDER = ("delete", "replace", "add", "update")


@dataclass(frozen=True)
class IssueInfo:
    """A resolved Jira issue."""

    id: int
    key: str
    summary: str = ""
    source: str = "static"  # static | lookup


@dataclass(frozen=True)
class CanonicalEntry:
    """One line of intended work, parsed from a CSV row."""

    date: date
    start_time: time
    end_time: time | None  # None only for delete rows without a range
    duration_hours: float
    issue_key: str
    description: str = ""
    should_delete: bool = False
    row_number: int | None = field(default=None, compare=False)

    def __post_init__(self):
        if not self.issue_key:
            raise FormatError("Issue key is required")
        if self.end_time is not None and self.end_time <= self.start_time:
            raise RangeError(f"End time {self.end_time} must be after start time {self.start_time}")
        if not self.should_delete:
            if self.end_time is None:
                raise FormatError("End time is required unless the row deletes")
            if self.duration_hours <= 0:
                raise RangeError("Duration must be greater than 0")

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def end(self) -> datetime | None:
        if self.end_time is None:
            return None
        return datetime.combine(self.date, self.end_time)

    @property
    def duration_seconds(self) -> int:
        return hours_to_seconds(self.duration_hours)

    @property
    def booked_end(self) -> datetime:
        """End of the range as it will be stored remotely (start + rounded duration)."""
        return self.start + timedelta(seconds=self.duration_seconds)

    @property
    def identity(self) -> tuple:
        return (self.date, self.start_time, self.issue_key)

    def label(self) -> str:
        end = self.end_time.strftime("%H:%M:%S") if self.end_time else "--:--:--"
        return f"{self.date.isoformat()} {self.start_time:%H:%M:%S}-{end} {self.issue_key}"


@dataclass(frozen=True)
class RemoteRecord:
    """A worklog that already exists in Tempo (read-only snapshot)."""

    remote_id: int
    date: date
    start_time: time | None
    duration_seconds: int
    author_id: str | None
    issue_id: int | None = None
    issue_key: str = UNKNOWN_ISSUE
    description: str = ""
    created: datetime | None = None
    is_system_authored: bool = False

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.start_time or DEFAULT_START_TIME)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(seconds=self.duration_seconds)

    @property
    def duration_hours(self) -> float:
        return self.duration_seconds / 3600

    @property
    def has_known_issue(self) -> bool:
        return self.issue_key != UNKNOWN_ISSUE

    def label(self) -> str:
        return f"{self.date.isoformat()} {self.start:%H:%M:%S}-{self.end:%H:%M:%S} ID:{self.remote_id}"


@dataclass(frozen=True)
class ConflictReport:
    """Two overlapping ranges found by the conflict validator."""

    entry: CanonicalEntry
    other: CanonicalEntry | RemoteRecord
    overlap_type: str  # exact | partial
    description: str

    @property
    def is_internal(self) -> bool:
        return isinstance(self.other, CanonicalEntry)


@dataclass(frozen=True)
class UpdateOperation:
    entry: CanonicalEntry
    remote_id: int
    previous_duration_hours: float
    previous_description: str


@dataclass(frozen=True)
class DeleteOperation:
    entry: CanonicalEntry
    remote_id: int


@dataclass(frozen=True)
class ReplaceOperation:
    """Delete every conflicting worklog, then create the entry."""

    entry: CanonicalEntry
    conflicting_worklogs: tuple[RemoteRecord, ...]


@dataclass
class OperationSet:
    """Classifier output: five disjoint bags."""

    add: list[CanonicalEntry] = field(default_factory=list)
    update: list[UpdateOperation] = field(default_factory=list)
    delete: list[DeleteOperation] = field(default_factory=list)
    replace: list[ReplaceOperation] = field(default_factory=list)
    no_change: list[CanonicalEntry] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "add": len(self.add),
            "update": len(self.update),
            "delete": len(self.delete),
            "replace": len(self.replace),
            "no_change": len(self.no_change),
        }

    def entries(self, bag: str) -> list[CanonicalEntry]:
        """Source entries of one bag, in order."""
        items = getattr(self, bag)
        if bag in ("add", "no_change"):
            return list(items)
        return [item.entry for item in items]

    @property
    def has_writes(self) -> bool:
        return bool(self.add or self.update or self.delete or self.replace)


@dataclass
class ReconcileConfig:
    """Configuration for reconciliation behavior."""

    recency_cutoff: date | None = None  # None: Jan 1 of the previous year
    grace_days: int = 3
    request_delay_s: float = 0.3
    default_start_time: time = DEFAULT_START_TIME
    system_author_id: str = SYSTEM_AUTHOR_ID

    @classmethod
    def from_dict(cls, section: dict | None) -> "ReconcileConfig":
        """Build from the ``import`` section of config.json."""
        section = section or {}
        config = cls()
        if section.get("recency_cutoff"):
            config.recency_cutoff = parse_date(section["recency_cutoff"])
        if "grace_days" in section:
            config.grace_days = int(section["grace_days"])
        if "request_delay_s" in section:
            config.request_delay_s = float(section["request_delay_s"])
        if section.get("default_start_time"):
            config.default_start_time = parse_time(section["default_start_time"])
        if section.get("system_author_id"):
            config.system_author_id = section["system_author_id"]
        return config


@dataclass
class ItemFailure:
    bag: str
    item: str
    reason: str


@dataclass
class BagResult:
    succeeded: int = 0
    failed: int = 0


@dataclass
class ExecutionResult:
    """Per-bag success/failure counts of one execution."""

    bags: dict[str, BagResult] = field(default_factory=lambda: {bag: BagResult() for bag in BAG_ORDER})
    failures: list[ItemFailure] = field(default_factory=list)
    partial_replaces: int = 0
    interrupted: bool = False

    def succeeded(self, bag: str) -> int:
        return self.bags[bag].succeeded

    def failed(self, bag: str) -> int:
        return self.bags[bag].failed

    @property
    def total_failed(self) -> int:
        return sum(result.failed for result in self.bags.values())


@dataclass
class ReconcileResult:
    """State tracking for one reconciliation run."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    replaced: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    conflicts: list[ConflictReport] = field(default_factory=list)
    operations: OperationSet = field(default_factory=OperationSet)
    execution: ExecutionResult | None = None
    dry_run: bool = False


@dataclass
class ClearResult:
    """Outcome of clearing the user's worklogs in a date range."""

    found: int = 0
    deleted: int = 0
    skipped: int = 0
    operations: OperationSet = field(default_factory=OperationSet)
    execution: ExecutionResult | None = None
    dry_run: bool = False

    @property
    def failed(self) -> int:
        return self.execution.total_failed if self.execution else 0
