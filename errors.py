"""Error taxonomy for CSV to Tempo reconciliation."""


class ReconcileError(Exception):
    """Base error for a reconciliation run."""


class FormatError(ReconcileError, ValueError):
    """A row or field cannot be parsed."""


class RangeError(FormatError):
    """A time range is empty or reversed."""


class ResolutionError(ReconcileError):
    """An issue key could not be resolved to a remote issue id."""

    def __init__(self, issue_key: str):
        super().__init__(f"Cannot resolve issue {issue_key}: add it to issue_mapping in config.json")
        self.issue_key = issue_key


class ConflictError(ReconcileError):
    """Entries inside one import batch overlap each other."""

    def __init__(self, conflicts: list):
        super().__init__(f"Found {len(conflicts)} time conflict(s) in CSV data")
        self.conflicts = conflicts


class RemoteError(ReconcileError):
    """A call against Tempo or Jira failed.

    ``kind`` is ``"transport"`` for network problems and timeouts and
    ``"rejection"`` when the service answered with an error status.
    """

    def __init__(self, message: str, status_code: int | None = None, kind: str = "rejection"):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_permission_denied(self) -> bool:
        return self.status_code in (401, 403)
