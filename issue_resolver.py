"""Resolve Jira issue keys to the numeric ids Tempo expects."""

import logging
from typing import Callable

from errors import RemoteError, ResolutionError
from models import UNKNOWN_ISSUE, IssueInfo
from patterns import Patterns

logger = logging.getLogger(__name__)

Lookup = Callable[[str], IssueInfo | None]


class IssueResolver:
    """Static issue table first, remote lookup second, cached per run.

    The cache holds misses as well as hits, so a key is never resolved twice
    by the same resolver. Build a new resolver for every reconciliation run.
    """

    def __init__(self, mapping: dict | None = None, lookup: Lookup | None = None):
        self.mapping = mapping or {}
        self.lookup = lookup
        self._cache: dict[str, IssueInfo | None] = {}
        self._keys_by_id: dict[int, str] = {}
        self.static_hits = 0
        self.lookups = 0
        self.misses = 0

        for key, info in self.mapping.items():
            try:
                self._keys_by_id[int(info["id"])] = key
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Ignoring issue_mapping entry {key}: missing or invalid id")

    def resolve(self, issue_key: str) -> IssueInfo | None:
        """Return the issue for ``issue_key`` or None when it cannot be found."""
        if issue_key in self._cache:
            return self._cache[issue_key]

        result = self._from_static(issue_key)
        if result:
            self.static_hits += 1
        elif self.lookup is not None:
            self.lookups += 1
            try:
                result = self.lookup(issue_key)
            except RemoteError as e:
                logger.warning(f"Issue lookup for {issue_key} failed: {e}")
                result = None
            if result:
                logger.info(f"Resolved {issue_key} -> ID {result.id} via lookup")
                self._keys_by_id.setdefault(result.id, issue_key)

        if result is None:
            self.misses += 1
            logger.warning(f"Unknown issue: {issue_key}")

        self._cache[issue_key] = result
        return result

    def require(self, issue_key: str) -> IssueInfo:
        """Like resolve(), but raise ResolutionError on a miss."""
        result = self.resolve(issue_key)
        if result is None:
            raise ResolutionError(issue_key)
        return result

    def key_for_id(self, issue_id: int | None) -> str | None:
        """Reverse lookup of an issue id seen on a remote worklog."""
        if issue_id is None:
            return None
        return self._keys_by_id.get(int(issue_id))

    def _from_static(self, issue_key: str) -> IssueInfo | None:
        info = self.mapping.get(issue_key)
        if not info:
            return None
        try:
            issue_id = int(info["id"])
        except (KeyError, TypeError, ValueError):
            return None
        return IssueInfo(id=issue_id, key=issue_key, summary=info.get("summary", ""), source="static")

    def learned(self) -> dict:
        """Issues found via lookup, in issue_mapping format."""
        return {
            key: {"id": str(info.id), "summary": info.summary}
            for key, info in self._cache.items()
            if info is not None and info.source == "lookup"
        }

    def stats(self) -> dict:
        return {
            "cache_size": len(self._cache),
            "static_mappings": len(self.mapping),
            "static_hits": self.static_hits,
            "lookups": self.lookups,
            "misses": self.misses,
        }


def derive_issue_key(
    issue_key: str | None,
    issue_id: int | None,
    description: str | None,
    key_for_id: Callable[[int | None], str | None] | None = None,
) -> str:
    """Best-effort issue key for a remote worklog.

    Order: the key Tempo embeds, the reverse id lookup, a key mentioned in the
    description. Anything else is UNKNOWN.
    """
    if issue_key:
        return issue_key

    if key_for_id is not None:
        mapped = key_for_id(issue_id)
        if mapped:
            return mapped

    if description and description != Patterns.ANONYMIZED_DESCRIPTION:
        match = Patterns.TICKET_KEY.search(description)
        if match:
            return match.group(1)

    return UNKNOWN_ISSUE
