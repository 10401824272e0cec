"""API clients for Jira and Tempo."""

import logging
from datetime import date, time
from typing import Callable, Protocol

import requests

from errors import RemoteError
from models import SYSTEM_AUTHOR_ID, IssueInfo, RemoteRecord
from remote_records import records_from_api
from timeutils import format_date, format_time

logger = logging.getLogger(__name__)

TEMPO_BASE_URL = "https://api.tempo.io/4"


class RemoteStore(Protocol):
    """What the import needs from a worklog store."""

    def fetch_records(self, date_from: date, date_to: date) -> list[RemoteRecord]: ...

    def create_record(
        self,
        issue_id: int,
        duration_seconds: int,
        day: date,
        start_time: time,
        description: str,
        author_id: str | None,
    ) -> int: ...

    def update_record(
        self,
        remote_id: int,
        issue_id: int,
        duration_seconds: int,
        day: date,
        start_time: time,
        description: str,
        author_id: str | None,
    ) -> None: ...

    def delete_record(self, remote_id: int) -> None: ...


def _handle_api_error(response: requests.Response, service: str) -> str:
    """Convert HTTP errors to user-friendly messages."""
    status = response.status_code

    messages = {
        401: f"{service}: Authentication failed. Check your API token!",
        403: f"{service}: Access denied. Check your permissions or API token!",
        404: f"{service}: Resource not found.",
        429: f"{service}: Too many requests. Wait a moment and try again.",
        500: f"{service}: Server error. The service may be temporarily unavailable.",
        502: f"{service}: Bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: Service unavailable. Try again later.",
    }

    message = messages.get(status, f"{service}: HTTP {status} - {response.reason}")
    try:
        body = response.json()
    except ValueError:
        body = None

    detail = None
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            detail = errors[0].get("message")
        else:
            detail = body.get("message")
    if detail:
        message = f"{message} ({detail})"
    return message


def _send(method: str, url: str, service: str, **kwargs) -> requests.Response:
    """Issue a request, mapping every failure to RemoteError."""
    try:
        r = requests.request(method, url, **kwargs)
    except requests.exceptions.Timeout:
        raise RemoteError(f"{service}: Connection timed out. The server may be slow.", kind="transport")
    except requests.exceptions.ConnectionError:
        raise RemoteError(f"{service}: Cannot connect to {url}. Check your network!", kind="transport")
    except requests.exceptions.RequestException as e:
        raise RemoteError(f"{service}: Request failed: {e}", kind="transport")

    if not r.ok:
        raise RemoteError(_handle_api_error(r, service), r.status_code)
    return r


def _json(response: requests.Response, service: str):
    """Decode a successful response body, RemoteError when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        raise RemoteError(f"{service}: Unexpected response, expected JSON (HTTP {response.status_code})", response.status_code)


class JiraClient:
    """Client for Jira REST API."""

    def __init__(self, config: dict):
        self.base_url = config["jira"]["base_url"].rstrip("/")
        self.email = config["jira"]["user_email"]
        self.token = config["jira"]["api_token"]

    def _get(self, path: str, **params) -> requests.Response:
        return _send(
            "GET",
            f"{self.base_url}{path}",
            "Jira",
            auth=(self.email, self.token),
            headers={"Accept": "application/json"},
            params=params or None,
            timeout=10,
        )

    def get_my_account_id(self) -> str:
        """Get the current user's Jira account ID."""
        return _json(self._get("/rest/api/3/myself"), "Jira")["accountId"]

    def lookup_issue(self, issue_key: str) -> IssueInfo | None:
        """Resolve an issue key to its numeric id, None if Jira does not know it."""
        try:
            data = _json(self._get(f"/rest/api/3/issue/{issue_key}", fields="summary"), "Jira")
        except RemoteError as e:
            if e.is_not_found:
                return None
            raise
        return IssueInfo(
            id=int(data["id"]),
            key=data.get("key", issue_key),
            summary=data.get("fields", {}).get("summary", ""),
            source="lookup",
        )


class TempoClient:
    """Client for Tempo REST API."""

    def __init__(
        self,
        config: dict,
        key_for_id: Callable[[int | None], str | None] | None = None,
        system_author_id: str = SYSTEM_AUTHOR_ID,
    ):
        self.token = config["tempo"]["api_token"]
        self.base_url = config["tempo"].get("base_url", TEMPO_BASE_URL).rstrip("/")
        self.key_for_id = key_for_id
        self.system_author_id = system_author_id

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    def fetch_worklogs(self, date_from: str, date_to: str) -> list[dict]:
        """Fetch raw worklogs within a date range."""
        worklogs = []
        url = f"{self.base_url}/worklogs"
        params = {"from": date_from, "to": date_to, "limit": 1000}

        while url:
            r = _send("GET", url, "Tempo", headers=self.headers, params=params, timeout=30)
            data = _json(r, "Tempo")

            worklogs.extend(data.get("results", []))

            # Handle pagination
            url = data.get("metadata", {}).get("next")
            params = {}  # Clear params for pagination URLs

        return worklogs

    def fetch_records(self, date_from: date, date_to: date) -> list[RemoteRecord]:
        raw = self.fetch_worklogs(format_date(date_from), format_date(date_to))
        logger.info(f"Fetched {len(raw)} worklogs from Tempo ({date_from} to {date_to})")
        return records_from_api(raw, self.key_for_id, self.system_author_id)

    @staticmethod
    def _payload(issue_id, duration_seconds, day, start_time, description, author_id) -> dict:
        payload = {
            "issueId": issue_id,
            "timeSpentSeconds": duration_seconds,
            "startDate": format_date(day),
            "startTime": format_time(start_time),
            "description": description,
        }
        if author_id:
            payload["authorAccountId"] = author_id
        return payload

    def create_record(self, issue_id, duration_seconds, day, start_time, description, author_id) -> int:
        r = _send(
            "POST",
            f"{self.base_url}/worklogs",
            "Tempo",
            headers=self.headers,
            json=self._payload(issue_id, duration_seconds, day, start_time, description, author_id),
            timeout=30,
        )
        data = _json(r, "Tempo")
        if not isinstance(data, dict) or "tempoWorklogId" not in data:
            raise RemoteError("Tempo: Created worklog came back without a tempoWorklogId", r.status_code)
        return data["tempoWorklogId"]

    def update_record(self, remote_id, issue_id, duration_seconds, day, start_time, description, author_id) -> None:
        _send(
            "PUT",
            f"{self.base_url}/worklogs/{remote_id}",
            "Tempo",
            headers=self.headers,
            json=self._payload(issue_id, duration_seconds, day, start_time, description, author_id),
            timeout=30,
        )

    def delete_record(self, remote_id: int) -> None:
        _send("DELETE", f"{self.base_url}/worklogs/{remote_id}", "Tempo", headers=self.headers, timeout=30)
