"""Centralized regex patterns for worklog import."""

import re


class Patterns:
    """Regex patterns used throughout the import process."""

    # Jira ticket key: ITST-140
    TICKET_KEY = re.compile(r"\b([A-Z][A-Z0-9]{1,9}-\d+)\b")

    # Date format: YYYY-MM-DD
    DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")

    # Time of day: HH:mm:ss, 00:00:00 - 23:59:59
    TIME_FORMAT = re.compile(r"^([01]\d|2[0-3]):([0-5]\d):([0-5]\d)$")

    # Week format: YYYYWW (e.g., 202605)
    WEEK_FORMAT = re.compile(r"^\d{6}$")

    # Hours cell: 1, 1.5, 1,5
    HOURS_VALUE = re.compile(r"^\d+([.,]\d+)?$")

    # Description Tempo returns for worklogs of anonymized users
    ANONYMIZED_DESCRIPTION = "worklog.description.anonymized"
