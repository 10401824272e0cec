"""Utility functions for CSV to Tempo import."""

import json
import logging
import os
import sys

from errors import FormatError
from models import ReconcileConfig

# File paths
CONFIG_FILE = "config.json"
MAPPING_FILE = "issue_mapping.json"

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Send log records to stderr; DEBUG when verbose."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    # Third-party HTTP chatter stays quiet even when verbose
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return root


def load_config(path: str = CONFIG_FILE) -> dict:
    """Load config.json with Jira and Tempo credentials."""
    with open(path) as f:
        return json.load(f)


def validate_config(config: dict) -> list[str]:
    """Validate config structure and return list of error messages.

    Returns:
        Empty list if valid, otherwise list of error messages.
    """
    errors = []

    # Check required sections
    for section in ["jira", "tempo"]:
        if section not in config:
            errors.append(f"Missing section '{section}' in config.json")

    # Check Jira credentials
    if "jira" in config:
        for key in ["base_url", "user_email", "api_token"]:
            if not config["jira"].get(key):
                errors.append(f"Missing jira.{key}")

    # Check Tempo
    if "tempo" in config:
        if not config["tempo"].get("api_token"):
            errors.append("Missing tempo.api_token")

    # Check import settings
    try:
        ReconcileConfig.from_dict(config.get("import"))
    except (FormatError, TypeError, ValueError) as e:
        errors.append(f"Invalid import settings: {e}")

    # Check issue mapping ids
    for key, info in (config.get("issue_mapping") or {}).items():
        if not isinstance(info, dict) or not str(info.get("id", "")).isdigit():
            errors.append(f"issue_mapping.{key} needs a numeric id")

    return errors


def load_config_safe(path: str = CONFIG_FILE) -> dict | None:
    """Load config with user-friendly error messages.

    Returns:
        Config dict if valid, None if errors occurred.
    """
    if not os.path.exists(path):
        print(f"[!] ERROR: {path} not found!")
        print()
        print("    Create config.json based on config.example.json:")
        print("    $ cp config.example.json config.json")
        print("    $ nano config.json  # Fill in your credentials")
        print()
        return None

    try:
        config = load_config(path)
    except json.JSONDecodeError as e:
        print(f"[!] ERROR: {path} is not valid JSON!")
        print(f"    Line {e.lineno}, column {e.colno}: {e.msg}")
        print()
        print("    Check for missing commas, quotes, or brackets.")
        return None

    errors = validate_config(config)
    if errors:
        print(f"[!] ERROR: {path} is incomplete:")
        for err in errors:
            print(f"    - {err}")
        print()
        print("    See config.example.json for the required structure.")
        return None

    if "import" not in config:
        settings = ReconcileConfig.from_dict(None)
        logger.info(
            f"No import section in {path}, using defaults: grace_days={settings.grace_days}, "
            f"request_delay_s={settings.request_delay_s}, default_start_time={settings.default_start_time}, "
            "recency_cutoff=Jan 1 of the previous year"
        )
    return config


def load_mapping(path: str = MAPPING_FILE) -> dict:
    """Load the issue key -> {id, summary} table."""
    if os.path.exists(path):
        with open(path) as f:
            return json.load(f)
    return {}


def save_mapping(mapping: dict, path: str = MAPPING_FILE) -> None:
    """Save the issue key -> {id, summary} table."""
    with open(path, "w") as f:
        json.dump(mapping, f, indent=2, ensure_ascii=False)


def issue_mapping(config: dict, path: str = MAPPING_FILE) -> dict:
    """Static issue table: issue_mapping.json overlaid with config.json."""
    mapping = load_mapping(path)
    mapping.update(config.get("issue_mapping") or {})
    return mapping
