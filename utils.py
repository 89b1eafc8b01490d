"""Utility functions for configuration, dates and prompts."""

import json
import os
from datetime import date, datetime

from models import RunConfig
from patterns import Patterns

# File paths
CONFIG_FILE = "config.json"
ISSUES_FILE = "issues.yml"
LEDGER_FILE = "ledger.json"
TEMPLATES_DIR = "templates"

# Environment variables
ENV_URL = "GROUNDHOG_GITLAB_URL"
ENV_API_KEY = "GITLAB_API_KEY"
ENV_ISSUES = "GROUNDHOG_ISSUES"
ENV_LEDGER = "GROUNDHOG_LOG"
ENV_TEMPLATES = "GROUNDHOG_TEMPLATES"


def load_config(path: str = CONFIG_FILE) -> dict:
    """Load config.json with GitLab credentials and paths."""
    with open(path) as f:
        return json.load(f)


def validate_config(config: dict) -> list[str]:
    """Validate config structure and return list of error messages.

    Every section is optional; only values that are present are checked.

    Returns:
        Empty list if valid, otherwise list of error messages.
    """
    errors = []

    if not isinstance(config, dict):
        return ["config must be a JSON object"]

    for section in ("gitlab", "paths", "dispatch"):
        if section in config and not isinstance(config[section], dict):
            errors.append(f"Section '{section}' must be an object")

    gitlab = config.get("gitlab")
    if isinstance(gitlab, dict):
        for key in ("url", "api_token"):
            if key in gitlab and not isinstance(gitlab[key], str):
                errors.append(f"gitlab.{key} must be a string")

    paths = config.get("paths")
    if isinstance(paths, dict):
        for key in ("issues", "ledger", "templates"):
            if key in paths and not isinstance(paths[key], str):
                errors.append(f"paths.{key} must be a string")

    dispatch = config.get("dispatch")
    if isinstance(dispatch, dict):
        value = dispatch.get("max_concurrency")
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 1):
            errors.append("dispatch.max_concurrency must be a positive integer")
        value = dispatch.get("timeout_s")
        if value is not None and (not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0):
            errors.append("dispatch.timeout_s must be a positive number")

    return errors


def load_config_safe(path: str = CONFIG_FILE) -> dict | None:
    """Load config with user-friendly error messages.

    A missing config file is not an error: everything can come from
    flags and environment variables.

    Returns:
        Config dict if valid, None if errors occurred.
    """
    if not os.path.exists(path):
        return {}

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
        print(f"[!] ERROR: {path} is invalid:")
        for err in errors:
            print(f"    - {err}")
        print()
        print("    See config.example.json for the required structure.")
        return None

    return config


def resolve_setting(
    flag: str | None, env_var: str, config: dict, section: str, key: str, default: str | None = None
) -> str | None:
    """Pick a setting: flag, then environment, then config.json, then default."""
    if flag:
        return flag
    if os.environ.get(env_var):
        return os.environ[env_var]
    value = config.get(section, {}).get(key)
    if value:
        return value
    return default


def run_config(config: dict) -> RunConfig:
    """Dispatch tunables from the config's 'dispatch' section."""
    dispatch = config.get("dispatch", {})
    defaults = RunConfig()
    return RunConfig(
        max_concurrency=dispatch.get("max_concurrency", defaults.max_concurrency),
        timeout_s=dispatch.get("timeout_s", defaults.timeout_s),
    )


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date (argparse type)."""
    if not Patterns.DATE_FORMAT.match(value):
        raise ValueError(f"Invalid date format '{value}'. Expected YYYY-MM-DD")
    return date.fromisoformat(value)


def get_today() -> date:
    """Today's local date."""
    return datetime.now().date()


def confirm(prompt: str = "Create issues?", assume_yes: bool = False) -> bool:
    """Ask the user for a yes/no answer (default yes)."""
    if assume_yes:
        return True
    try:
        answer = input(f"{prompt} [Y/n] ").strip().lower()
    except EOFError:
        print()
        return False
    return answer in ("", "y", "yes")
