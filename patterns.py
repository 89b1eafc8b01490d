"""Centralized regex patterns for parsing issue definitions."""

import re


class Patterns:
    """Regex patterns used throughout the schedule and CLI parsing."""

    # One duration component: "1 week", "7days", "12h", "3M"
    DURATION_PART = re.compile(r"(\d+)\s*([A-Za-z]+)")

    # A full duration string: one or more components separated by whitespace
    DURATION = re.compile(r"^\s*(?:\d+\s*[A-Za-z]+\s*)+$")

    # Date format: YYYY-MM-DD
    DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")

    # GitLab global ID: gid://gitlab/User/123
    GLOBAL_ID = re.compile(r"^gid://gitlab/[A-Za-z:]+/\d+$")
