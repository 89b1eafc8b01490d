"""Recurrence arithmetic and loading of issues.yml."""

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import yaml

from models import ScheduleSpec
from patterns import Patterns

# Largest occurrence number that still fits an unsigned 32-bit counter
MAX_OCCURRENCE = 2**32 - 1

SECONDS_PER_DAY = 86400

# Unit suffixes as accepted by humantime ("M" is month, "m" is minute)
DURATION_UNITS = {
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": SECONDS_PER_DAY, "day": SECONDS_PER_DAY, "days": SECONDS_PER_DAY,
    "w": 7 * SECONDS_PER_DAY, "week": 7 * SECONDS_PER_DAY, "weeks": 7 * SECONDS_PER_DAY,
    "M": 2_630_016, "month": 2_630_016, "months": 2_630_016,
    "y": 31_557_600, "year": 31_557_600, "years": 31_557_600,
}


class ScheduleError(Exception):
    """issues.yml is missing, malformed, or describes an invalid schedule."""


def _seconds(delta: timedelta) -> int:
    """Whole seconds of a timedelta, without going through floats."""
    return delta.days * SECONDS_PER_DAY + delta.seconds


def parse_duration(value: str) -> timedelta:
    """Parse a human-readable duration like '1 week' or '2w 3d'."""
    if not isinstance(value, str) or not Patterns.DURATION.match(value):
        raise ValueError(f"invalid duration {value!r}")

    total = 0
    for amount, unit in Patterns.DURATION_PART.findall(value):
        factor = DURATION_UNITS.get(unit)
        if factor is None:
            factor = DURATION_UNITS.get(unit.lower()) if len(unit) > 1 else None
        if factor is None:
            raise ValueError(f"unknown duration unit {unit!r} in {value!r}")
        total += int(amount) * factor
    try:
        return timedelta(seconds=total)
    except OverflowError:
        raise ValueError(f"duration {value!r} is too large") from None


def most_recent_due_occurrence(spec: ScheduleSpec, today: date) -> int | None:
    """Find the most recent occurrence number that should already exist.

    Occurrence n is due ``notice`` before ``start + tempo * n``. The
    evaluation date is frozen at ``end`` once that has passed, so
    occurrences that were due before the end stay due afterwards.

    Returns None if nothing is due yet.
    """
    effective_end = min(spec.end, today) if spec.end else today

    elapsed = _seconds(effective_end - spec.start)
    elapsed_with_notice = elapsed + _seconds(spec.notice)

    # Before the start date the notice window has to be open, not just touched:
    # occurrence 0 becomes due the day after start - notice, not on it
    if elapsed < 0 and elapsed_with_notice <= 0:
        return None
    if elapsed_with_notice < 0:
        return None

    tempo = _seconds(spec.tempo)
    occurrence = elapsed_with_notice // tempo
    if occurrence > MAX_OCCURRENCE:
        return None
    # Occurrences past the last representable date never fall due
    return min(occurrence, _seconds(date.max - spec.start) // tempo)


def due_date(spec: ScheduleSpec, occurrence: int) -> date:
    """Calculate the date occurrence number ``occurrence`` is due."""
    return spec.start + timedelta(seconds=_seconds(spec.tempo) * occurrence)


# ============================================================================
# issues.yml
# ============================================================================


def _parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and Patterns.DATE_FORMAT.match(value):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValueError(f"{field_name}: expected a date (YYYY-MM-DD), got {value!r}")


def _parse_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{field_name}: expected a list of strings")
    return list(value)


def validate_spec(spec: ScheduleSpec) -> None:
    """Raise ValueError if the schedule can't produce well-ordered due dates."""
    if spec.tempo <= timedelta(0):
        raise ValueError("tempo: must be greater than zero")
    if spec.tempo < timedelta(days=1):
        raise ValueError("tempo: must be at least one day")
    if spec.notice < timedelta(0):
        raise ValueError("notice: must not be negative")
    if spec.end is not None and spec.end < spec.start:
        raise ValueError("end: must not be before start")
    for field_name in ("tempo", "notice"):
        try:
            spec.start + getattr(spec, field_name)
        except OverflowError:
            raise ValueError(f"{field_name}: reaches past the last representable date") from None


def parse_spec(raw: dict) -> ScheduleSpec:
    """Build a ScheduleSpec from one parsed issues.yml entry."""
    if not isinstance(raw, dict):
        raise ValueError("expected a mapping")

    data = {str(key).replace("_", "-"): value for key, value in raw.items()}

    for key in ("project", "start", "tempo", "template"):
        if data.get(key) is None:
            raise ValueError(f"missing required field '{key}'")

    unknown = set(data) - {
        "project", "start", "end", "tempo", "notice", "template",
        "labels", "assignees", "template-args",
    }
    if unknown:
        raise ValueError(f"unknown field(s): {', '.join(sorted(unknown))}")

    assignees = _parse_str_list(data.get("assignees"), "assignees")
    for assignee in assignees:
        if not Patterns.GLOBAL_ID.match(assignee):
            raise ValueError(f"assignees: expected a GitLab user id like gid://gitlab/User/1, got {assignee!r}")

    template_args = data.get("template-args") or {}
    if not isinstance(template_args, dict) or not all(isinstance(k, str) for k in template_args):
        raise ValueError("template-args: expected a mapping with string keys")

    tempo = parse_duration(data["tempo"])
    notice = parse_duration(data["notice"]) if data.get("notice") is not None else timedelta(0)

    spec = ScheduleSpec(
        project=str(data["project"]),
        start=_parse_date(data["start"], "start"),
        end=_parse_date(data["end"], "end") if data.get("end") is not None else None,
        tempo=tempo,
        notice=notice,
        template=str(data["template"]),
        labels=_parse_str_list(data.get("labels"), "labels"),
        assignees=assignees,
        template_args=template_args,
    )
    validate_spec(spec)
    return spec


def parse_schedules(raw: Any) -> dict[str, ScheduleSpec]:
    """Build all schedules from the parsed issues.yml document."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ScheduleError("issues file must contain a mapping of issue names")

    schedules = {}
    for name, entry in raw.items():
        try:
            schedules[str(name)] = parse_spec(entry)
        except ValueError as e:
            raise ScheduleError(f"issue '{name}': {e}") from e
    return schedules


def load_schedules(path: str | Path) -> dict[str, ScheduleSpec]:
    """Load issues.yml into a mapping of name -> ScheduleSpec."""
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ScheduleError(f"failed to read issues file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ScheduleError(f"failed to parse issues file {path}: {e}") from e
    return parse_schedules(raw)
