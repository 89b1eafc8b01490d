"""Tests for recurrence arithmetic and issues.yml parsing."""

from datetime import date, timedelta

import pytest

from models import ScheduleSpec
from schedule import (
    ScheduleError,
    due_date,
    load_schedules,
    most_recent_due_occurrence,
    parse_duration,
    parse_schedules,
)


def make_spec(**overrides) -> ScheduleSpec:
    fields = dict(
        project="path/to/project",
        start=date(2023, 11, 5),
        end=None,
        tempo=timedelta(weeks=1),
        notice=timedelta(days=1),
        template="template.md",
    )
    fields.update(overrides)
    return ScheduleSpec(**fields)


# ---------------------------------------------------------------------------
# most_recent_due_occurrence
# ---------------------------------------------------------------------------

class TestMostRecentDueOccurrence:

    @pytest.mark.parametrize(
        "today, expected",
        [
            (date(2022, 11, 11), None),   # long before start
            (date(2023, 11, 3), None),
            (date(2023, 11, 4), None),    # notice window only just reached
            (date(2023, 11, 5), 0),       # start date, notice already counts
            (date(2023, 11, 10), 0),
            (date(2023, 11, 11), 1),      # one day notice before 2023-11-12
            (date(2023, 11, 12), 1),
            (date(2023, 11, 18), 2),
        ],
    )
    def test_weekly_with_one_day_notice(self, today, expected):
        assert most_recent_due_occurrence(make_spec(), today) == expected

    def test_start_date_without_notice(self):
        spec = make_spec(notice=timedelta(0))
        assert most_recent_due_occurrence(spec, date(2023, 11, 5)) == 0
        assert most_recent_due_occurrence(spec, date(2023, 11, 4)) is None

    def test_notice_reaches_before_start(self):
        spec = make_spec(notice=timedelta(days=3))
        assert most_recent_due_occurrence(spec, date(2023, 11, 3)) == 0
        assert most_recent_due_occurrence(spec, date(2023, 11, 2)) is None

    def test_end_freezes_evaluation_date(self):
        spec = make_spec(end=date(2023, 11, 15))
        assert most_recent_due_occurrence(spec, date(2023, 11, 15)) == 1
        assert most_recent_due_occurrence(spec, date(2024, 6, 1)) == 1

    def test_end_before_first_occurrence(self):
        spec = make_spec(start=date(2023, 11, 5), end=date(2023, 11, 5), notice=timedelta(0))
        assert most_recent_due_occurrence(spec, date(2030, 1, 1)) == 0

    def test_overflowing_index_is_clamped(self):
        spec = make_spec(start=date(1900, 1, 1), tempo=timedelta(seconds=1), notice=timedelta(0))
        assert most_recent_due_occurrence(spec, date(2100, 1, 1)) is None

    def test_due_dates_stop_at_the_last_representable_date(self):
        spec = make_spec(start=date(9998, 12, 31), notice=timedelta(days=365))
        n = most_recent_due_occurrence(spec, date.max)
        assert n == 52
        assert due_date(spec, n) <= date.max

    def test_none_before_start_for_every_date(self):
        spec = make_spec()
        for days_before in range(1, 60):
            today = spec.start - spec.notice - timedelta(days=days_before)
            assert most_recent_due_occurrence(spec, today) is None


# ---------------------------------------------------------------------------
# due_date
# ---------------------------------------------------------------------------

class TestDueDate:

    def test_weekly(self):
        spec = make_spec()
        assert due_date(spec, 0) == date(2023, 11, 5)
        assert due_date(spec, 1) == date(2023, 11, 12)
        assert due_date(spec, 52) == date(2024, 11, 3)

    def test_monthly_does_not_drift(self):
        spec = make_spec(start=date(2024, 1, 1), tempo=parse_duration("1M"))
        assert due_date(spec, 1) == date(2024, 1, 31)
        assert due_date(spec, 12) == date(2024, 12, 31)

    @pytest.mark.parametrize("tempo", ["1 day", "1 week", "2w 3d", "1M", "1y"])
    def test_strictly_increasing(self, tempo):
        spec = make_spec(tempo=parse_duration(tempo))
        dates = [due_date(spec, n) for n in range(200)]
        assert all(a < b for a, b in zip(dates, dates[1:]))

    def test_due_occurrence_is_never_later_than_notice(self):
        spec = make_spec()
        today = date(2024, 3, 1)
        n = most_recent_due_occurrence(spec, today)
        assert due_date(spec, n) - spec.notice <= today
        assert due_date(spec, n + 1) - spec.notice > today


# ---------------------------------------------------------------------------
# parse_duration
# ---------------------------------------------------------------------------

class TestParseDuration:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1 week", timedelta(weeks=1)),
            ("7days", timedelta(days=7)),
            ("2w 3d", timedelta(days=17)),
            ("12h", timedelta(hours=12)),
            ("90m", timedelta(minutes=90)),
            ("1 Week", timedelta(weeks=1)),
            ("1M", timedelta(seconds=2_630_016)),
            ("1y", timedelta(seconds=31_557_600)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "week", "1 fortnight", "-1d", 7, None])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_too_large(self):
        with pytest.raises(ValueError, match="too large"):
            parse_duration("99999999999 y")


# ---------------------------------------------------------------------------
# issues.yml
# ---------------------------------------------------------------------------

ISSUES_YML = """\
Weekly review:
  project: team/ops
  start: 2023-11-05
  tempo: 1 week
  notice: 1 day
  template: review.md
  labels: [recurring, review]
  assignees:
    - gid://gitlab/User/7
  template-args:
    owner: alex
    checklist: [a, b]
    nested: {x: 1, flag: true, none: null}

Quarterly audit:
  project: team/security
  start: "2024-01-01"
  end: 2025-01-01
  tempo: 13w
  template: audit.md
"""


class TestLoadSchedules:

    def test_loads_all_fields(self, tmp_path):
        path = tmp_path / "issues.yml"
        path.write_text(ISSUES_YML)

        schedules = load_schedules(path)

        assert set(schedules) == {"Weekly review", "Quarterly audit"}
        review = schedules["Weekly review"]
        assert review.project == "team/ops"
        assert review.start == date(2023, 11, 5)
        assert review.tempo == timedelta(weeks=1)
        assert review.notice == timedelta(days=1)
        assert review.labels == ["recurring", "review"]
        assert review.assignees == ["gid://gitlab/User/7"]
        assert review.template_args == {
            "owner": "alex",
            "checklist": ["a", "b"],
            "nested": {"x": 1, "flag": True, "none": None},
        }

        audit = schedules["Quarterly audit"]
        assert audit.start == date(2024, 1, 1)
        assert audit.end == date(2025, 1, 1)
        assert audit.notice == timedelta(0)
        assert audit.labels == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(ScheduleError):
            load_schedules(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "issues.yml"
        path.write_text("a: [unclosed\n")
        with pytest.raises(ScheduleError):
            load_schedules(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "issues.yml"
        path.write_text("")
        assert load_schedules(path) == {}

    def test_snake_case_template_args(self):
        schedules = parse_schedules({
            "x": {
                "project": "p", "start": "2024-01-01", "tempo": "1d",
                "template": "t.md", "template_args": {"k": "v"},
            }
        })
        assert schedules["x"].template_args == {"k": "v"}

    @pytest.mark.parametrize(
        "entry, message",
        [
            ({"start": "2024-01-01", "tempo": "1d", "template": "t"}, "project"),
            ({"project": "p", "start": "2024-01-01", "tempo": "0d", "template": "t"}, "tempo"),
            ({"project": "p", "start": "2024-01-01", "tempo": "12h", "template": "t"}, "tempo"),
            ({"project": "p", "start": "01/01/2024", "tempo": "1d", "template": "t"}, "start"),
            ({"project": "p", "start": "2024-01-01", "end": "2023-01-01", "tempo": "1d", "template": "t"}, "end"),
            ({"project": "p", "start": "2024-01-01", "tempo": "1d", "template": "t", "colour": "red"}, "colour"),
            ({"project": "p", "start": "2024-01-01", "tempo": "1d", "template": "t", "assignees": ["bob"]}, "assignees"),
            ({"project": "p", "start": "2024-01-01", "tempo": "1d", "template": "t", "labels": "x"}, "labels"),
            ({"project": "p", "start": "2024-01-01", "tempo": "99999999999 y", "template": "t"}, "too large"),
            ({"project": "p", "start": "2024-01-01", "tempo": "1d", "notice": "99999999999 y", "template": "t"}, "too large"),
            ({"project": "p", "start": "2024-01-01", "tempo": "9000 y", "template": "t"}, "tempo"),
            ({"project": "p", "start": "2024-01-01", "tempo": "1d", "notice": "9000 y", "template": "t"}, "notice"),
        ],
    )
    def test_invalid_entries(self, entry, message):
        with pytest.raises(ScheduleError, match=message):
            parse_schedules({"broken": entry})

    def test_error_names_the_issue(self):
        with pytest.raises(ScheduleError, match="'broken'"):
            parse_schedules({"broken": "not a mapping"})

    def test_top_level_must_be_mapping(self):
        with pytest.raises(ScheduleError):
            parse_schedules(["a", "b"])
