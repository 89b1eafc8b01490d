"""Data models for recurring issue generation."""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any


@dataclass(frozen=True)
class ScheduleSpec:
    """A recurring issue definition from issues.yml."""

    project: str
    start: date
    tempo: timedelta
    template: str
    end: date | None = None
    notice: timedelta = timedelta(0)
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)  # GitLab user global IDs
    template_args: dict[str, Any] = field(default_factory=dict)


@dataclass
class LedgerEntry:
    """What the ledger stores for one created occurrence."""

    issue_id: str
    created: date
    due: date | None = None


@dataclass
class LedgerRecord:
    """A created occurrence, addressed by schedule name and occurrence number."""

    name: str
    occurrence: int
    issue_id: str
    created: date
    due: date | None = None

    def entry(self) -> LedgerEntry:
        return LedgerEntry(issue_id=self.issue_id, created=self.created, due=self.due)


@dataclass
class CreationPayload:
    """Everything GitLab needs to create one issue."""

    project_path: str
    title: str
    description: str | None = None
    due_date: date | None = None
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)


@dataclass
class WorkItem:
    """One occurrence that still has to be created."""

    name: str
    occurrence: int
    payload: CreationPayload


@dataclass
class DispatchResult:
    """Outcome of sending one work item to GitLab."""

    item: WorkItem
    record: LedgerRecord | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass
class RunConfig:
    """Configuration for dispatch behavior."""

    max_concurrency: int = 8
    timeout_s: float = 30.0


@dataclass
class RunState:
    """State tracking for a single run."""

    planned: int = 0
    created: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
