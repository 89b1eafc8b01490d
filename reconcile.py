"""Work out which occurrences still need to be created."""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterator, Mapping

from ledger import Ledger
from models import CreationPayload, ScheduleSpec, WorkItem
from schedule import due_date, most_recent_due_occurrence
from templating import RenderError, TemplateRenderer


@dataclass
class RenderFailure:
    """An occurrence whose description could not be rendered."""

    name: str
    occurrence: int
    error: RenderError


@dataclass
class Reconciliation:
    """The work list for one run, plus occurrences that failed to render."""

    items: list[WorkItem] = field(default_factory=list)
    failures: list[RenderFailure] = field(default_factory=list)

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def build_payload(
    name: str,
    spec: ScheduleSpec,
    occurrence: int,
    renderer: TemplateRenderer | None = None,
) -> CreationPayload:
    """Build the creation payload for one occurrence (may raise RenderError)."""
    due = due_date(spec, occurrence)
    description = None
    if renderer is not None:
        description = renderer.render(
            spec.template, spec.template_args, due=due, occurrence=occurrence
        )

    return CreationPayload(
        project_path=spec.project,
        title=name,
        description=description,
        due_date=due,
        labels=list(spec.labels),
        assignees=list(spec.assignees),
    )


def reconcile(
    schedules: Mapping[str, ScheduleSpec],
    ledger: Ledger,
    today: date,
    renderer: TemplateRenderer | None = None,
) -> Reconciliation:
    """Compare due occurrences against the ledger.

    Schedules are visited in name order and occurrences in ascending
    order, so the same inputs always give the same work list.
    """
    result = Reconciliation()

    for name in sorted(schedules):
        spec = schedules[name]
        due_occurrence = most_recent_due_occurrence(spec, today)

        for occurrence in ledger.missing_occurrences(name, due_occurrence):
            try:
                payload = build_payload(name, spec, occurrence, renderer)
            except RenderError as e:
                result.failures.append(RenderFailure(name, occurrence, e))
                continue
            result.items.append(WorkItem(name=name, occurrence=occurrence, payload=payload))

    return result
