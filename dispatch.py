"""Create issues concurrently and fold the results back into the ledger."""

import asyncio
from datetime import date
from typing import Iterable, Protocol

from ledger import Ledger
from models import CreationPayload, DispatchResult, LedgerRecord, WorkItem


class IssueCreator(Protocol):
    def create_issue(self, payload: CreationPayload) -> str: ...


async def send(item: WorkItem, client: IssueCreator, today: date) -> DispatchResult:
    """Create one issue; any error becomes a failed result for this item only."""
    try:
        issue_id = await asyncio.to_thread(client.create_issue, item.payload)
    except Exception as e:
        # ApiError and anything unexpected alike; siblings keep their results
        return DispatchResult(item=item, error=e)

    record = LedgerRecord(
        name=item.name,
        occurrence=item.occurrence,
        issue_id=issue_id,
        created=today,
        due=item.payload.due_date,
    )
    return DispatchResult(item=item, record=record)


async def dispatch(
    work: Iterable[WorkItem],
    client: IssueCreator,
    today: date,
    max_concurrency: int = 8,
) -> list[DispatchResult]:
    """Send every work item and wait for all of them.

    A failing request never cancels its siblings. Results come back in
    work-list order regardless of completion order.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def bounded(item: WorkItem) -> DispatchResult:
        async with semaphore:
            return await send(item, client, today)

    return list(await asyncio.gather(*(bounded(item) for item in work)))


def apply_results(
    ledger: Ledger, results: Iterable[DispatchResult]
) -> tuple[list[DispatchResult], list[DispatchResult]]:
    """Insert every success into the ledger, in work-list order.

    Returns:
        (created, failed)
    """
    created, failed = [], []
    for result in results:
        if result.ok:
            ledger.insert(result.record)
            created.append(result)
        else:
            failed.append(result)
    return created, failed
