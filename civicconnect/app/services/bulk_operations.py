"""
Bulk Operation Coordinator.

Applies one transition (status update, reassignment, close) to many
reports. Everything that can reject the whole batch is checked before
any report is read or touched: the id list, the target status and, for
reassignment, the assignee. Each found report is then processed in its
own session and task, so one failure never rolls back another. A report
counts as updated once its change commits, even if its notifications fail
or the batch deadline cancels it afterwards.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civicconnect.app.core import policy
from civicconnect.app.core.config import AdminPanelConfig, settings
from civicconnect.app.core.exceptions import InvalidArgumentError, ResourceNotFoundError
from civicconnect.app.core.policy import Actor
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import ReportStatus
from civicconnect.app.services import report_lifecycle
from civicconnect.app.services.notification_emitter import NotificationEmitter, notification_emitter

logger = logging.getLogger("civicconnect.bulk")

DEFAULT_CLOSE_COMMENT = "Report closed by administrator"


@dataclass
class BulkResult:
    report_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.report_ids)


def parse_report_ids(raw_ids: Sequence[Any], max_batch_size: int) -> List[int]:
    """
    Validate a batch of report ids.

    Accepts positive integers and digit strings. Rejects the whole batch
    when it is empty, too large, or contains any malformed id. Duplicates
    are collapsed, keeping first-seen order.
    """
    if not raw_ids:
        raise InvalidArgumentError("Report IDs array is required")
    if len(raw_ids) > max_batch_size:
        raise InvalidArgumentError(
            f"Cannot process more than {max_batch_size} reports at once",
            details={"max_batch_size": max_batch_size, "received": len(raw_ids)}
        )

    ids: List[int] = []
    invalid: List[Any] = []
    for value in raw_ids:
        if isinstance(value, bool):
            invalid.append(value)
        elif isinstance(value, int) and value > 0:
            ids.append(value)
        elif isinstance(value, str) and value.isdigit() and int(value) > 0:
            ids.append(int(value))
        else:
            invalid.append(value)

    if invalid:
        raise InvalidArgumentError("Invalid report IDs provided", details={"invalid_ids": invalid})

    return list(dict.fromkeys(ids))


class _CommitTracker:
    """
    Emitter wrapper noting which reports reached their commit.

    The lifecycle emits right after committing, with no await in between,
    so a report seen here was applied even if its task later failed or was
    cancelled at the deadline.
    """

    def __init__(self, emitter: NotificationEmitter):
        self.emitter = emitter
        self.committed: Set[int] = set()

    async def emit(self, db: AsyncSession, event) -> int:
        self.committed.add(event.report_id)
        return await self.emitter.emit(db, event)


class BulkOperationCoordinator:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[AdminPanelConfig] = None,
        emitter: NotificationEmitter = notification_emitter,
    ):
        self.session_factory = session_factory
        self.config = config or settings.admin_panel
        self.emitter = emitter

    async def _existing_ids(self, ids: List[int]) -> List[int]:
        """Well-formed ids that exist, in request order; raises if none do."""
        async with self.session_factory() as session:
            result = await session.execute(select(Report.id).where(Report.id.in_(ids)))
            found = set(result.scalars().all())
        existing = [rid for rid in ids if rid in found]
        if not existing:
            raise ResourceNotFoundError("Report", message="No reports found with the provided IDs")
        return existing

    async def _apply_one(self, report_id: int, operation: Callable[[AsyncSession, int], Awaitable[Any]]) -> None:
        async with self.session_factory() as session:
            await operation(session, report_id)

    async def _run(self, action: str, report_ids: List[int],
                   operation: Callable[[AsyncSession, int], Awaitable[Any]],
                   tracker: _CommitTracker) -> BulkResult:
        tasks = {rid: asyncio.create_task(self._apply_one(rid, operation)) for rid in report_ids}
        done, pending = await asyncio.wait(
            tasks.values(), timeout=self.config.bulk_operation_timeout_seconds
        )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("%s: %d report(s) still pending at the deadline", action, len(pending))

        result = BulkResult()
        for rid, task in tasks.items():
            error = task.exception() if task in done else None
            finished = task in done and error is None
            if finished or rid in tracker.committed:
                result.report_ids.append(rid)
                if not finished:
                    logger.warning("%s applied to report %s but did not complete: %s", action, rid, error or "deadline")
                continue
            result.failed_ids.append(rid)
            if error is not None:
                logger.warning("%s failed for report %s: %s", action, rid, error)

        logger.info(
            "%s finished: %d updated, %d failed", action, result.updated_count, len(result.failed_ids)
        )
        return result

    async def update_status(self, actor: Actor, raw_ids: Sequence[Any], status: Any,
                            comment: Optional[str] = None) -> BulkResult:
        report_ids = parse_report_ids(raw_ids, self.config.bulk_max_batch_size)
        target = policy.parse_status(status)
        found = await self._existing_ids(report_ids)
        tracker = _CommitTracker(self.emitter)

        async def operation(session: AsyncSession, report_id: int):
            await report_lifecycle.transition(
                session, actor, report_id, target,
                comment=comment or f"Bulk status update to {target.value}",
                bulk=True, emitter=tracker,
            )

        return await self._run("bulk_update_status", found, operation, tracker)

    async def assign(self, actor: Actor, raw_ids: Sequence[Any], assignee_id: int,
                     comment: Optional[str] = None) -> BulkResult:
        report_ids = parse_report_ids(raw_ids, self.config.bulk_max_batch_size)
        policy.authorize_assignment(actor)
        async with self.session_factory() as session:
            assignee = await report_lifecycle.get_assignable_employee(session, assignee_id)
        found = await self._existing_ids(report_ids)
        tracker = _CommitTracker(self.emitter)

        async def operation(session: AsyncSession, report_id: int):
            await report_lifecycle.assign(
                session, actor, report_id, assignee.id,
                comment=comment or f"Bulk assigned to {assignee.full_name}",
                assignee=assignee, emitter=tracker,
            )

        return await self._run("bulk_assign", found, operation, tracker)

    async def close(self, actor: Actor, raw_ids: Sequence[Any], reason: Optional[str] = None) -> BulkResult:
        """Soft delete: reports are closed, never removed."""
        report_ids = parse_report_ids(raw_ids, self.config.bulk_max_batch_size)
        found = await self._existing_ids(report_ids)
        tracker = _CommitTracker(self.emitter)

        async def operation(session: AsyncSession, report_id: int):
            await report_lifecycle.transition(
                session, actor, report_id, ReportStatus.CLOSED,
                comment=reason or DEFAULT_CLOSE_COMMENT,
                bulk=True, emitter=tracker,
            )

        return await self._run("bulk_delete", found, operation, tracker)
