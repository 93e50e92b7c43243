"""
Notification Emitter.

Decides who hears about a report event and what they are told. Records
are created through NotificationService, which is the only sink; how a
notification reaches the user is out of scope here.

Emission happens after the report change is committed and uses its own
commit, so a notification failure never undoes a transition. A failed
fan-out is rolled back, logged and raised as InternalServiceError.
"""

import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.core.exceptions import InternalServiceError
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.notification import NotificationPriority, NotificationType
from civicconnect.app.models.report_enums import ReportPriority, ReportStatus
from civicconnect.app.models.user import User
from civicconnect.app.services.notification_service import NotificationService

logger = logging.getLogger("civicconnect.notifications")

SUBMITTER_BULK_OUTCOMES = (ReportStatus.RESOLVED, ReportStatus.CLOSED)


class ReportEventKind(str, enum.Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    FEEDBACK = "feedback"


@dataclass(frozen=True)
class TransitionEvent:
    kind: ReportEventKind
    report_id: int
    report_title: str
    category: str
    priority: ReportPriority
    submitted_by: int
    assigned_to: Optional[int]
    new_status: ReportStatus
    actor_id: int
    comment: Optional[str] = None
    bulk: bool = False

    @classmethod
    def from_report(cls, kind: ReportEventKind, report, actor_id: int,
                    comment: Optional[str] = None, bulk: bool = False) -> "TransitionEvent":
        return cls(
            kind=kind,
            report_id=report.id,
            report_title=report.title,
            category=report.category.value,
            priority=report.priority,
            submitted_by=report.submitted_by,
            assigned_to=report.assigned_to,
            new_status=report.status,
            actor_id=actor_id,
            comment=comment,
            bulk=bulk,
        )


def _priority_for(report_priority: ReportPriority) -> NotificationPriority:
    if report_priority == ReportPriority.CRITICAL:
        return NotificationPriority.HIGH
    return NotificationPriority.NORMAL


def _status_title(status: ReportStatus) -> str:
    if status == ReportStatus.RESOLVED:
        return "Report Resolved"
    if status == ReportStatus.CLOSED:
        return "Report Closed"
    return "Report Status Updated"


def _status_message(event: TransitionEvent) -> str:
    if event.new_status == ReportStatus.RESOLVED:
        return f'Your report "{event.report_title}" has been resolved.'
    if event.new_status == ReportStatus.CLOSED:
        suffix = f" Reason: {event.comment}" if event.comment else ""
        return f'Your report "{event.report_title}" has been closed.{suffix}'
    return f'Your report "{event.report_title}" has been updated to {event.new_status.value.replace("_", " ")}'


class NotificationEmitter:
    """Maps report events to notification records."""

    def __init__(self, sink=NotificationService):
        self.sink = sink

    async def _admin_ids(self, db: AsyncSession) -> List[int]:
        result = await db.execute(
            select(User.id).where(User.role == UserRole.ADMIN)
        )
        return list(result.scalars().all())

    async def _notify(self, db: AsyncSession, recipient_id: int, type: NotificationType,
                      title: str, message: str, event: TransitionEvent,
                      priority: NotificationPriority = NotificationPriority.NORMAL) -> None:
        await self.sink.create_notification(
            db,
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            related_model="Report",
            related_id=event.report_id,
        )

    async def _dispatch(self, db: AsyncSession, event: TransitionEvent) -> int:
        sent = 0

        if event.kind == ReportEventKind.CREATED:
            for admin_id in await self._admin_ids(db):
                await self._notify(
                    db, admin_id, NotificationType.REPORT_STATUS, "New Report Submitted",
                    f"A new {event.category} report has been submitted: {event.report_title}",
                    event, _priority_for(event.priority),
                )
                sent += 1

        elif event.kind == ReportEventKind.STATUS_CHANGED:
            if event.bulk and event.new_status not in SUBMITTER_BULK_OUTCOMES:
                return 0
            if event.submitted_by == event.actor_id:
                return 0
            await self._notify(
                db, event.submitted_by, NotificationType.REPORT_STATUS,
                _status_title(event.new_status), _status_message(event), event,
            )
            sent += 1

        elif event.kind == ReportEventKind.ASSIGNED:
            if event.assigned_to is not None:
                await self._notify(
                    db, event.assigned_to, NotificationType.ASSIGNMENT, "New Report Assigned",
                    f'You have been assigned a new report: "{event.report_title}"',
                    event, _priority_for(event.priority),
                )
                sent += 1

        elif event.kind == ReportEventKind.FEEDBACK:
            if event.assigned_to is not None:
                await self._notify(
                    db, event.assigned_to, NotificationType.FEEDBACK, "Feedback Received",
                    f"Feedback received for report: {event.report_title}", event,
                )
                sent += 1

        return sent

    async def emit(self, db: AsyncSession, event: TransitionEvent) -> int:
        """
        Create the notifications for `event` and commit them.

        Returns the number created. On failure nothing is kept and
        InternalServiceError is raised; the report change is already committed.
        """
        try:
            sent = await self._dispatch(db, event)
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.exception(
                "Notification fan-out failed for report %s (%s)", event.report_id, event.kind.value
            )
            raise InternalServiceError(
                "Report updated, but notifications could not be created",
                details={"report_id": event.report_id}
            ) from exc
        return sent


notification_emitter = NotificationEmitter()
