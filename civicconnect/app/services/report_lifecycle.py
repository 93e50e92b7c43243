"""
Report lifecycle service.

Every status change goes through `_record_transition`, which appends a
timeline entry and sets `Report.status` in the same unit of work. The
public operations lock the report row, run the policy check, record the
transition, commit, and only then hand a TransitionEvent to the
notification emitter.

No transition graph is enforced: the policy's role gates are the only
restriction on which status may follow which.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.core import policy
from civicconnect.app.core.exceptions import (
    InternalServiceError,
    InvalidArgumentError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from civicconnect.app.core.policy import Actor
from civicconnect.app.core.timeutils import utcnow
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import ReportStatus
from civicconnect.app.models.report_image import ReportImage
from civicconnect.app.models.report_timeline import ReportTimelineEntry
from civicconnect.app.models.user import User
from civicconnect.app.schemas.report import ReportCreate
from civicconnect.app.services.notification_emitter import (
    NotificationEmitter,
    ReportEventKind,
    TransitionEvent,
    notification_emitter,
)

logger = logging.getLogger("civicconnect.reports")

FEEDBACK_CLOSE_COMMENT = "Feedback provided and report closed"


async def _emit(db: AsyncSession, emitter: NotificationEmitter, event: TransitionEvent, *instances) -> None:
    try:
        await emitter.emit(db, event)
    except InternalServiceError:
        # the emitter rolled the session back, which expires loaded rows
        for instance in instances:
            if instance in db and inspect(instance).expired_attributes:
                await db.refresh(instance)
        raise


def validate_coordinates(coordinates: Sequence[float]) -> Dict[str, str]:
    errors = {}
    longitude, latitude = coordinates[0], coordinates[1]
    if not -180 <= longitude <= 180:
        errors["location.coordinates.0"] = "Longitude must be between -180 and 180"
    if not -90 <= latitude <= 90:
        errors["location.coordinates.1"] = "Latitude must be between -90 and 90"
    return errors


async def get_report(db: AsyncSession, report_id: int) -> Report:
    result = await db.execute(select(Report).where(Report.id == report_id))
    report = result.scalar_one_or_none()
    if not report:
        raise ResourceNotFoundError("Report", report_id, message="Report not found")
    return report


async def lock_report(db: AsyncSession, report_id: int) -> Report:
    """Load a report for modification, holding its row lock until commit."""
    result = await db.execute(
        select(Report)
        .where(Report.id == report_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    report = result.scalar_one_or_none()
    if not report:
        raise ResourceNotFoundError("Report", report_id, message="Report not found")
    return report


async def get_assignable_employee(db: AsyncSession, user_id: int) -> User:
    """The target of an assignment must exist and be an employee."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id, message="Assignee not found")
    if user.role != UserRole.EMPLOYEE:
        raise InvalidArgumentError(
            "Reports can only be assigned to employees",
            details={"assigned_to": user_id, "role": user.role.value}
        )
    return user


def _record_transition(db: AsyncSession, report: Report, status: ReportStatus,
                       comment: Optional[str], actor_id: int) -> ReportTimelineEntry:
    now = utcnow()
    entry = ReportTimelineEntry(
        report_id=report.id,
        status=status,
        comment=comment,
        updated_by=actor_id,
        timestamp=now,
    )
    db.add(entry)
    report.status = status
    report.updated_at = now
    return entry


async def create_report(db: AsyncSession, actor: Actor, payload: ReportCreate,
                        emitter: NotificationEmitter = notification_emitter) -> Report:
    """
    Persist a new report with its initial `submitted` timeline entry.

    Every admin account, active or not, is notified once the report is committed.
    """
    errors = validate_coordinates(payload.location.coordinates)
    if errors:
        raise ValidationFailedError(errors)

    address = payload.location.address
    report = Report(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        priority=payload.priority,
        status=ReportStatus.SUBMITTED,
        longitude=payload.location.coordinates[0],
        latitude=payload.location.coordinates[1],
        address_street=address.street if address else None,
        address_city=address.city if address else None,
        address_state=address.state if address else None,
        address_zip_code=address.zip_code if address else None,
        submitted_by=actor.user_id,
    )
    db.add(report)
    await db.flush()
    _record_transition(db, report, ReportStatus.SUBMITTED, "Report submitted", actor.user_id)
    await db.commit()
    await db.refresh(report)

    logger.info("Report %s created by user %s", report.id, actor.user_id)
    await _emit(db, emitter, TransitionEvent.from_report(ReportEventKind.CREATED, report, actor.user_id), report)
    return report


async def transition(
    db: AsyncSession,
    actor: Actor,
    report_id: int,
    target_status,
    comment: Optional[str] = None,
    bulk: bool = False,
    emitter: NotificationEmitter = notification_emitter,
) -> Report:
    """
    Move a report to `target_status` on behalf of `actor`.

    Raises InvalidArgumentError for an unknown status, ResourceNotFoundError
    for a missing report, and the policy's errors before anything changes.
    """
    status = policy.parse_status(target_status)
    report = await lock_report(db, report_id)
    try:
        policy.authorize_status_change(actor, report, status)
    except Exception:
        await db.rollback()
        raise

    previous = report.status
    _record_transition(db, report, status, comment or f"Status updated to {status.value}", actor.user_id)
    await db.commit()

    logger.info("Report %s: %s -> %s by user %s", report.id, previous.value, status.value, actor.user_id)
    await _emit(db, emitter, TransitionEvent.from_report(
        ReportEventKind.STATUS_CHANGED, report, actor.user_id, comment=comment, bulk=bulk
    ), report)
    return report


async def assign(
    db: AsyncSession,
    actor: Actor,
    report_id: int,
    assignee_id: int,
    comment: Optional[str] = None,
    assignee: Optional[User] = None,
    emitter: NotificationEmitter = notification_emitter,
) -> Report:
    """
    Assign a report to an employee; status becomes `assigned`.

    Pass `assignee` when the caller has already validated it (bulk path).
    """
    policy.authorize_assignment(actor)
    if assignee is None:
        assignee = await get_assignable_employee(db, assignee_id)

    report = await lock_report(db, report_id)
    report.assigned_to = assignee.id
    _record_transition(
        db, report, ReportStatus.ASSIGNED,
        comment or f"Assigned to {assignee.full_name}", actor.user_id
    )
    await db.commit()

    logger.info("Report %s assigned to user %s by %s", report.id, assignee.id, actor.user_id)
    await _emit(db, emitter, TransitionEvent.from_report(ReportEventKind.ASSIGNED, report, actor.user_id), report, assignee)
    return report


async def submit_feedback(
    db: AsyncSession,
    actor: Actor,
    report_id: int,
    rating: int,
    comment: Optional[str] = None,
    emitter: NotificationEmitter = notification_emitter,
) -> Report:
    """Record the submitter's feedback on a resolved report and close it."""
    report = await lock_report(db, report_id)
    try:
        policy.authorize_feedback(actor, report)
    except Exception:
        await db.rollback()
        raise

    report.feedback_rating = rating
    report.feedback_comment = comment
    report.feedback_submitted_at = utcnow()
    _record_transition(db, report, ReportStatus.CLOSED, FEEDBACK_CLOSE_COMMENT, actor.user_id)
    await db.commit()
    await db.refresh(report)

    await _emit(db, emitter, TransitionEvent.from_report(ReportEventKind.FEEDBACK, report, actor.user_id), report)
    return report


async def authorize_attachment(db: AsyncSession, actor: Actor, report_id: int,
                               target_status: Optional[ReportStatus] = None) -> Report:
    """
    Pre-check before blobs are stored, so unauthorized uploads never
    reach the media store. `attach_images` repeats the check under lock.
    """
    report = await get_report(db, report_id)
    if target_status is None:
        policy.authorize_image_upload(actor, report)
    else:
        policy.authorize_status_change(actor, report, target_status)
    return report


async def attach_images(
    db: AsyncSession,
    actor: Actor,
    report_id: int,
    images: List[Tuple[str, Optional[str]]],
    comment: str,
    target_status: Optional[ReportStatus] = None,
    emitter: NotificationEmitter = notification_emitter,
) -> Tuple[Report, List[ReportImage]]:
    """
    Attach stored images (url, caption) to a report.

    A timeline entry is appended either way: with `target_status` when the
    upload also moves the report, otherwise with the current status.
    """
    report = await lock_report(db, report_id)
    try:
        if target_status is None:
            policy.authorize_image_upload(actor, report)
        else:
            policy.authorize_status_change(actor, report, target_status)
    except Exception:
        await db.rollback()
        raise

    previous = report.status
    rows = [
        ReportImage(report_id=report.id, url=url, caption=caption, uploaded_by=actor.user_id)
        for url, caption in images
    ]
    db.add_all(rows)
    _record_transition(db, report, target_status or report.status, comment, actor.user_id)
    await db.commit()
    await db.refresh(report)
    for row in rows:
        await db.refresh(row)

    if report.status != previous:
        await _emit(db, emitter, TransitionEvent.from_report(
            ReportEventKind.STATUS_CHANGED, report, actor.user_id, comment=comment
        ), report, *rows)
    return report, rows


async def load_details(db: AsyncSession, report_ids: Sequence[int]
                       ) -> Tuple[Dict[int, List[ReportTimelineEntry]], Dict[int, List[ReportImage]]]:
    """Timelines (ascending) and images for a batch of reports, two queries total."""
    timelines: Dict[int, List[ReportTimelineEntry]] = defaultdict(list)
    images: Dict[int, List[ReportImage]] = defaultdict(list)
    if not report_ids:
        return timelines, images

    result = await db.execute(
        select(ReportTimelineEntry)
        .where(ReportTimelineEntry.report_id.in_(report_ids))
        .order_by(ReportTimelineEntry.timestamp.asc(), ReportTimelineEntry.id.asc())
    )
    for entry in result.scalars().all():
        timelines[entry.report_id].append(entry)

    result = await db.execute(
        select(ReportImage)
        .where(ReportImage.report_id.in_(report_ids))
        .order_by(ReportImage.uploaded_at.asc(), ReportImage.id.asc())
    )
    for image in result.scalars().all():
        images[image.report_id].append(image)

    return timelines, images


def serialize_image(image: ReportImage) -> dict:
    return {"id": image.id, "url": image.url, "caption": image.caption, "uploaded_at": image.uploaded_at}


def serialize_report(report: Report, timeline: Sequence[ReportTimelineEntry] = (),
                     images: Sequence[ReportImage] = ()) -> dict:
    feedback = None
    if report.feedback_rating is not None:
        feedback = {
            "rating": report.feedback_rating,
            "comment": report.feedback_comment,
            "submitted_at": report.feedback_submitted_at,
        }
    return {
        "id": report.id,
        "title": report.title,
        "description": report.description,
        "category": report.category,
        "priority": report.priority,
        "status": report.status,
        "location": {
            "type": "Point",
            "coordinates": [report.longitude, report.latitude],
            "address": {
                "street": report.address_street,
                "city": report.address_city,
                "state": report.address_state,
                "zip_code": report.address_zip_code,
            },
        },
        "submitted_by": report.submitted_by,
        "assigned_to": report.assigned_to,
        "images": [serialize_image(image) for image in images],
        "timeline": [
            {
                "status": entry.status,
                "comment": entry.comment,
                "updated_by": entry.updated_by,
                "timestamp": entry.timestamp,
            }
            for entry in timeline
        ],
        "feedback": feedback,
        "created_at": report.created_at,
        "updated_at": report.updated_at,
    }


async def serialize_reports(db: AsyncSession, reports: Sequence[Report]) -> List[dict]:
    timelines, images = await load_details(db, [r.id for r in reports])
    return [serialize_report(r, timelines.get(r.id, []), images.get(r.id, [])) for r in reports]
