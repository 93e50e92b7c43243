"""
Report API endpoints.

Citizens submit and follow their reports; employees and admins move them
through the lifecycle. Visibility and every mutation are decided by the
policy engine inside the report lifecycle service.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.db.session import get_db
from civicconnect.app.core.config import settings
from civicconnect.app.core.dependencies import get_current_user
from civicconnect.app.core.guards import require_admin
from civicconnect.app.core.policy import Actor, authorize_view
from civicconnect.app.schemas.report import (
    ReportCreate, ReportEnvelope, ReportListResponse, StatusUpdateRequest,
    AssignRequest, FeedbackRequest, ImageUploadResponse,
)
from civicconnect.app.services import report_lifecycle
from civicconnect.app.services.report_query import (
    ReportFilters, fetch_reports, page_request, scoped_report_conditions,
)
from civicconnect.app.services.media_store import LocalMediaStore, get_media_store, read_images
from civicconnect.app.services.audit import log_admin_action, AuditAction

router = APIRouter(prefix="/reports", tags=["Reports"])


async def _envelope(db: AsyncSession, report) -> ReportEnvelope:
    serialized = await report_lifecycle.serialize_reports(db, [report])
    return ReportEnvelope(report=serialized[0])


@router.post("", response_model=ReportEnvelope, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a new report.

    The report starts as `submitted` with one timeline entry, and every
    admin is notified.
    """
    report = await report_lifecycle.create_report(db, Actor.from_payload(current_user), payload)
    return await _envelope(db, report)


@router.get("", response_model=ReportListResponse)
async def list_reports(
    status: Optional[str] = Query(None, description="Single value or comma list"),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None, description="Employee id or 'unassigned'"),
    search: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the reports the caller may see, filtered and paginated."""
    config = settings.admin_panel
    filters = ReportFilters.parse(
        status=status, category=category, priority=priority, assigned_to=assigned_to,
        search=search, date_from=date_from, date_to=date_to, location=location,
    )
    paging = page_request(page, limit, config.reports_default_page_size, config.reports_max_page_size)
    conditions = scoped_report_conditions(Actor.from_payload(current_user), filters)
    reports, total = await fetch_reports(db, conditions, paging, sort_by, sort_order)

    return ReportListResponse(
        reports=await report_lifecycle.serialize_reports(db, reports),
        pagination=paging.meta(total)
    )


@router.get("/{report_id}", response_model=ReportEnvelope)
async def get_report(
    report_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    report = await report_lifecycle.get_report(db, report_id)
    authorize_view(Actor.from_payload(current_user), report)
    return await _envelope(db, report)


@router.patch("/{report_id}/status", response_model=ReportEnvelope)
async def update_report_status(
    report_id: int,
    payload: StatusUpdateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Move a report to a new status, as far as the caller's role allows."""
    report = await report_lifecycle.transition(
        db, Actor.from_payload(current_user), report_id, payload.status, comment=payload.comment
    )
    return await _envelope(db, report)


@router.patch("/{report_id}/assign", response_model=ReportEnvelope)
async def assign_report(
    report_id: int,
    payload: AssignRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Assign a report to an employee (admin-only)."""
    report = await report_lifecycle.assign(
        db, Actor.from_payload(admin), report_id, payload.assigned_to, comment=payload.comment
    )

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.REPORT_ASSIGNED,
        target_user_id=payload.assigned_to,
        metadata={"report_id": report_id}
    )

    return await _envelope(db, report)


@router.post("/{report_id}/feedback", response_model=ReportEnvelope)
async def submit_feedback(
    report_id: int,
    payload: FeedbackRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Rate a resolved report; this closes it."""
    report = await report_lifecycle.submit_feedback(
        db, Actor.from_payload(current_user), report_id, payload.rating, payload.comment
    )
    return await _envelope(db, report)


@router.post("/{report_id}/images", response_model=ImageUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_report_images(
    report_id: int,
    images: List[UploadFile] = File(...),
    caption: Optional[str] = Form(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: LocalMediaStore = Depends(get_media_store)
):
    """
    Attach images to a report.

    Allowed for the submitter, the assigned employee and admins. A timeline
    entry with the current status records the upload.
    """
    actor = Actor.from_payload(current_user)
    await report_lifecycle.authorize_attachment(db, actor, report_id)

    blobs = await read_images(images)
    urls = [await store.save(content, filename, "report") for content, filename in blobs]

    report, rows = await report_lifecycle.attach_images(
        db, actor, report_id,
        [(url, caption) for url in urls],
        comment=f"{len(urls)} image(s) uploaded",
    )
    return ImageUploadResponse(
        report_id=report.id,
        images=[report_lifecycle.serialize_image(row) for row in rows]
    )
