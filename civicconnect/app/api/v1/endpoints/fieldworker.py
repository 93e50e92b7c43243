"""
Field worker API endpoints.

Everything here acts on reports assigned to the calling employee.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.db.session import get_db
from civicconnect.app.core.config import settings
from civicconnect.app.core.guards import require_employee
from civicconnect.app.core.policy import Actor
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import ReportStatus
from civicconnect.app.models.report_image import ReportImage
from civicconnect.app.schemas.report import (
    ReportEnvelope, ReportListResponse, StatusUpdateRequest,
    ImageUploadResponse, FieldWorkerImageItem, FieldWorkerImagesResponse,
)
from civicconnect.app.services import report_lifecycle
from civicconnect.app.services.report_query import ReportFilters, fetch_reports, page_request
from civicconnect.app.services.media_store import LocalMediaStore, get_media_store, read_images

router = APIRouter(prefix="/fieldworker", tags=["Field Worker"])


@router.get("/reports", response_model=ReportListResponse)
async def list_assigned_reports(
    status: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    employee: dict = Depends(require_employee),
    db: AsyncSession = Depends(get_db)
):
    """Reports assigned to the caller, newest first."""
    config = settings.admin_panel
    filters = ReportFilters.parse(status=status)
    paging = page_request(page, limit, config.reports_default_page_size, config.reports_max_page_size)
    conditions = [Report.assigned_to == employee["user_id"]] + filters.conditions()
    reports, total = await fetch_reports(db, conditions, paging)

    return ReportListResponse(
        reports=await report_lifecycle.serialize_reports(db, reports),
        pagination=paging.meta(total)
    )


@router.patch("/reports/{report_id}/status", response_model=ReportEnvelope)
async def update_assigned_report_status(
    report_id: int,
    payload: StatusUpdateRequest,
    employee: dict = Depends(require_employee),
    db: AsyncSession = Depends(get_db)
):
    """Set `in_progress` or `resolved` on a report assigned to the caller."""
    report = await report_lifecycle.transition(
        db, Actor.from_payload(employee), report_id, payload.status, comment=payload.comment
    )
    serialized = await report_lifecycle.serialize_reports(db, [report])
    return ReportEnvelope(report=serialized[0])


async def _upload(db: AsyncSession, store: LocalMediaStore, actor: Actor, report_id: int,
                  images: List[UploadFile], caption: Optional[str], comment: str,
                  category: str, target_status: Optional[ReportStatus]) -> ImageUploadResponse:
    await report_lifecycle.authorize_attachment(db, actor, report_id, target_status)

    blobs = await read_images(images)
    urls = [await store.save(content, filename, category) for content, filename in blobs]

    report, rows = await report_lifecycle.attach_images(
        db, actor, report_id, [(url, caption) for url in urls],
        comment=comment, target_status=target_status,
    )
    return ImageUploadResponse(
        report_id=report.id,
        images=[report_lifecycle.serialize_image(row) for row in rows]
    )


@router.post("/images/progress", response_model=ImageUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_progress_images(
    report_id: int = Form(...),
    images: List[UploadFile] = File(...),
    caption: Optional[str] = Form(None),
    comment: Optional[str] = Form(None),
    employee: dict = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
    store: LocalMediaStore = Depends(get_media_store)
):
    """Upload progress photos; the report moves to `in_progress`."""
    return await _upload(
        db, store, Actor.from_payload(employee), report_id, images, caption,
        comment or "Progress images uploaded", "progress", ReportStatus.IN_PROGRESS,
    )


@router.post("/images/completion", response_model=ImageUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_completion_images(
    report_id: int = Form(...),
    images: List[UploadFile] = File(...),
    caption: Optional[str] = Form(None),
    comment: Optional[str] = Form(None),
    mark_resolved: bool = Form(False),
    employee: dict = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
    store: LocalMediaStore = Depends(get_media_store)
):
    """Upload completion photos, optionally marking the report `resolved`."""
    target = ReportStatus.RESOLVED if mark_resolved else None
    return await _upload(
        db, store, Actor.from_payload(employee), report_id, images, caption,
        comment or "Completion images uploaded", "completion", target,
    )


@router.get("/images", response_model=FieldWorkerImagesResponse)
async def list_assigned_report_images(
    employee: dict = Depends(require_employee),
    db: AsyncSession = Depends(get_db)
):
    """All images attached to reports assigned to the caller, newest first."""
    result = await db.execute(
        select(ReportImage, Report.title)
        .join(Report, Report.id == ReportImage.report_id)
        .where(Report.assigned_to == employee["user_id"])
        .order_by(ReportImage.uploaded_at.desc(), ReportImage.id.desc())
    )
    items = [
        FieldWorkerImageItem(
            report_id=image.report_id,
            report_title=title,
            image=report_lifecycle.serialize_image(image),
        )
        for image, title in result.all()
    ]
    return FieldWorkerImagesResponse(count=len(items), images=items)
