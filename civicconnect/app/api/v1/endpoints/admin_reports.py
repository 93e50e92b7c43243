"""
Admin report endpoints: bulk operations and advanced search.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civicconnect.app.db.session import get_db, get_session_factory
from civicconnect.app.core.config import settings
from civicconnect.app.core.guards import require_admin
from civicconnect.app.core.policy import Actor
from civicconnect.app.core.rate_limit import rate_limiter
from civicconnect.app.schemas.bulk import (
    BulkStatusUpdateRequest, BulkAssignRequest, BulkDeleteRequest, BulkOperationResponse,
)
from civicconnect.app.schemas.search import AdvancedSearchResponse
from civicconnect.app.services import report_lifecycle
from civicconnect.app.services.analytics import AnalyticsService
from civicconnect.app.services.audit import log_admin_action, AuditAction
from civicconnect.app.services.bulk_operations import BulkOperationCoordinator
from civicconnect.app.services.report_query import ReportFilters, fetch_reports, page_request

router = APIRouter(prefix="/admin/reports", tags=["Admin - Reports"])

bulk_limit = rate_limiter("bulk", settings.admin_panel.bulk_rate_limit)
search_limit = rate_limiter("search", settings.admin_panel.search_rate_limit)


def get_bulk_coordinator(
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> BulkOperationCoordinator:
    return BulkOperationCoordinator(session_factory, settings.admin_panel)


@router.post(
    "/bulk-update-status",
    response_model=BulkOperationResponse,
    dependencies=[Depends(bulk_limit)]
)
async def bulk_update_status(
    payload: BulkStatusUpdateRequest,
    admin: dict = Depends(require_admin),
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """Move many reports to one status; each report succeeds or fails on its own."""
    result = await coordinator.update_status(
        Actor.from_payload(admin), payload.report_ids, payload.status, payload.comment
    )

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.BULK_STATUS_UPDATE,
        metadata={"status": payload.status, "report_ids": result.report_ids, "failed_ids": result.failed_ids}
    )

    return BulkOperationResponse(
        updated_count=result.updated_count,
        status=payload.status,
        report_ids=result.report_ids,
        failed_ids=result.failed_ids
    )


@router.post(
    "/bulk-assign",
    response_model=BulkOperationResponse,
    dependencies=[Depends(bulk_limit)]
)
async def bulk_assign(
    payload: BulkAssignRequest,
    admin: dict = Depends(require_admin),
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """Assign many reports to one employee."""
    result = await coordinator.assign(
        Actor.from_payload(admin), payload.report_ids, payload.assigned_to, payload.comment
    )

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.BULK_ASSIGN,
        target_user_id=payload.assigned_to,
        metadata={"report_ids": result.report_ids, "failed_ids": result.failed_ids}
    )

    return BulkOperationResponse(
        updated_count=result.updated_count,
        assigned_to=payload.assigned_to,
        report_ids=result.report_ids,
        failed_ids=result.failed_ids
    )


@router.post(
    "/bulk-delete",
    response_model=BulkOperationResponse,
    dependencies=[Depends(bulk_limit)]
)
async def bulk_delete(
    payload: BulkDeleteRequest,
    admin: dict = Depends(require_admin),
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """
    Close many reports.

    Reports are never removed; "delete" marks them `closed` with the reason
    as the timeline comment.
    """
    result = await coordinator.close(Actor.from_payload(admin), payload.report_ids, payload.reason)

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.BULK_DELETE,
        metadata={"reason": payload.reason, "report_ids": result.report_ids, "failed_ids": result.failed_ids}
    )

    return BulkOperationResponse(
        updated_count=result.updated_count,
        status="closed",
        report_ids=result.report_ids,
        failed_ids=result.failed_ids
    )


@router.get(
    "/search",
    response_model=AdvancedSearchResponse,
    dependencies=[Depends(search_limit)]
)
async def advanced_search(
    search: Optional[str] = Query(None, description="Matches title or description"),
    status: Optional[str] = Query(None, description="Single value or comma list"),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None, description="Employee id or 'unassigned'"),
    submitted_by: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    location: Optional[str] = Query(None, description="Substring of the address city"),
    has_images: Optional[str] = Query(None),
    has_feedback: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """
    Filtered, paginated report search with facet statistics.

    Statistics cover the whole filtered set, not just the returned page.
    """
    config = settings.admin_panel
    filters = ReportFilters.parse(
        status=status, category=category, priority=priority, assigned_to=assigned_to,
        submitted_by=submitted_by, search=search, date_from=date_from, date_to=date_to,
        location=location, has_images=has_images, has_feedback=has_feedback,
    )
    paging = page_request(page, limit, config.search_default_page_size, config.search_max_page_size)
    conditions = filters.conditions()

    reports, total = await fetch_reports(db, conditions, paging, sort_by, sort_order)
    statistics = await AnalyticsService.get_search_statistics(session_factory, conditions)
    echoed = {**filters.raw, "sort_by": sort_by, "sort_order": sort_order}

    return AdvancedSearchResponse(
        reports=await report_lifecycle.serialize_reports(db, reports),
        pagination=paging.meta(total),
        statistics=statistics,
        filters={k: v for k, v in echoed.items() if v is not None}
    )
