"""
Map API endpoints.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.db.session import get_db
from civicconnect.app.core.dependencies import get_current_user
from civicconnect.app.core.policy import Actor
from civicconnect.app.models.report import Report
from civicconnect.app.schemas.report import MapReportItem, MapReportsResponse
from civicconnect.app.services.report_query import ReportFilters, report_select, scoped_report_conditions

router = APIRouter(prefix="/maps", tags=["Maps"])


@router.get("/reports", response_model=MapReportsResponse)
async def get_map_reports(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    limit: int = Query(500, ge=1, le=1000),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Visible reports as map points.

    Same role scope as the report list; only the fields a map marker needs.
    """
    filters = ReportFilters.parse(status=status, category=category)
    conditions = scoped_report_conditions(Actor.from_payload(current_user), filters)
    query = report_select(conditions).order_by(Report.created_at.desc(), Report.id.desc()).limit(limit)
    result = await db.execute(query)

    items = [
        MapReportItem(
            id=r.id,
            title=r.title,
            category=r.category,
            priority=r.priority,
            status=r.status,
            coordinates=[r.longitude, r.latitude],
            address_city=r.address_city,
            created_at=r.created_at,
        )
        for r in result.scalars().all()
    ]
    return MapReportsResponse(count=len(items), reports=items)
