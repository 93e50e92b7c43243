"""
Admin analytics endpoints.

Read-only dashboard and system statistics. Both are rate limited per
admin and served from the analytics cache when warm.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import async_sessionmaker

from civicconnect.app.db.session import get_session_factory
from civicconnect.app.core.config import settings
from civicconnect.app.core.guards import require_admin
from civicconnect.app.core.rate_limit import rate_limiter
from civicconnect.app.services.analytics import AnalyticsService
from civicconnect.app.schemas.analytics import DashboardAnalyticsResponse, SystemStatisticsResponse

router = APIRouter(prefix="/admin", tags=["Admin - Analytics"])

analytics_limit = rate_limiter("analytics", settings.admin_panel.analytics_rate_limit)


@router.get(
    "/dashboard/analytics",
    response_model=DashboardAnalyticsResponse,
    dependencies=[Depends(analytics_limit)]
)
async def get_dashboard_analytics(
    timeframe: Optional[str] = Query(None, description="7d, 30d, 90d or 1y"),
    admin: dict = Depends(require_admin),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """Overview metrics, breakdowns and the daily report series."""
    data = await AnalyticsService.get_dashboard(session_factory, timeframe, settings.admin_panel)
    return DashboardAnalyticsResponse(data=data)


@router.get(
    "/statistics",
    response_model=SystemStatisticsResponse,
    dependencies=[Depends(analytics_limit)]
)
async def get_system_statistics(
    period: Optional[str] = Query(None, description="24h, 7d, 30d or 90d"),
    admin: dict = Depends(require_admin),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """User, report, performance, geographic and timeline statistics."""
    data = await AnalyticsService.get_system_statistics(session_factory, period, settings.admin_panel)
    return SystemStatisticsResponse(data=data)
