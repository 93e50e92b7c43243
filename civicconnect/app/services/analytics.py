"""
Analytics Service.

Handles data aggregation for the admin dashboard, system statistics and
search facets. READ-ONLY and point-in-time: independent metrics run
concurrently, each in its own session from the session factory.
"""

import asyncio
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from civicconnect.app.core.config import AdminPanelConfig, settings
from civicconnect.app.core.timeutils import as_utc, utcnow
from civicconnect.app.models.notification import Notification
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import (
    DEFAULT_PRIORITY_SCORE,
    PRIORITY_SCORES,
    ReportStatus,
)
from civicconnect.app.models.report_timeline import ReportTimelineEntry
from civicconnect.app.models.user import User
from civicconnect.app.services.cache import CacheService

WINDOW_DAYS = {
    "24h": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}


# Pure helpers

def resolve_window(value: Optional[str], allowed: Sequence[str], default: str) -> str:
    """Unknown or missing window names fall back to the default."""
    if value in allowed and value in WINDOW_DAYS:
        return value
    return default


def window_start(window: str, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - timedelta(days=WINDOW_DAYS[window])


def percentage(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def user_growth_rate(recent_reports: int, total_reports: int, total_users: int) -> float:
    """
    Dashboard "user growth rate".

    Kept as the dashboard has always reported it: recent *reports* over
    total reports, zero when there are no users or no reports.
    """
    if not total_users:
        return 0.0
    return percentage(recent_reports, total_reports)


def resolution_hours(created_at: datetime, resolved_at: datetime) -> float:
    return (as_utc(resolved_at) - as_utc(created_at)).total_seconds() / 3600


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize_resolution(hours: Iterable[float]) -> Dict[str, int]:
    """Average, min and max hours rounded to the nearest integer; zeros when empty."""
    values = list(hours)
    if not values:
        return {"avg": 0, "min": 0, "max": 0, "count": 0}
    return {
        "avg": round_half_up(sum(values) / len(values)),
        "min": round_half_up(min(values)),
        "max": round_half_up(max(values)),
        "count": len(values),
    }


def _key(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


def to_buckets(rows: Iterable[Tuple[Any, int]]) -> List[Dict[str, Any]]:
    """(key, count) rows sorted by count descending, then key."""
    buckets = [{"key": _key(k), "count": int(c)} for k, c in rows if k is not None]
    return sorted(buckets, key=lambda b: (-b["count"], b["key"]))


def to_counts(rows: Iterable[Tuple[Any, int]]) -> Dict[str, int]:
    return {b["key"]: b["count"] for b in to_buckets(rows)}


# Query helpers, one session each

async def _scalar(session_factory: async_sessionmaker, stmt) -> int:
    async with session_factory() as session:
        return (await session.execute(stmt)).scalar() or 0


async def _rows(session_factory: async_sessionmaker, stmt) -> List[Any]:
    async with session_factory() as session:
        return list((await session.execute(stmt)).all())


def _where(stmt, conditions: Sequence[Any]):
    return stmt.where(and_(*conditions)) if conditions else stmt


async def _breakdown(session_factory: async_sessionmaker, column, conditions: Sequence[Any] = ()) -> List[Any]:
    stmt = _where(select(column, func.count()).select_from(column.class_), conditions).group_by(column)
    return await _rows(session_factory, stmt)


async def _resolution_durations(session_factory: async_sessionmaker, conditions: Sequence[Any] = ()) -> List[float]:
    """Hours from creation to the first `resolved` timeline entry, per report."""
    stmt = (
        select(Report.created_at, func.min(ReportTimelineEntry.timestamp))
        .join(ReportTimelineEntry, ReportTimelineEntry.report_id == Report.id)
        .where(ReportTimelineEntry.status == ReportStatus.RESOLVED)
    )
    stmt = _where(stmt, conditions).group_by(Report.id, Report.created_at)
    rows = await _rows(session_factory, stmt)
    return [resolution_hours(created, resolved) for created, resolved in rows if resolved is not None]


async def _daily(session_factory: async_sessionmaker, start: datetime, with_resolved: bool = False) -> List[Dict[str, Any]]:
    day = func.date(Report.created_at).label("day")
    columns = [day, func.count(Report.id)]
    if with_resolved:
        columns.append(func.sum(case((Report.status == ReportStatus.RESOLVED, 1), else_=0)))
    stmt = select(*columns).where(Report.created_at >= start).group_by(day).order_by(day)
    rows = await _rows(session_factory, stmt)
    if with_resolved:
        return [{"date": str(r[0]), "reports": int(r[1]), "resolved": int(r[2] or 0)} for r in rows]
    return [{"date": str(r[0]), "count": int(r[1])} for r in rows]


async def _geographic(session_factory: async_sessionmaker, limit: int) -> List[Dict[str, Any]]:
    """Top cities by report count, with distinct categories and mean priority score."""
    has_city = and_(Report.address_city.is_not(None), Report.address_city != "")
    score = case(
        *[(Report.priority == p, s) for p, s in PRIORITY_SCORES.items()],
        else_=DEFAULT_PRIORITY_SCORE,
    )
    count = func.count(Report.id)
    top = await _rows(
        session_factory,
        select(Report.address_city, count, func.avg(score))
        .where(has_city)
        .group_by(Report.address_city)
        .order_by(count.desc(), Report.address_city.asc())
        .limit(limit),
    )
    if not top:
        return []

    cities = [row[0] for row in top]
    pairs = await _rows(
        session_factory,
        select(Report.address_city, Report.category)
        .where(Report.address_city.in_(cities))
        .distinct(),
    )
    categories: Dict[str, List[str]] = defaultdict(list)
    for city, category in pairs:
        categories[city].append(_key(category))

    return [
        {
            "city": city,
            "count": int(total),
            "categories": sorted(categories[city]),
            "avg_priority": round(float(avg or DEFAULT_PRIORITY_SCORE), 2),
        }
        for city, total, avg in top
    ]


class AnalyticsService:

    @staticmethod
    async def get_dashboard(
        session_factory: async_sessionmaker,
        timeframe: Optional[str] = None,
        config: AdminPanelConfig = None,
    ) -> Dict[str, Any]:
        """Overview metrics, breakdowns and daily series for the admin dashboard."""
        config = config or settings.admin_panel
        timeframe = resolve_window(timeframe, config.dashboard_timeframes, config.default_timeframe)

        cache_key = CacheService.key("dashboard", timeframe)
        cached = await CacheService.get(cache_key)
        if cached is not None:
            return cached

        start = window_start(timeframe)
        (
            total_users,
            total_reports,
            total_notifications,
            active_users,
            recent_reports,
            by_status,
            by_category,
            by_priority,
            by_role,
            daily,
            durations,
        ) = await asyncio.gather(
            _scalar(session_factory, select(func.count(User.id))),
            _scalar(session_factory, select(func.count(Report.id))),
            _scalar(session_factory, select(func.count(Notification.id))),
            _scalar(session_factory, select(func.count(User.id)).where(
                User.last_login >= start, User.is_active.is_(True)
            )),
            _scalar(session_factory, select(func.count(Report.id)).where(Report.created_at >= start)),
            _breakdown(session_factory, Report.status),
            _breakdown(session_factory, Report.category),
            _breakdown(session_factory, Report.priority),
            _breakdown(session_factory, User.role),
            _daily(session_factory, start),
            _resolution_durations(session_factory),
        )

        status_counts = to_counts(by_status)
        data = {
            "timeframe": timeframe,
            "overview": {
                "total_users": total_users,
                "total_reports": total_reports,
                "total_notifications": total_notifications,
                "active_users": active_users,
                "recent_reports": recent_reports,
                "user_growth_rate": user_growth_rate(recent_reports, total_reports, total_users),
                "resolution_rate": percentage(status_counts.get(ReportStatus.RESOLVED.value, 0), total_reports),
                "avg_resolution_time": summarize_resolution(durations)["avg"],
            },
            "status_breakdown": to_buckets(by_status),
            "category_breakdown": to_buckets(by_category),
            "priority_breakdown": to_buckets(by_priority),
            "user_role_breakdown": to_buckets(by_role),
            "daily_reports": daily,
            "generated_at": utcnow().isoformat(),
        }
        await CacheService.set(cache_key, data, config.analytics_cache_ttl_seconds)
        return data

    @staticmethod
    async def get_system_statistics(
        session_factory: async_sessionmaker,
        period: Optional[str] = None,
        config: AdminPanelConfig = None,
    ) -> Dict[str, Any]:
        """User, report, performance, geographic and timeline statistics."""
        config = config or settings.admin_panel
        period = resolve_window(period, config.statistics_periods, config.default_period)

        cache_key = CacheService.key("statistics", period)
        cached = await CacheService.get(cache_key)
        if cached is not None:
            return cached

        start = window_start(period)
        (
            total_users,
            active_users,
            users_by_role,
            recent_registrations,
            recent_logins,
            total_reports,
            by_status,
            by_category,
            by_priority,
            recent_reports,
            assigned_reports,
            durations,
            geographic,
            timeline,
        ) = await asyncio.gather(
            _scalar(session_factory, select(func.count(User.id))),
            _scalar(session_factory, select(func.count(User.id)).where(User.is_active.is_(True))),
            _breakdown(session_factory, User.role),
            _scalar(session_factory, select(func.count(User.id)).where(User.created_at >= start)),
            _scalar(session_factory, select(func.count(User.id)).where(User.last_login >= start)),
            _scalar(session_factory, select(func.count(Report.id))),
            _breakdown(session_factory, Report.status),
            _breakdown(session_factory, Report.category),
            _breakdown(session_factory, Report.priority),
            _scalar(session_factory, select(func.count(Report.id)).where(Report.created_at >= start)),
            _scalar(session_factory, select(func.count(Report.id)).where(Report.assigned_to.is_not(None))),
            _resolution_durations(session_factory),
            _geographic(session_factory, config.max_geographic_items),
            _daily(session_factory, start, with_resolved=True),
        )

        resolution = summarize_resolution(durations)
        data = {
            "period": period,
            "users": {
                "total": total_users,
                "active": active_users,
                "by_role": to_buckets(users_by_role),
                "recent_registrations": recent_registrations,
                "recent_logins": recent_logins,
            },
            "reports": {
                "total": total_reports,
                "by_status": to_buckets(by_status),
                "by_category": to_buckets(by_category),
                "by_priority": to_buckets(by_priority),
                "recent": recent_reports,
                "assigned": assigned_reports,
            },
            "performance": {
                "avg_resolution_time": resolution["avg"],
                "min_resolution_time": resolution["min"],
                "max_resolution_time": resolution["max"],
                "total_resolved": resolution["count"],
            },
            "geographic": geographic,
            "timeline": timeline,
            "generated_at": utcnow().isoformat(),
        }
        await CacheService.set(cache_key, data, config.analytics_cache_ttl_seconds)
        return data

    @staticmethod
    async def get_search_statistics(
        session_factory: async_sessionmaker,
        conditions: Sequence[Any],
    ) -> Dict[str, Any]:
        """Total, facet counts and average resolution hours over a filtered report set."""
        total, by_status, by_category, by_priority, durations = await asyncio.gather(
            _scalar(session_factory, _where(select(func.count(Report.id)), conditions)),
            _breakdown(session_factory, Report.status, conditions),
            _breakdown(session_factory, Report.category, conditions),
            _breakdown(session_factory, Report.priority, conditions),
            _resolution_durations(session_factory, conditions),
        )
        return {
            "total_reports": total,
            "status_counts": to_counts(by_status),
            "category_counts": to_counts(by_category),
            "priority_counts": to_counts(by_priority),
            "avg_resolution_time": summarize_resolution(durations)["avg"],
        }
