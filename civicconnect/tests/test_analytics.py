"""
Tests for the aggregation engine: pure helpers, then the dashboard and
statistics endpoints over seeded data.
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth_headers
from civicconnect.app.core import rate_limit
from civicconnect.app.core.config import AdminPanelConfig, RateLimitRule
from civicconnect.app.core.exceptions import RateLimitExceededError
from civicconnect.app.core.timeutils import utcnow
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import ReportCategory, ReportPriority, ReportStatus
from civicconnect.app.models.report_timeline import ReportTimelineEntry
from civicconnect.app.services import analytics
from civicconnect.app.services.analytics import AnalyticsService
from civicconnect.app.services.cache import CacheService


# --- Pure helpers ---

def test_resolve_window_falls_back_to_default():
    allowed = ["7d", "30d", "90d", "1y"]
    assert analytics.resolve_window("7d", allowed, "30d") == "7d"
    assert analytics.resolve_window("2w", allowed, "30d") == "30d"
    assert analytics.resolve_window(None, allowed, "30d") == "30d"
    # Known window, but not offered by this view
    assert analytics.resolve_window("24h", allowed, "30d") == "30d"


def test_window_start():
    now = datetime(2024, 6, 30, tzinfo=timezone.utc)
    assert analytics.window_start("7d", now) == datetime(2024, 6, 23, tzinfo=timezone.utc)
    assert analytics.window_start("24h", now) == datetime(2024, 6, 29, tzinfo=timezone.utc)


def test_percentage_rounds_to_two_places():
    assert analytics.percentage(1, 3) == 33.33
    assert analytics.percentage(5, 0) == 0.0


def test_user_growth_rate_is_recent_reports_over_total_reports():
    assert analytics.user_growth_rate(recent_reports=3, total_reports=12, total_users=40) == 25.0
    assert analytics.user_growth_rate(recent_reports=3, total_reports=12, total_users=0) == 0.0
    assert analytics.user_growth_rate(recent_reports=0, total_reports=0, total_users=5) == 0.0


def test_resolution_hours_handles_naive_values():
    created = datetime(2024, 1, 1, 8, 0)
    resolved = datetime(2024, 1, 3, 8, 0, tzinfo=timezone.utc)
    assert analytics.resolution_hours(created, resolved) == 48.0


def test_summarize_resolution():
    assert analytics.summarize_resolution([]) == {"avg": 0, "min": 0, "max": 0, "count": 0}
    summary = analytics.summarize_resolution([10.0, 20.5, 31.0])
    assert summary == {"avg": 21, "min": 10, "max": 31, "count": 3}
    assert analytics.summarize_resolution([2.5])["avg"] == 3


def test_buckets_sorted_by_count_then_key():
    rows = [(ReportStatus.RESOLVED, 2), (ReportStatus.SUBMITTED, 5), (ReportStatus.CLOSED, 2), (None, 9)]
    assert analytics.to_buckets(rows) == [
        {"key": "submitted", "count": 5},
        {"key": "closed", "count": 2},
        {"key": "resolved", "count": 2},
    ]
    assert analytics.to_counts(rows) == {"submitted": 5, "closed": 2, "resolved": 2}


# --- Seeded data ---

async def seed_report(db_session, submitter, created_at, status=ReportStatus.SUBMITTED,
                      resolved_after=None, city="Springfield", category=ReportCategory.ROAD_ISSUE,
                      priority=ReportPriority.MEDIUM, assigned_to=None):
    report = Report(
        title="Seeded", description="Seeded report", category=category, priority=priority,
        status=status, longitude=10.0, latitude=20.0, address_city=city,
        submitted_by=submitter.id, assigned_to=assigned_to,
        created_at=created_at, updated_at=created_at,
    )
    db_session.add(report)
    await db_session.flush()
    db_session.add(ReportTimelineEntry(
        report_id=report.id, status=ReportStatus.SUBMITTED, updated_by=submitter.id, timestamp=created_at
    ))
    if resolved_after is not None:
        db_session.add(ReportTimelineEntry(
            report_id=report.id, status=ReportStatus.RESOLVED, updated_by=submitter.id,
            timestamp=created_at + resolved_after,
        ))
    await db_session.commit()
    return report


@pytest.mark.asyncio
async def test_resolution_time_uses_first_resolved_entry(db_session, session_factory, citizen):
    created = utcnow() - timedelta(days=5)
    report = await seed_report(
        db_session, citizen, created, status=ReportStatus.CLOSED, resolved_after=timedelta(hours=48)
    )
    # A later second `resolved` entry does not move the measurement
    db_session.add(ReportTimelineEntry(
        report_id=report.id, status=ReportStatus.RESOLVED, updated_by=citizen.id,
        timestamp=created + timedelta(hours=100),
    ))
    await db_session.commit()
    # Unresolved reports contribute nothing
    await seed_report(db_session, citizen, created)

    data = await AnalyticsService.get_system_statistics(session_factory, "30d", AdminPanelConfig())
    assert data["performance"]["avg_resolution_time"] == 48
    assert data["performance"]["min_resolution_time"] == 48
    assert data["performance"]["max_resolution_time"] == 48
    assert data["performance"]["total_resolved"] == 1


@pytest.mark.asyncio
async def test_dashboard_overview(client, db_session, admin_user, citizen):
    now = utcnow()
    citizen.last_login = now - timedelta(days=1)
    await db_session.commit()

    await seed_report(db_session, citizen, now - timedelta(days=2), status=ReportStatus.RESOLVED,
                      resolved_after=timedelta(hours=24))
    await seed_report(db_session, citizen, now - timedelta(days=3))
    await seed_report(db_session, citizen, now - timedelta(days=3))
    await seed_report(db_session, citizen, now - timedelta(days=200))

    response = await client.get("/v1/admin/dashboard/analytics?timeframe=30d", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["timeframe"] == "30d"

    overview = data["overview"]
    assert overview["total_users"] == 2
    assert overview["total_reports"] == 4
    assert overview["recent_reports"] == 3
    assert overview["active_users"] == 1
    assert overview["user_growth_rate"] == 75.0
    assert overview["resolution_rate"] == 25.0
    assert overview["avg_resolution_time"] == 24

    assert data["status_breakdown"][0] == {"key": "submitted", "count": 3}
    assert {"key": "admin", "count": 1} in data["user_role_breakdown"]
    assert sum(day["count"] for day in data["daily_reports"]) == 3
    dates = [day["date"] for day in data["daily_reports"]]
    assert dates == sorted(dates)


@pytest.mark.asyncio
async def test_dashboard_unknown_timeframe_uses_default(client, admin_user):
    response = await client.get("/v1/admin/dashboard/analytics?timeframe=forever", headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert response.json()["data"]["timeframe"] == "30d"


@pytest.mark.asyncio
async def test_dashboard_is_admin_only(client, citizen, employee):
    for user in (citizen, employee):
        response = await client.get("/v1/admin/dashboard/analytics", headers=auth_headers(user))
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_dashboard_served_from_cache_until_cleared(client, db_session, admin_user, citizen):
    headers = auth_headers(admin_user)
    first = await client.get("/v1/admin/dashboard/analytics", headers=headers)
    assert first.json()["data"]["overview"]["total_reports"] == 0

    await seed_report(db_session, citizen, utcnow())
    cached = await client.get("/v1/admin/dashboard/analytics", headers=headers)
    assert cached.json()["data"]["overview"]["total_reports"] == 0

    await CacheService.clear()
    fresh = await client.get("/v1/admin/dashboard/analytics", headers=headers)
    assert fresh.json()["data"]["overview"]["total_reports"] == 1


@pytest.mark.asyncio
async def test_zero_ttl_disables_cache(db_session, session_factory, citizen):
    config = AdminPanelConfig(analytics_cache_ttl_seconds=0)
    first = await AnalyticsService.get_dashboard(session_factory, "7d", config)
    await seed_report(db_session, citizen, utcnow())
    second = await AnalyticsService.get_dashboard(session_factory, "7d", config)
    assert first["overview"]["total_reports"] == 0
    assert second["overview"]["total_reports"] == 1


@pytest.mark.asyncio
async def test_system_statistics(client, db_session, admin_user, citizen, employee):
    now = utcnow()
    await seed_report(db_session, citizen, now - timedelta(hours=2), city="Springfield",
                      priority=ReportPriority.CRITICAL, assigned_to=employee.id)
    await seed_report(db_session, citizen, now - timedelta(hours=3), city="Springfield",
                      category=ReportCategory.WATER_ISSUE, priority=ReportPriority.LOW)
    await seed_report(db_session, citizen, now - timedelta(hours=4), city="Shelbyville",
                      status=ReportStatus.RESOLVED, resolved_after=timedelta(hours=1))
    await seed_report(db_session, citizen, now - timedelta(hours=5), city="")

    response = await client.get("/v1/admin/statistics?period=7d", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["period"] == "7d"

    assert data["users"]["total"] == 3
    assert data["users"]["active"] == 3
    assert data["reports"]["total"] == 4
    assert data["reports"]["recent"] == 4
    assert data["reports"]["assigned"] == 1

    geographic = data["geographic"]
    assert [city["city"] for city in geographic] == ["Springfield", "Shelbyville"]
    assert geographic[0]["count"] == 2
    assert geographic[0]["categories"] == ["road_issue", "water_issue"]
    assert geographic[0]["avg_priority"] == 2.5

    assert sum(row["reports"] for row in data["timeline"]) == 4
    assert sum(row["resolved"] for row in data["timeline"]) == 1


@pytest.mark.asyncio
async def test_analytics_rate_limit(client, admin_user, redis_client_session, mocker):
    limiter = rate_limit.rate_limiter("analytics-test", RateLimitRule(window_seconds=3600, max_requests=2))
    request = mocker.Mock(client=mocker.Mock(host="127.0.0.1"))
    user = {"user_id": admin_user.id}

    await limiter(request=request, current_user=user, redis=redis_client_session)
    await limiter(request=request, current_user=user, redis=redis_client_session)

    with pytest.raises(RateLimitExceededError) as exc:
        await limiter(request=request, current_user=user, redis=redis_client_session)
    assert exc.value.status_code == 429
    assert exc.value.details["retry_after"] > 0
