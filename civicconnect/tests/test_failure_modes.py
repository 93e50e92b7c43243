"""
Failure injection: components that break must not take requests down
with them, and must not undo work that already committed.
"""

import pytest
from sqlalchemy import select

from conftest import BrokenRedis, auth_headers
from civicconnect.app.core import rate_limit
from civicconnect.app.core.config import RateLimitRule
from civicconnect.app.core.exceptions import InternalServiceError
from civicconnect.app.core.policy import Actor
from civicconnect.app.core.redis_client import get_redis
from civicconnect.app.core.reliability import CircuitBreaker, CircuitOpenError, media_circuit_breaker
from civicconnect.app.main import app
from civicconnect.app.models.notification import Notification
from civicconnect.app.models.report_enums import ReportPriority, ReportStatus
from civicconnect.app.models.report_timeline import ReportTimelineEntry
from civicconnect.app.services import report_lifecycle
from civicconnect.app.services.notification_emitter import (
    NotificationEmitter,
    ReportEventKind,
    TransitionEvent,
    notification_emitter,
)
import civicconnect.app.core.redis_client as redis_client_module


async def boom():
    raise ValueError("Boom")


async def ok():
    return "ok"


@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_threshold():
    cb = CircuitBreaker("test", failure_threshold=2, reset_timeout=60)

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(boom)

    assert cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        await cb.call(ok)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_trial(mocker):
    cb = CircuitBreaker("test", failure_threshold=1, reset_timeout=10)
    clock = mocker.patch("civicconnect.app.core.reliability.time.monotonic", return_value=100.0)

    with pytest.raises(ValueError):
        await cb.call(boom)
    assert cb.state == "OPEN"

    clock.return_value = 111.0
    assert await cb.call(ok) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0

    # A failed trial reopens immediately
    with pytest.raises(ValueError):
        await cb.call(boom)
    clock.return_value = 122.0
    with pytest.raises(ValueError):
        await cb.call(boom)
    assert cb.state == "OPEN"


@pytest.mark.asyncio
async def test_media_store_with_open_circuit(media_store):
    for _ in range(media_circuit_breaker.failure_threshold):
        media_circuit_breaker.record_failure()

    with pytest.raises(InternalServiceError):
        await media_store.save(b"\xff\xd8", "photo.jpg", "report")
    assert not media_store.root.exists()


@pytest.mark.asyncio
async def test_media_store_write_failure_is_internal_error(media_store, mocker):
    mocker.patch.object(media_store, "_write", side_effect=OSError("disk full"))
    with pytest.raises(InternalServiceError):
        await media_store.save(b"\xff\xd8", "photo.jpg", "report")
    assert media_circuit_breaker.failures == 1


@pytest.mark.asyncio
async def test_upload_with_open_circuit_returns_500(client, citizen, create_report):
    report = await create_report(citizen)
    for _ in range(media_circuit_breaker.failure_threshold):
        media_circuit_breaker.record_failure()

    response = await client.post(
        f"/v1/reports/{report['id']}/images",
        files=[("images", ("photo.jpg", b"\xff\xd8", "image/jpeg"))],
        headers=auth_headers(citizen),
    )
    assert response.status_code == 500
    assert response.json()["success"] is False


class FailingSink:
    @staticmethod
    async def create_notification(db, **kwargs):
        raise RuntimeError("notification store down")


async def timeline_statuses(session_factory, report_id):
    async with session_factory() as session:
        entries = (await session.execute(
            select(ReportTimelineEntry)
            .where(ReportTimelineEntry.report_id == report_id)
            .order_by(ReportTimelineEntry.id)
        )).scalars().all()
    return [e.status for e in entries]


async def notices_for(session_factory, user_id):
    async with session_factory() as session:
        return (await session.execute(
            select(Notification).where(Notification.recipient_id == user_id)
        )).scalars().all()


@pytest.mark.asyncio
async def test_emitter_failure_raises_after_commit(db_session, session_factory, citizen, admin_user, create_report):
    # the emitter's rollback expires everything in db_session, fixtures included
    citizen_id = citizen.id
    actor = Actor(user_id=admin_user.id, role=admin_user.role)
    report = await create_report(citizen)
    emitter = NotificationEmitter(sink=FailingSink)

    with pytest.raises(InternalServiceError):
        await report_lifecycle.transition(
            db_session, actor, report["id"], "resolved", comment="Fixed", emitter=emitter
        )

    assert await timeline_statuses(session_factory, report["id"]) == [
        ReportStatus.SUBMITTED, ReportStatus.RESOLVED
    ]
    assert await notices_for(session_factory, citizen_id) == []


@pytest.mark.asyncio
async def test_failed_assignment_fan_out_leaves_assignee_loaded(
    db_session, session_factory, citizen, employee, admin_user, create_report
):
    actor = Actor(user_id=admin_user.id, role=admin_user.role)
    employee_id = employee.id
    report = await create_report(citizen)

    with pytest.raises(InternalServiceError):
        await report_lifecycle.assign(
            db_session, actor, report["id"], employee_id, emitter=NotificationEmitter(sink=FailingSink)
        )

    # readable without a lazy load
    assert employee.id == employee_id
    assert employee.full_name
    assert await timeline_statuses(session_factory, report["id"]) == [
        ReportStatus.SUBMITTED, ReportStatus.ASSIGNED
    ]


@pytest.mark.asyncio
async def test_emit_raises_internal_error(db_session, citizen, admin_user):
    event = TransitionEvent(
        kind=ReportEventKind.STATUS_CHANGED,
        report_id=1, report_title="Pothole", category="road_issue",
        priority=ReportPriority.HIGH,
        submitted_by=citizen.id, assigned_to=None, new_status=ReportStatus.RESOLVED,
        actor_id=admin_user.id,
    )
    with pytest.raises(InternalServiceError) as exc:
        await NotificationEmitter(sink=FailingSink).emit(db_session, event)
    assert exc.value.status_code == 500
    assert exc.value.details == {"report_id": 1}


@pytest.mark.asyncio
async def test_status_update_with_notification_outage_returns_500(
    client, session_factory, citizen, admin_user, create_report, mocker
):
    report = await create_report(citizen)
    mocker.patch.object(notification_emitter, "sink", FailingSink)

    response = await client.patch(
        f"/v1/reports/{report['id']}/status",
        json={"status": "resolved"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 500
    assert response.json()["success"] is False

    detail = await client.get(f"/v1/reports/{report['id']}", headers=auth_headers(citizen))
    assert detail.json()["report"]["status"] == "resolved"
    assert await timeline_statuses(session_factory, report["id"]) == [
        ReportStatus.SUBMITTED, ReportStatus.RESOLVED
    ]


@pytest.mark.asyncio
async def test_assign_with_notification_outage_keeps_assignment(
    client, session_factory, citizen, employee, admin_user, create_report, mocker
):
    report = await create_report(citizen)
    mocker.patch.object(notification_emitter, "sink", FailingSink)

    response = await client.patch(
        f"/v1/reports/{report['id']}/assign",
        json={"assigned_to": employee.id},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 500

    detail = await client.get(f"/v1/reports/{report['id']}", headers=auth_headers(admin_user))
    assert detail.json()["report"]["status"] == "assigned"
    assert detail.json()["report"]["assigned_to"] == employee.id


@pytest.fixture
def broken_redis(monkeypatch):
    broken = BrokenRedis()
    monkeypatch.setattr(redis_client_module, "redis_client", broken)

    async def override():
        return broken

    app.dependency_overrides[get_redis] = override
    yield broken
    app.dependency_overrides.pop(get_redis, None)


@pytest.mark.asyncio
async def test_revocation_check_fails_open(client, citizen, broken_redis):
    response = await client.get("/v1/auth/me", headers=auth_headers(citizen))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_rate_limiter_fails_open(admin_user, broken_redis, mocker):
    limiter = rate_limit.rate_limiter("broken", RateLimitRule(window_seconds=60, max_requests=1))
    request = mocker.Mock(client=mocker.Mock(host="127.0.0.1"))
    for _ in range(3):
        await limiter(request=request, current_user={"user_id": admin_user.id}, redis=broken_redis)


@pytest.mark.asyncio
async def test_health_reports_redis_down(client, broken_redis, mocker):
    mocker.patch("civicconnect.app.main.ping_redis", return_value=False)
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["redis"] == "down"
