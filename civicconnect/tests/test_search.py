"""
Admin advanced search and the public health endpoints.
"""

import pytest

from conftest import auth_headers
from civicconnect.app.models.enums import UserRole


@pytest.fixture
async def seeded(client, make_user, citizen, employee, admin_user, create_report, assign_report):
    other = await make_user(UserRole.USER)
    pothole = await create_report(citizen, title="Pothole on Main", priority="high")
    leak = await create_report(citizen, title="Water leak", category="water_issue",
                               description="Pipe burst near the library")
    lamp = await create_report(other, title="Broken lamp", category="electricity_issue",
                               location={"coordinates": [-70.0, 41.0],
                                         "address": {"city": "Shelbyville"}})
    await assign_report(admin_user, leak["id"], employee)
    await client.patch(
        f"/v1/reports/{leak['id']}/status", json={"status": "resolved"}, headers=auth_headers(employee)
    )
    await client.post(
        f"/v1/reports/{pothole['id']}/images",
        files=[("images", ("hole.jpg", b"\xff\xd8", "image/jpeg"))],
        headers=auth_headers(citizen),
    )
    return {"pothole": pothole, "leak": leak, "lamp": lamp, "other": other}


@pytest.mark.asyncio
async def test_search_returns_page_and_statistics(client, admin_user, seeded):
    response = await client.get("/v1/admin/reports/search", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()
    assert data["pagination"]["total_count"] == 3
    assert data["pagination"]["limit"] == 20
    assert data["statistics"]["total_reports"] == 3
    assert data["statistics"]["status_counts"] == {"submitted": 2, "resolved": 1}
    assert data["statistics"]["category_counts"]["road_issue"] == 1
    assert data["filters"] == {}


@pytest.mark.asyncio
async def test_search_statistics_follow_filters(client, admin_user, seeded):
    response = await client.get(
        "/v1/admin/reports/search?search=LIBRARY&limit=1", headers=auth_headers(admin_user)
    )
    data = response.json()
    assert [r["title"] for r in data["reports"]] == ["Water leak"]
    assert data["statistics"]["total_reports"] == 1
    assert data["statistics"]["status_counts"] == {"resolved": 1}
    assert data["filters"] == {"search": "LIBRARY"}


@pytest.mark.asyncio
async def test_search_by_images_feedback_and_submitter(client, admin_user, seeded):
    headers = auth_headers(admin_user)

    with_images = await client.get("/v1/admin/reports/search?has_images=true", headers=headers)
    assert [r["title"] for r in with_images.json()["reports"]] == ["Pothole on Main"]

    without_feedback = await client.get("/v1/admin/reports/search?has_feedback=false", headers=headers)
    assert without_feedback.json()["pagination"]["total_count"] == 3

    by_other = await client.get(
        f"/v1/admin/reports/search?submitted_by={seeded['other'].id}", headers=headers
    )
    assert [r["title"] for r in by_other.json()["reports"]] == ["Broken lamp"]

    unassigned = await client.get("/v1/admin/reports/search?assigned_to=unassigned", headers=headers)
    assert unassigned.json()["pagination"]["total_count"] == 2

    city = await client.get("/v1/admin/reports/search?location=shelby", headers=headers)
    assert city.json()["filters"] == {"location": "shelby"}
    assert city.json()["pagination"]["total_count"] == 1


@pytest.mark.asyncio
async def test_search_echoes_sort_and_counts_whole_filtered_set(client, admin_user, seeded):
    response = await client.get(
        "/v1/admin/reports/search?status=submitted&sort_by=title&sort_order=asc&limit=1",
        headers=auth_headers(admin_user),
    )
    data = response.json()
    assert data["filters"] == {"status": "submitted", "sort_by": "title", "sort_order": "asc"}
    assert [r["title"] for r in data["reports"]] == ["Broken lamp"]
    assert data["statistics"]["total_reports"] == 2
    assert data["pagination"]["total_pages"] == 2


@pytest.mark.asyncio
async def test_search_rejects_bad_parameters(client, admin_user, seeded):
    headers = auth_headers(admin_user)

    too_many = await client.get("/v1/admin/reports/search?limit=51", headers=headers)
    assert too_many.status_code == 422
    assert "limit" in too_many.json()["errors"]

    bad = await client.get("/v1/admin/reports/search?has_images=maybe&sort_by=votes", headers=headers)
    assert bad.status_code == 422
    assert set(bad.json()["errors"]) == {"has_images"}


@pytest.mark.asyncio
async def test_search_is_admin_only(client, citizen, employee):
    for user in (citizen, employee):
        response = await client.get("/v1/admin/reports/search", headers=auth_headers(user))
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_health_and_root(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["redis"] == "up"

    root = await client.get("/")
    assert root.json()["message"] == "Welcome to CivicConnect API"
