"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from civicconnect.app.api.v1.endpoints import (
    auth, users, reports, fieldworker, maps,
    notifications, admin, admin_reports, analytics
)

router = APIRouter()

router.include_router(auth.router)
router.include_router(users.router)

# Reports
router.include_router(reports.router)
router.include_router(fieldworker.router)
router.include_router(maps.router)

# Notifications
router.include_router(notifications.router)
router.include_router(notifications.admin_router)

# Admin
router.include_router(admin.router)
router.include_router(admin_reports.router)
router.include_router(analytics.router)
