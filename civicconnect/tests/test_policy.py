"""
Unit tests for the authorization policy.
"""

from types import SimpleNamespace

import pytest

from civicconnect.app.core import policy
from civicconnect.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    InvalidArgumentError,
)
from civicconnect.app.core.policy import Actor
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.report_enums import ReportStatus

ADMIN = Actor(user_id=1, role=UserRole.ADMIN)
EMPLOYEE = Actor(user_id=2, role=UserRole.EMPLOYEE)
OTHER_EMPLOYEE = Actor(user_id=3, role=UserRole.EMPLOYEE)
CITIZEN = Actor(user_id=4, role=UserRole.USER)
OTHER_CITIZEN = Actor(user_id=5, role=UserRole.USER)


def report(status=ReportStatus.SUBMITTED, submitted_by=4, assigned_to=None, feedback_rating=None):
    return SimpleNamespace(
        status=status, submitted_by=submitted_by, assigned_to=assigned_to, feedback_rating=feedback_rating
    )


def test_actor_from_token_payload():
    actor = Actor.from_payload({"user_id": 9, "role": "employee", "sub": "e@example.com"})
    assert actor == Actor(user_id=9, role=UserRole.EMPLOYEE)
    assert actor.is_employee and not actor.is_admin


def test_parse_status_rejects_unknown_value():
    assert policy.parse_status("resolved") is ReportStatus.RESOLVED
    with pytest.raises(InvalidArgumentError):
        policy.parse_status("done")


# --- Visibility ---

def test_admin_sees_everything():
    assert policy.can_view_report(ADMIN, report(assigned_to=3, status=ReportStatus.CLOSED))


def test_citizen_sees_only_own_reports():
    assert policy.can_view_report(CITIZEN, report())
    assert not policy.can_view_report(OTHER_CITIZEN, report())
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_view(OTHER_CITIZEN, report())


@pytest.mark.parametrize("status,visible", [
    (ReportStatus.SUBMITTED, True),
    (ReportStatus.IN_REVIEW, True),
    (ReportStatus.IN_PROGRESS, False),
    (ReportStatus.RESOLVED, False),
])
def test_employee_sees_unassigned_only_while_open(status, visible):
    assert policy.can_view_report(EMPLOYEE, report(status=status)) is visible


def test_employee_sees_own_assignments_but_not_others():
    assert policy.can_view_report(EMPLOYEE, report(assigned_to=2, status=ReportStatus.RESOLVED))
    assert not policy.can_view_report(EMPLOYEE, report(assigned_to=3, status=ReportStatus.SUBMITTED))


# --- Status changes ---

def test_admin_may_set_any_status():
    for target in ReportStatus:
        policy.authorize_status_change(ADMIN, report(), target)


def test_employee_on_report_assigned_to_self():
    assigned = report(assigned_to=2, status=ReportStatus.ASSIGNED)
    policy.authorize_status_change(EMPLOYEE, assigned, ReportStatus.IN_PROGRESS)
    policy.authorize_status_change(EMPLOYEE, assigned, ReportStatus.RESOLVED)
    with pytest.raises(InvalidArgumentError):
        policy.authorize_status_change(EMPLOYEE, assigned, ReportStatus.CLOSED)


def test_employee_not_assigned_is_forbidden_before_target_check():
    # Ownership fails first even when the target would also be invalid
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_status_change(EMPLOYEE, report(assigned_to=3), ReportStatus.CLOSED)
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_status_change(EMPLOYEE, report(assigned_to=None), ReportStatus.IN_PROGRESS)


def test_citizen_may_only_close_own_resolved_report():
    policy.authorize_status_change(CITIZEN, report(status=ReportStatus.RESOLVED), ReportStatus.CLOSED)

    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_status_change(CITIZEN, report(status=ReportStatus.IN_PROGRESS), ReportStatus.CLOSED)
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_status_change(CITIZEN, report(status=ReportStatus.RESOLVED), ReportStatus.IN_REVIEW)
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_status_change(OTHER_CITIZEN, report(status=ReportStatus.RESOLVED), ReportStatus.CLOSED)


# --- Feedback ---

def test_feedback_on_own_resolved_report():
    policy.authorize_feedback(CITIZEN, report(status=ReportStatus.RESOLVED))


def test_feedback_rules():
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_feedback(OTHER_CITIZEN, report(status=ReportStatus.RESOLVED))
    with pytest.raises(InvalidArgumentError):
        policy.authorize_feedback(CITIZEN, report(status=ReportStatus.IN_PROGRESS))
    with pytest.raises(ConflictError):
        policy.authorize_feedback(CITIZEN, report(status=ReportStatus.CLOSED, feedback_rating=4))


# --- Assignment, images, user administration ---

def test_only_admin_assigns():
    policy.authorize_assignment(ADMIN)
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_assignment(EMPLOYEE)


def test_image_upload_permissions():
    r = report(assigned_to=2)
    policy.authorize_image_upload(ADMIN, r)
    policy.authorize_image_upload(CITIZEN, r)
    policy.authorize_image_upload(EMPLOYEE, r)
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_image_upload(OTHER_EMPLOYEE, r)
    with pytest.raises(InsufficientPermissionsError):
        policy.authorize_image_upload(OTHER_CITIZEN, r)


def test_admin_cannot_act_on_self():
    with pytest.raises(InvalidArgumentError):
        policy.authorize_user_status_change(ADMIN, ADMIN.user_id)
    with pytest.raises(InvalidArgumentError):
        policy.authorize_role_change(ADMIN, ADMIN.user_id)
    policy.authorize_user_status_change(ADMIN, CITIZEN.user_id)
    policy.authorize_role_change(ADMIN, CITIZEN.user_id)


def test_visibility_clause_is_unrestricted_for_admin():
    assert policy.report_visibility_clause(ADMIN) is None
    assert policy.report_visibility_clause(CITIZEN) is not None
    assert policy.report_visibility_clause(EMPLOYEE) is not None
