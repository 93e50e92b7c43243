"""
Authorization policy for reports and user administration.

Pure decision functions over (actor, report facts, action). They read only
`status`, `submitted_by`, `assigned_to` and `feedback_rating` from the
report, so any object carrying those attributes can be checked. Each
`authorize_*` function raises before anything is mutated; the
`*_clause` helpers turn the same visibility rules into query predicates.

Rules, first matching role wins:
    admin     any report, any user; may not deactivate or re-role themself
    employee  sees reports assigned to them and unassigned submitted/in-review
              reports; mutates only reports assigned to them, and only to
              in_progress or resolved
    user      sees and creates own reports; may only close a resolved report
              of their own; feedback once, on an own resolved report
"""

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import and_, or_

from civicconnect.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    InvalidArgumentError,
)
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import ReportStatus

EMPLOYEE_VISIBLE_UNASSIGNED = (ReportStatus.SUBMITTED, ReportStatus.IN_REVIEW)
EMPLOYEE_STATUS_TARGETS = (ReportStatus.IN_PROGRESS, ReportStatus.RESOLVED)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as seen by the policy."""
    user_id: int
    role: UserRole

    @classmethod
    def from_payload(cls, payload: dict) -> "Actor":
        return cls(user_id=payload["user_id"], role=UserRole(payload["role"]))

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_employee(self) -> bool:
        return self.role == UserRole.EMPLOYEE


def parse_status(value: Any) -> ReportStatus:
    """Validate a requested target status."""
    try:
        return ReportStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ReportStatus)
        raise InvalidArgumentError(
            f"Invalid status '{value}'. Must be one of: {allowed}",
            details={"status": value}
        )


def can_view_report(actor: Actor, report) -> bool:
    if actor.is_admin:
        return True
    if actor.is_employee:
        if report.assigned_to == actor.user_id:
            return True
        return report.assigned_to is None and report.status in EMPLOYEE_VISIBLE_UNASSIGNED
    return report.submitted_by == actor.user_id


def authorize_view(actor: Actor, report) -> None:
    if not can_view_report(actor, report):
        raise InsufficientPermissionsError("Not authorized to view this report")


def authorize_status_change(actor: Actor, report, target: ReportStatus) -> None:
    """
    Decide whether `actor` may move `report` to `target`.

    For employees ownership is checked before the target, so an employee
    touching someone else's report always gets a 403.
    """
    if actor.is_admin:
        return

    if actor.is_employee:
        if report.assigned_to != actor.user_id:
            raise InsufficientPermissionsError("Not authorized to update this report")
        if target not in EMPLOYEE_STATUS_TARGETS:
            raise InvalidArgumentError(
                "Field workers can only set status to in_progress or resolved",
                details={"status": target.value}
            )
        return

    if report.submitted_by != actor.user_id:
        raise InsufficientPermissionsError("Not authorized to update this report")
    if not (report.status == ReportStatus.RESOLVED and target == ReportStatus.CLOSED):
        raise InsufficientPermissionsError("Users can only close their own resolved reports")


def authorize_feedback(actor: Actor, report) -> None:
    if report.submitted_by != actor.user_id:
        raise InsufficientPermissionsError("Not authorized to provide feedback for this report")
    if report.feedback_rating is not None:
        raise ConflictError("Feedback has already been provided for this report")
    if report.status != ReportStatus.RESOLVED:
        raise InvalidArgumentError("Feedback can only be provided for resolved reports")


def authorize_assignment(actor: Actor) -> None:
    if not actor.is_admin:
        raise InsufficientPermissionsError("Only admins can assign reports")


def authorize_image_upload(actor: Actor, report) -> None:
    if actor.is_admin:
        return
    if report.submitted_by == actor.user_id:
        return
    if actor.is_employee and report.assigned_to == actor.user_id:
        return
    raise InsufficientPermissionsError("Not authorized to add images to this report")


def authorize_user_status_change(actor: Actor, target_user_id: int) -> None:
    if actor.user_id == target_user_id:
        raise InvalidArgumentError("You cannot change your own account status")


def authorize_role_change(actor: Actor, target_user_id: int) -> None:
    if actor.user_id == target_user_id:
        raise InvalidArgumentError("You cannot change your own role")


def report_visibility_clause(actor: Actor) -> Optional[Any]:
    """
    SQL predicate equivalent to `can_view_report`, or None for no restriction.
    """
    if actor.is_admin:
        return None
    if actor.is_employee:
        return or_(
            Report.assigned_to == actor.user_id,
            and_(
                Report.assigned_to.is_(None),
                Report.status.in_(EMPLOYEE_VISIBLE_UNASSIGNED),
            ),
        )
    return Report.submitted_by == actor.user_id
