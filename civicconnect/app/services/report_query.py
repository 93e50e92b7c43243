"""
Query/filter builder for report and user listings.

Turns optional raw query parameters into SQLAlchemy predicates, a
whitelisted ordering and pagination. Omitted parameters add no
constraint. Every malformed parameter is collected into a single
ValidationFailedError carrying a field -> reason map.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import Select, and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.core.exceptions import ValidationFailedError
from civicconnect.app.core.policy import Actor, report_visibility_clause
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_enums import ReportCategory, ReportPriority, ReportStatus
from civicconnect.app.models.report_image import ReportImage
from civicconnect.app.models.user import User

SORTABLE_REPORT_FIELDS = {
    "created_at": Report.created_at,
    "updated_at": Report.updated_at,
    "title": Report.title,
    "status": Report.status,
    "category": Report.category,
    "priority": Report.priority,
}

SORTABLE_USER_FIELDS = {
    "created_at": User.created_at,
    "last_login": User.last_login,
    "first_name": User.first_name,
    "last_name": User.last_name,
    "email": User.email,
    "role": User.role,
}

UNASSIGNED = "unassigned"


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, term: str):
    """Case-insensitive substring match."""
    return func.lower(column).like(f"%{_escape_like(term.lower())}%", escape="\\")


class _Errors:
    """Collects per-field parse failures."""

    def __init__(self):
        self.errors: Dict[str, str] = {}

    def add(self, field_name: str, reason: str) -> None:
        self.errors.setdefault(field_name, reason)

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationFailedError(self.errors, message="Invalid query parameters")


def parse_enum_list(raw: Optional[str], enum_cls, field_name: str, errors: _Errors) -> Optional[List[Any]]:
    """A single value or a comma list means "is any of"."""
    if raw is None or raw.strip() == "":
        return None
    values = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            values.append(enum_cls(part))
        except ValueError:
            allowed = ", ".join(e.value for e in enum_cls)
            errors.add(field_name, f"Invalid value '{part}'. Must be one of: {allowed}")
            return None
    return values or None


def parse_bool(raw: Optional[str], field_name: str, errors: _Errors) -> Optional[bool]:
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    errors.add(field_name, "Must be 'true' or 'false'")
    return None


def parse_id(raw: Optional[str], field_name: str, errors: _Errors) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if raw.isdigit() and int(raw) > 0:
        return int(raw)
    errors.add(field_name, "Must be a valid id")
    return None


def parse_date_bound(raw: Optional[str], field_name: str, errors: _Errors, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime. A bare date used as an upper bound
    means the end of that day.
    """
    if raw is None or raw == "":
        return None
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            moment = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        errors.add(field_name, "Must be an ISO date (YYYY-MM-DD) or datetime")
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class PageRequest:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, Any]:
        total_pages = math.ceil(total / self.limit) if total else 0
        return {
            "current_page": self.page,
            "total_pages": total_pages,
            "total_count": total,
            "has_next": self.page < total_pages,
            "has_prev": self.page > 1,
            "limit": self.limit,
        }


def page_request(page: Optional[int], limit: Optional[int], default_limit: int, max_limit: int) -> PageRequest:
    errors = _Errors()
    page = 1 if page is None else page
    limit = default_limit if limit is None else limit
    if page < 1:
        errors.add("page", "Must be 1 or greater")
    if limit < 1 or limit > max_limit:
        errors.add("limit", f"Must be between 1 and {max_limit}")
    errors.raise_if_any()
    return PageRequest(page=page, limit=limit)


def ordering(sortable: Dict[str, Any], id_column, sort_by: Optional[str], sort_order: Optional[str]) -> List[Any]:
    """Whitelisted sort, ties broken by id in the same direction."""
    errors = _Errors()
    sort_by = sort_by or "created_at"
    sort_order = (sort_order or "desc").lower()
    if sort_by not in sortable:
        errors.add("sort_by", f"Must be one of: {', '.join(sortable)}")
    if sort_order not in ("asc", "desc"):
        errors.add("sort_order", "Must be 'asc' or 'desc'")
    errors.raise_if_any()

    column = sortable[sort_by]
    if sort_order == "asc":
        return [column.asc(), id_column.asc()]
    return [column.desc(), id_column.desc()]


@dataclass
class ReportFilters:
    status: Optional[List[ReportStatus]] = None
    category: Optional[List[ReportCategory]] = None
    priority: Optional[List[ReportPriority]] = None
    assigned_to: Optional[Any] = None  # int, UNASSIGNED or None
    submitted_by: Optional[int] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    location: Optional[str] = None
    has_images: Optional[bool] = None
    has_feedback: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(
        cls,
        status: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        assigned_to: Optional[str] = None,
        submitted_by: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        location: Optional[str] = None,
        has_images: Optional[str] = None,
        has_feedback: Optional[str] = None,
    ) -> "ReportFilters":
        errors = _Errors()
        filters = cls(
            status=parse_enum_list(status, ReportStatus, "status", errors),
            category=parse_enum_list(category, ReportCategory, "category", errors),
            priority=parse_enum_list(priority, ReportPriority, "priority", errors),
            submitted_by=parse_id(submitted_by, "submitted_by", errors),
            search=search.strip() if search and search.strip() else None,
            date_from=parse_date_bound(date_from, "date_from", errors),
            date_to=parse_date_bound(date_to, "date_to", errors, end_of_day=True),
            location=location.strip() if location and location.strip() else None,
            has_images=parse_bool(has_images, "has_images", errors),
            has_feedback=parse_bool(has_feedback, "has_feedback", errors),
        )
        if assigned_to:
            if assigned_to == UNASSIGNED:
                filters.assigned_to = UNASSIGNED
            else:
                filters.assigned_to = parse_id(assigned_to, "assigned_to", errors)
        errors.raise_if_any()

        filters.raw = {
            "search": search, "status": status, "category": category, "priority": priority,
            "assigned_to": assigned_to, "submitted_by": submitted_by,
            "date_from": date_from, "date_to": date_to, "location": location,
            "has_images": has_images, "has_feedback": has_feedback,
        }
        return filters

    def conditions(self) -> List[Any]:
        clauses = []
        if self.status:
            clauses.append(Report.status.in_(self.status))
        if self.category:
            clauses.append(Report.category.in_(self.category))
        if self.priority:
            clauses.append(Report.priority.in_(self.priority))
        if self.assigned_to == UNASSIGNED:
            clauses.append(Report.assigned_to.is_(None))
        elif self.assigned_to is not None:
            clauses.append(Report.assigned_to == self.assigned_to)
        if self.submitted_by is not None:
            clauses.append(Report.submitted_by == self.submitted_by)
        if self.search:
            clauses.append(or_(_contains(Report.title, self.search), _contains(Report.description, self.search)))
        if self.date_from is not None:
            clauses.append(Report.created_at >= self.date_from)
        if self.date_to is not None:
            clauses.append(Report.created_at <= self.date_to)
        if self.location:
            clauses.append(_contains(Report.address_city, self.location))
        if self.has_images is not None:
            has_any = exists(select(ReportImage.id).where(ReportImage.report_id == Report.id))
            clauses.append(has_any if self.has_images else ~has_any)
        if self.has_feedback is not None:
            clauses.append(
                Report.feedback_rating.is_not(None) if self.has_feedback else Report.feedback_rating.is_(None)
            )
        return clauses


def scoped_report_conditions(actor: Actor, filters: ReportFilters) -> List[Any]:
    """Visibility scope first, then the supplied filters."""
    scope = report_visibility_clause(actor)
    clauses = [] if scope is None else [scope]
    return clauses + filters.conditions()


def report_select(conditions: List[Any]) -> Select:
    query = select(Report)
    if conditions:
        query = query.where(and_(*conditions))
    return query


async def count_rows(db: AsyncSession, query: Select) -> int:
    result = await db.execute(select(func.count()).select_from(query.order_by(None).subquery()))
    return result.scalar() or 0


async def fetch_reports(
    db: AsyncSession,
    conditions: List[Any],
    page: PageRequest,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Tuple[List[Report], int]:
    """One page of matching reports plus the total count."""
    order = ordering(SORTABLE_REPORT_FIELDS, Report.id, sort_by, sort_order)
    query = report_select(conditions)
    total = await count_rows(db, query)
    result = await db.execute(query.order_by(*order).offset(page.offset).limit(page.limit))
    return list(result.scalars().all()), total


@dataclass
class UserFilters:
    role: Optional[List[UserRole]] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None

    @classmethod
    def parse(cls, role: Optional[str] = None, is_active: Optional[str] = None,
              search: Optional[str] = None) -> "UserFilters":
        errors = _Errors()
        filters = cls(
            role=parse_enum_list(role, UserRole, "role", errors),
            is_active=parse_bool(is_active, "is_active", errors),
            search=search.strip() if search and search.strip() else None,
        )
        errors.raise_if_any()
        return filters

    def conditions(self) -> List[Any]:
        clauses = []
        if self.role is not None:
            clauses.append(User.role.in_(self.role))
        if self.is_active is not None:
            clauses.append(User.is_active.is_(self.is_active))
        if self.search:
            clauses.append(or_(
                _contains(User.first_name, self.search),
                _contains(User.last_name, self.search),
                _contains(User.email, self.search),
            ))
        return clauses


async def fetch_users(
    db: AsyncSession,
    filters: UserFilters,
    page: PageRequest,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Tuple[List[User], int]:
    order = ordering(SORTABLE_USER_FIELDS, User.id, sort_by, sort_order)
    query = select(User)
    conditions = filters.conditions()
    if conditions:
        query = query.where(and_(*conditions))
    total = await count_rows(db, query)
    result = await db.execute(query.order_by(*order).offset(page.offset).limit(page.limit))
    return list(result.scalars().all()), total
