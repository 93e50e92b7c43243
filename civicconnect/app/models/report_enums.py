"""
Report enumerations.
"""

import enum


class ReportStatus(str, enum.Enum):
    """
    Report status enumeration.

    Typical flow:
        SUBMITTED → IN_REVIEW → ASSIGNED → IN_PROGRESS → RESOLVED → CLOSED

    Only role gates restrict which status an actor may set; the order
    above is not enforced.
    """
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ReportCategory(str, enum.Enum):
    ROAD_ISSUE = "road_issue"
    WATER_ISSUE = "water_issue"
    ELECTRICITY_ISSUE = "electricity_issue"
    WASTE_MANAGEMENT = "waste_management"
    PUBLIC_SAFETY = "public_safety"
    OTHER = "other"


class ReportPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Weights used by the geographic breakdown
PRIORITY_SCORES = {
    ReportPriority.LOW: 1,
    ReportPriority.MEDIUM: 2,
    ReportPriority.HIGH: 3,
    ReportPriority.CRITICAL: 4,
}
DEFAULT_PRIORITY_SCORE = 2
