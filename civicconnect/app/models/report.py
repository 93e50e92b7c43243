"""
Report database model.

A report is an issue raised by a citizen. Its status only changes through
the transition operation in `services.report_lifecycle`, which also appends
a `ReportTimelineEntry`, so the current status always equals the status of
the latest timeline entry.
"""

from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from civicconnect.app.db.session import Base
from civicconnect.app.models.report_enums import ReportStatus, ReportCategory, ReportPriority
from civicconnect.app.core.timeutils import utcnow


class Report(Base):
    """
    Report model.

    Location is stored as a longitude/latitude pair plus an optional
    postal address. Feedback columns are filled once, by the submitter,
    after the report is resolved.
    """
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(Enum(ReportCategory), nullable=False, index=True)
    priority = Column(Enum(ReportPriority), default=ReportPriority.MEDIUM, nullable=False, index=True)
    status = Column(Enum(ReportStatus), default=ReportStatus.SUBMITTED, nullable=False, index=True)

    # Location
    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)
    address_street = Column(String(255), nullable=True)
    address_city = Column(String(100), nullable=True, index=True)
    address_state = Column(String(100), nullable=True)
    address_zip_code = Column(String(20), nullable=True)

    # Ownership
    submitted_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Feedback
    feedback_rating = Column(Integer, nullable=True)
    feedback_comment = Column(String(500), nullable=True)
    feedback_submitted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    @property
    def has_feedback(self) -> bool:
        return self.feedback_rating is not None

    def __repr__(self):
        return f"<Report(id={self.id}, title='{self.title}', status='{self.status.value}')>"
