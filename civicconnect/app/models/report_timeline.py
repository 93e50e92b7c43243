"""
Report timeline entries.

Append-only: rows are inserted by the transition operation and never
updated or deleted.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from civicconnect.app.db.session import Base
from civicconnect.app.models.report_enums import ReportStatus
from civicconnect.app.core.timeutils import utcnow


class ReportTimelineEntry(Base):
    __tablename__ = "report_timeline"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(ReportStatus), nullable=False, index=True)
    comment = Column(String(500), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ReportTimelineEntry(report_id={self.report_id}, status='{self.status.value}')>"
