"""
Notification database model.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from civicconnect.app.db.session import Base
from civicconnect.app.core.timeutils import utcnow
import enum


class NotificationType(str, enum.Enum):
    REPORT_STATUS = "report_status"
    ASSIGNMENT = "assignment"
    FEEDBACK = "feedback"
    SYSTEM = "system"
    MESSAGE = "message"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Notification(Base):
    """
    In-app notification.

    Created as a side effect of report transitions and admin actions.
    The only mutation is the recipient marking it read; `read_at` is
    set once and kept on later reads.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.SYSTEM, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(Enum(NotificationPriority), default=NotificationPriority.NORMAL, nullable=False)

    # Weak reference to the subject (e.g. "Report", 17)
    related_model = Column(String(50), nullable=True)
    related_id = Column(Integer, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<Notification(id={self.id}, recipient={self.recipient_id}, title='{self.title}')>"
