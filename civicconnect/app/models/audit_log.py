"""
Audit Log Database Model.

Tracks security-critical events and admin actions for compliance and security monitoring.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from civicconnect.app.db.session import Base
from civicconnect.app.core.timeutils import utcnow


class AuditLog(Base):
    """
    Audit log model for tracking security events and admin actions.

    Events logged:
    - USER_ACTIVATED / USER_DEACTIVATED
    - ROLE_CHANGED
    - ADMIN_CREATED
    - LOGIN_SUCCESS / LOGIN_FAILED
    - REPORT_ASSIGNED and the bulk report operations
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_email = Column(String(255), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Who was the target of the action (for user management actions)
    target_user_id = Column(Integer, index=True, nullable=True)
    target_email = Column(String(255), nullable=True)

    # Additional context
    meta_data = Column(JSON, nullable=True)

    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_email}, target={self.target_email})>"
