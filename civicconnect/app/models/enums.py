"""
User roles enumeration.

Defines the role types for the civic reporting system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        USER: Citizen who submits and follows their own reports (default role)
        EMPLOYEE: Field worker who works reports assigned to them
        ADMIN: Manages users and reports system-wide
    """
    USER = "user"
    EMPLOYEE = "employee"
    ADMIN = "admin"
