"""
User roles enumeration.

Roles are carried in the access token issued by the identity service.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Platform operator (dead-letter queue, cross-tenant tools)
        OWNER: Company owner, edits credit and overdue settings
        ACCOUNTANT: Records settlements and runs reconciliation
        VIEWER: Read-only access to balances and reports
    """
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    ACCOUNTANT = "ACCOUNTANT"
    VIEWER = "VIEWER"
