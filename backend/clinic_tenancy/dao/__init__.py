"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from clinic_tenancy.dao.base import BaseDAO
from clinic_tenancy.dao.organization import OrganizationDAO
from clinic_tenancy.dao.membership import MembershipDAO
from clinic_tenancy.dao.user import UserDAO

__all__ = [
    "BaseDAO",
    "OrganizationDAO",
    "MembershipDAO",
    "UserDAO",
]
