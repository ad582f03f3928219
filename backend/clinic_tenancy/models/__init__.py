"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from clinic_tenancy.models.base import Base, TimestampMixin, PrimaryKeyMixin
from clinic_tenancy.models.organization import (
    Organization,
    OrganizationType,
    DEFAULT_ORGANIZATION_TYPE,
    DEFAULT_THEME_COLOR,
)
from clinic_tenancy.models.user import User, UserRole
from clinic_tenancy.models.membership import UserOrganization
from clinic_tenancy.models.clinical import Patient, Visit, Prescription, LabOrder

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "Organization",
    "OrganizationType",
    "DEFAULT_ORGANIZATION_TYPE",
    "DEFAULT_THEME_COLOR",
    "User",
    "UserRole",
    "UserOrganization",
    "Patient",
    "Visit",
    "Prescription",
    "LabOrder",
]
