"""
User model.

WHY: Users are owned by the external identity service; this core reads the
global role (for the superadmin bypass) and the legacy single-organization
field, and counts users per organization for statistics.
"""

import enum

from sqlalchemy import Column, Integer, String, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from clinic_tenancy.models.base import Base, TimestampMixin, PrimaryKeyMixin


class UserRole(str, enum.Enum):
    """
    Global roles this core gives meaning to.

    Other clinical roles (doctor, nurse, pharmacist, ...) are stored as-is
    and carry no special meaning here.
    """

    SUPERADMIN = "superadmin"
    SUPER_ADMIN = "super_admin"  # historical spelling, still accepted
    ADMIN = "admin"


SUPERADMIN_ROLES = frozenset({UserRole.SUPERADMIN.value, UserRole.SUPER_ADMIN.value})
ADMIN_ROLES = SUPERADMIN_ROLES | {UserRole.ADMIN.value}


def is_superadmin_role(role: str | None) -> bool:
    """Return True if the role is one of the superadmin spellings (any case)."""
    return bool(role) and role.strip().lower() in SUPERADMIN_ROLES


def is_admin_role(role: str | None) -> bool:
    """Return True for admin and superadmin roles (any case)."""
    return bool(role) and role.strip().lower() in ADMIN_ROLES


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model (read-mostly from this core's point of view).
    """

    __tablename__ = "users"

    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)

    # Global role, free-form
    role = Column(String(50), nullable=False, default="staff")

    # Legacy single-organization field (pre multi-tenant scheme)
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    is_active = Column(Boolean, default=True, nullable=False)

    memberships = relationship(
        "UserOrganization",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"
