"""
Organization model.

WHY: Organizations are the tenants of the clinical system. Every
tenant-owned row carries an organization_id, and the organization's
is_active flag gates all access to that data.
"""

import enum

from sqlalchemy import Column, String, Text, JSON, Boolean, Index, func
from sqlalchemy.orm import relationship

from clinic_tenancy.models.base import Base, TimestampMixin, PrimaryKeyMixin


DEFAULT_ORGANIZATION_TYPE = "clinic"
DEFAULT_THEME_COLOR = "#3B82F6"


class OrganizationType(str, enum.Enum):
    """
    Known organization categories.

    The column itself is a plain string so that categories can be added
    without a schema change.
    """

    CLINIC = "clinic"
    HOSPITAL = "hospital"
    HEALTH_CENTER = "health_center"
    PHARMACY = "pharmacy"
    LAB = "lab"
    OTHER = "other"


class Organization(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Organization model representing a tenant.

    Invariants:
    - name is unique case-insensitively (functional unique index on lower(name))
    - email is unique when present
    - rows are never hard-deleted; is_active=False is the soft delete
    """

    __tablename__ = "organizations"

    # Identification
    name = Column(String(255), nullable=False, index=True)
    type = Column(String(50), nullable=False, default=DEFAULT_ORGANIZATION_TYPE)

    # Contact details
    email = Column(String(255), nullable=True, unique=True)
    address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    website = Column(String(255), nullable=True)

    # Display-only branding
    logo_url = Column(String(500), nullable=True)
    theme_color = Column(String(7), nullable=False, default=DEFAULT_THEME_COLOR)
    letterhead_config = Column(JSON, nullable=True)

    # Status
    # WHY: is_active is checked on every request before membership, so
    # deactivation locks out members and superadmins alike.
    is_active = Column(Boolean, nullable=False, default=True)

    memberships = relationship(
        "UserOrganization",
        back_populates="organization",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, is_active={self.is_active})>"


# Case-insensitive name uniqueness, enforced by the database as well as the
# service layer.
Index("uq_organizations_lower_name", func.lower(Organization.name), unique=True)
