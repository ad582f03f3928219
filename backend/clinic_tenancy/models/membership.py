"""
User-organization membership model.

WHY: Users may belong to several organizations. Each (user, organization)
pair has at most one row, and at most one of a user's rows carries the
default flag used by the context resolver.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from clinic_tenancy.models.base import Base, PrimaryKeyMixin


class UserOrganization(Base, PrimaryKeyMixin):
    """
    Membership link between a user and an organization.

    Fields:
    - user_id / organization_id: the pair, unique together
    - role_id: optional org-scoped role reference (roles live outside this core)
    - is_default: at most one True per user
    - joined_at: when the membership was created
    """

    __tablename__ = "user_organizations"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role_id = Column(Integer, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="memberships")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_user_organizations_user_org"),
        Index("ix_user_organizations_user_id", "user_id"),
        Index("ix_user_organizations_organization_id", "organization_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserOrganization(user_id={self.user_id}, "
            f"organization_id={self.organization_id}, is_default={self.is_default})>"
        )
