"""
Tenant-owned clinical tables.

WHY: The clinical resources are managed by their own services; this core
only needs their organization_id to count rows per tenant. The columns
below are the minimum those services share with us.
"""

from sqlalchemy import Column, Integer, String, Date, ForeignKey

from clinic_tenancy.models.base import Base, TimestampMixin, PrimaryKeyMixin


class TenantOwnedMixin:
    """Mixin for rows that belong to exactly one organization."""

    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )


class Patient(Base, PrimaryKeyMixin, TimestampMixin, TenantOwnedMixin):
    """Patient registered with an organization."""

    __tablename__ = "patients"

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=True)


class Visit(Base, PrimaryKeyMixin, TimestampMixin, TenantOwnedMixin):
    """Patient visit."""

    __tablename__ = "visits"

    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    visit_date = Column(Date, nullable=True)


class Prescription(Base, PrimaryKeyMixin, TimestampMixin, TenantOwnedMixin):
    """Prescription issued during a visit."""

    __tablename__ = "prescriptions"

    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    visit_id = Column(Integer, ForeignKey("visits.id", ondelete="SET NULL"), nullable=True)


class LabOrder(Base, PrimaryKeyMixin, TimestampMixin, TenantOwnedMixin):
    """Laboratory order."""

    __tablename__ = "lab_orders"

    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(50), nullable=False, default="pending")
