"""
Pydantic schemas for organization endpoints.

WHY: Schemas define request/response contracts for organization management,
providing validation, documentation, and type safety.
"""

import re
from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field, field_validator

from clinic_tenancy.models.organization import OrganizationType


_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_PATTERN = re.compile(r"^[\d\s\-\+\(\)]+$")
_URL_PATTERN = re.compile(r"^https?://\S+$")


def _check_email(value: str) -> str:
    if not _EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


def _check_phone(value: str) -> str:
    if not _PHONE_PATTERN.match(value):
        raise ValueError("Invalid phone number format")
    return value


def _check_url(value: str) -> str:
    if not _URL_PATTERN.match(value):
        raise ValueError("Invalid URL")
    return value


Email = Annotated[str, Field(max_length=255), AfterValidator(_check_email)]
Phone = Annotated[str, Field(max_length=20), AfterValidator(_check_phone)]
Url = Annotated[str, Field(max_length=500), AfterValidator(_check_url)]
HexColor = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]


class OrganizationCreate(BaseModel):
    """
    Organization creation request schema.

    type and theme_color are left unset when not provided; the service
    applies the defaults ("clinic", "#3B82F6").
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Organization name (unique, case-insensitive)",
    )
    type: OrganizationType | None = Field(default=None, description="Organization category")
    email: Email | None = Field(default=None, description="Contact email (unique)")
    address: str | None = Field(default=None, max_length=255, description="Postal address")
    phone: Phone | None = Field(default=None, description="Phone number")
    website: Url | None = Field(default=None, description="Website URL")
    logo_url: Url | None = Field(default=None, description="Logo URL")
    theme_color: HexColor | None = Field(default=None, description="Hex display color")
    letterhead_config: dict[str, Any] | None = Field(
        default=None,
        description="Letterhead layout used by print views (opaque to this service)",
    )

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Organization name is required")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Northside Family Clinic",
                "type": "clinic",
                "email": "info@northside.example",
                "phone": "+1 555 0100",
            }
        }
    }


class OrganizationUpdate(BaseModel):
    """
    Organization update request schema.

    Only fields present in the request body are persisted.
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: OrganizationType | None = None
    email: Email | None = None
    address: str | None = Field(default=None, max_length=255)
    phone: Phone | None = None
    website: Url | None = None
    logo_url: Url | None = None
    theme_color: HexColor | None = None
    letterhead_config: dict[str, Any] | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Organization name cannot be blank")
        return v


class OrganizationResponse(BaseModel):
    """
    Organization response schema.
    """

    id: int
    name: str
    type: str
    email: str | None = None
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    logo_url: str | None = None
    theme_color: str | None = None
    letterhead_config: dict[str, Any] | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationContextResponse(BaseModel):
    """
    The organization context resolved for the current request.
    """

    id: int
    name: str
    type: str
    is_active: bool

    model_config = {"from_attributes": True}


class CurrentOrganizationResponse(BaseModel):
    """
    Resolved context plus the full organization row.
    """

    context: OrganizationContextResponse
    organization: OrganizationResponse


class OrganizationStatsResponse(BaseModel):
    """
    Row counts for one organization.
    """

    total_patients: int = 0
    total_users: int = 0
    total_visits: int = 0
    total_prescriptions: int = 0
    total_lab_orders: int = 0

    model_config = {"from_attributes": True}
