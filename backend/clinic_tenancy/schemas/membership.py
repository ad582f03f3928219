"""
Pydantic schemas for membership endpoints.

WHY: Membership requests carry ids chosen by the client; validating them
here keeps non-positive ids away from the service layer.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from clinic_tenancy.schemas.organization import OrganizationContextResponse


class SwitchOrganizationRequest(BaseModel):
    """Organization the caller wants to act in for the rest of the session."""

    organization_id: int = Field(..., gt=0, description="Organization to switch to")


class AddMemberRequest(BaseModel):
    """
    Add-member request schema.

    set_as_default makes the new membership the user's only default.
    """

    user_id: int = Field(..., gt=0, description="User to add")
    role_id: Optional[int] = Field(default=None, description="Organization-scoped role")
    set_as_default: bool = Field(default=False, description="Make this the user's default organization")


class UserOrganizationResponse(BaseModel):
    """One of the caller's memberships with its organization."""

    organization: OrganizationContextResponse
    is_default: bool
    role_id: Optional[int] = None
    joined_at: datetime


class MemberResponse(BaseModel):
    """One member of an organization."""

    user_id: int
    username: str
    email: Optional[str] = None
    global_role: str
    role_id: Optional[int] = None
    is_default: bool
    joined_at: datetime


class MembershipResponse(BaseModel):
    """A membership row as stored."""

    id: int
    user_id: int
    organization_id: int
    role_id: Optional[int] = None
    is_default: bool
    joined_at: datetime

    model_config = {"from_attributes": True}


class SwitchOrganizationResponse(BaseModel):
    """Result of switching the session's organization."""

    message: str
    organization_id: Optional[int] = None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str
