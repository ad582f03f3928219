"""
Organization API endpoints.

WHY: These endpoints expose the organization context and membership
management to clients:

Any authenticated user:
1. GET /current - Resolved organization context and organization row
2. GET /current/stats - Row counts for the resolved organization
3. GET /user-organizations - Caller's memberships
4. POST /switch, DELETE /switch - Set or clear the session's organization
5. POST /set-default/{organization_id} - Change the caller's default membership

Admin (resolved organization only):
6. PUT /current - Update the organization
7. GET/POST /current/members, DELETE /current/members/{user_id}

Superadmin:
8. POST /, GET /search, GET/PUT /{organization_id},
   POST /{organization_id}/activate, POST /{organization_id}/deactivate
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_tenancy.core.access import verify_user_organization_access
from clinic_tenancy.core.auth import clear_session_organization, set_session_organization
from clinic_tenancy.core.deps import Principal, get_current_principal, require_admin, require_superadmin
from clinic_tenancy.core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    OrganizationNotFoundError,
)
from clinic_tenancy.core.org_cache import OrganizationCache, get_organization_cache
from clinic_tenancy.db.session import get_db
from clinic_tenancy.middleware.organization_context import (
    OrganizationContext,
    resolve_organization_context,
)
from clinic_tenancy.schemas.membership import (
    AddMemberRequest,
    MemberResponse,
    MembershipResponse,
    MessageResponse,
    SwitchOrganizationRequest,
    SwitchOrganizationResponse,
    UserOrganizationResponse,
)
from clinic_tenancy.schemas.organization import (
    CurrentOrganizationResponse,
    OrganizationContextResponse,
    OrganizationCreate,
    OrganizationResponse,
    OrganizationStatsResponse,
    OrganizationUpdate,
)
from clinic_tenancy.services.organization_service import OrganizationService


router = APIRouter(prefix="/organizations", tags=["organizations"])


def get_organization_service(
    db: AsyncSession = Depends(get_db),
    cache: OrganizationCache = Depends(get_organization_cache),
) -> OrganizationService:
    """Dependency building the service on the request session."""
    return OrganizationService(db, cache=cache)


async def _get_or_404(service: OrganizationService, organization_id: int):
    organization = await service.get_by_id(organization_id)
    if organization is None:
        raise OrganizationNotFoundError(
            message=f"Organization with id {organization_id} not found",
            organization_id=organization_id,
        )
    return organization


# ============================================================================
# Resolved organization
# ============================================================================


@router.get(
    "/current",
    response_model=CurrentOrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Get current organization",
    description="Resolve the caller's organization context and return it with the organization details",
)
async def get_current_organization(
    context: OrganizationContext = Depends(resolve_organization_context),
    service: OrganizationService = Depends(get_organization_service),
) -> CurrentOrganizationResponse:
    """
    Get the organization the current request operates against.

    WHY: Clients show the active organization (name, branding) and need
    to know which one the server picked when several are available.

    Raises:
        NoOrganizationContextError (400): Caller has no organization
        OrganizationNotFoundError (404): Resolved organization doesn't exist
        OrganizationInactiveError (403): Resolved organization is deactivated
        AccessDeniedError (403): Caller may not act in the organization
    """
    organization = await _get_or_404(service, context.id)
    return CurrentOrganizationResponse(
        context=OrganizationContextResponse.model_validate(context),
        organization=OrganizationResponse.model_validate(organization),
    )


@router.get(
    "/current/stats",
    response_model=OrganizationStatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Get current organization statistics",
)
async def get_current_organization_stats(
    context: OrganizationContext = Depends(resolve_organization_context),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationStatsResponse:
    """Row counts (patients, members, visits, prescriptions, lab orders)."""
    stats = await service.get_stats(context.id)
    return OrganizationStatsResponse.model_validate(stats)


@router.put(
    "/current",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Update current organization",
    description="Update the resolved organization (admin only)",
)
async def update_current_organization(
    data: OrganizationUpdate,
    admin: Principal = Depends(require_admin),
    context: OrganizationContext = Depends(resolve_organization_context),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationResponse:
    """
    Update the resolved organization.

    WHY: Clinic admins maintain their own contact details and branding
    without superadmin help. The organization is the resolved one, never
    one named by the client.

    Raises:
        InsufficientPermissionsError (403): Caller is not an admin
        OrganizationExistsError (409): Name or email already used
    """
    organization = await service.update(context.id, data)
    return OrganizationResponse.model_validate(organization)


@router.get(
    "/current/members",
    response_model=List[MemberResponse],
    status_code=status.HTTP_200_OK,
    summary="List members of current organization",
)
async def list_current_members(
    admin: Principal = Depends(require_admin),
    context: OrganizationContext = Depends(resolve_organization_context),
    service: OrganizationService = Depends(get_organization_service),
) -> List[MemberResponse]:
    """List the resolved organization's members (admin only)."""
    members = await service.list_members(context.id)
    return [
        MemberResponse(
            user_id=user.id,
            username=user.username,
            email=user.email,
            global_role=user.role,
            role_id=membership.role_id,
            is_default=membership.is_default,
            joined_at=membership.joined_at,
        )
        for membership, user in members
    ]


@router.post(
    "/current/members",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add member to current organization",
)
async def add_current_member(
    data: AddMemberRequest,
    admin: Principal = Depends(require_admin),
    context: OrganizationContext = Depends(resolve_organization_context),
    service: OrganizationService = Depends(get_organization_service),
) -> MembershipResponse:
    """
    Add a user to the resolved organization (admin only).

    Raises:
        UserAlreadyMemberError (409): The user is already a member
    """
    membership = await service.add_user_to_organization(
        data.user_id,
        context.id,
        role_id=data.role_id,
        set_as_default=data.set_as_default,
    )
    return MembershipResponse.model_validate(membership)


@router.delete(
    "/current/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove member from current organization",
)
async def remove_current_member(
    user_id: int,
    admin: Principal = Depends(require_admin),
    context: OrganizationContext = Depends(resolve_organization_context),
    service: OrganizationService = Depends(get_organization_service),
) -> Response:
    """Remove a user from the resolved organization. Idempotent."""
    await service.remove_user_from_organization(user_id, context.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Caller's memberships
# ============================================================================


@router.get(
    "/user-organizations",
    response_model=List[UserOrganizationResponse],
    status_code=status.HTTP_200_OK,
    summary="List caller's organizations",
    description="Memberships of the caller, default first, then by organization name",
)
async def list_user_organizations(
    principal: Principal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
) -> List[UserOrganizationResponse]:
    """
    List the organizations the caller belongs to.

    WHY: Powers the organization switcher; deactivated organizations are
    included so the client can show them as unavailable.
    """
    memberships = await service.get_user_organizations(principal.user_id)
    return [
        UserOrganizationResponse(
            organization=OrganizationContextResponse.model_validate(organization),
            is_default=membership.is_default,
            role_id=membership.role_id,
            joined_at=membership.joined_at,
        )
        for membership, organization in memberships
    ]


@router.post(
    "/switch",
    response_model=SwitchOrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Switch organization",
    description="Use another organization for the rest of the session",
)
async def switch_organization(
    data: SwitchOrganizationRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> SwitchOrganizationResponse:
    """
    Store an organization in the caller's session.

    WHY: The session organization takes precedence over every other
    resolution source, so a user who belongs to several clinics can work
    in one without sending a header on each request.

    Raises:
        AuthenticationError (401): Token has no session id
        AccessDeniedError (403): Caller may not act in the organization
    """
    if not principal.session_id:
        raise AuthenticationError(message="Session not found")

    has_access = await verify_user_organization_access(db, principal.user_id, data.organization_id)
    if not has_access:
        raise AccessDeniedError(organization_id=data.organization_id)

    await set_session_organization(principal.session_id, data.organization_id)
    return SwitchOrganizationResponse(
        message="Organization switched successfully",
        organization_id=data.organization_id,
    )


@router.delete(
    "/switch",
    response_model=SwitchOrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Clear switched organization",
)
async def clear_switched_organization(
    principal: Principal = Depends(get_current_principal),
) -> SwitchOrganizationResponse:
    """Drop the session organization; resolution falls back to the header and memberships."""
    if principal.session_id:
        await clear_session_organization(principal.session_id)
    return SwitchOrganizationResponse(message="Organization selection cleared")


@router.post(
    "/set-default/{organization_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Set default organization",
)
async def set_default_organization(
    organization_id: int,
    principal: Principal = Depends(get_current_principal),
    service: OrganizationService = Depends(get_organization_service),
) -> MessageResponse:
    """
    Make one of the caller's memberships the default.

    Raises:
        UserAccessDeniedError (400): Caller is not a member of the organization
    """
    await service.set_default_organization(principal.user_id, organization_id)
    return MessageResponse(message="Default organization updated successfully")


# ============================================================================
# Superadmin
# ============================================================================


@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create organization",
    description="Create a new organization (superadmin only)",
)
async def create_organization(
    data: OrganizationCreate,
    superadmin: Principal = Depends(require_superadmin),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationResponse:
    """
    Create a new organization.

    Raises:
        OrganizationExistsError (409): Name (any case) or email already used
    """
    organization = await service.create(data)
    return OrganizationResponse.model_validate(organization)


@router.get(
    "/search",
    response_model=List[OrganizationResponse],
    status_code=status.HTTP_200_OK,
    summary="Search organizations",
)
async def search_organizations(
    q: str = Query(..., min_length=1, description="Text matched against name, email and address"),
    limit: int = Query(20, ge=1, le=100),
    superadmin: Principal = Depends(require_superadmin),
    service: OrganizationService = Depends(get_organization_service),
) -> List[OrganizationResponse]:
    """Case-insensitive search, ordered by name."""
    organizations = await service.search(q, limit=limit)
    return [OrganizationResponse.model_validate(org) for org in organizations]


@router.get(
    "/{organization_id}",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Get organization by ID",
)
async def get_organization(
    organization_id: int,
    superadmin: Principal = Depends(require_superadmin),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationResponse:
    """
    Get any organization by ID (superadmin only).

    Raises:
        OrganizationNotFoundError (404): No such organization
    """
    organization = await _get_or_404(service, organization_id)
    return OrganizationResponse.model_validate(organization)


@router.put(
    "/{organization_id}",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Update organization",
)
async def update_organization(
    organization_id: int,
    data: OrganizationUpdate,
    superadmin: Principal = Depends(require_superadmin),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationResponse:
    """
    Update any organization (superadmin only).

    Raises:
        OrganizationNotFoundError (404): No such organization
        OrganizationExistsError (409): Name or email already used
    """
    organization = await service.update(organization_id, data)
    return OrganizationResponse.model_validate(organization)


@router.post(
    "/{organization_id}/activate",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Activate organization",
)
async def activate_organization(
    organization_id: int,
    superadmin: Principal = Depends(require_superadmin),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationResponse:
    """Reactivate a deactivated organization."""
    await _get_or_404(service, organization_id)
    await service.activate(organization_id)
    return OrganizationResponse.model_validate(await service.get_by_id(organization_id))


@router.post(
    "/{organization_id}/deactivate",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Deactivate organization",
)
async def deactivate_organization(
    organization_id: int,
    superadmin: Principal = Depends(require_superadmin),
    service: OrganizationService = Depends(get_organization_service),
) -> OrganizationResponse:
    """
    Soft-delete an organization.

    WHY: Deactivation locks every member (superadmins included) out of the
    organization's data while keeping the data intact.
    """
    await _get_or_404(service, organization_id)
    await service.deactivate(organization_id)
    return OrganizationResponse.model_validate(await service.get_by_id(organization_id))
