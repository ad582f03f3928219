"""
Middleware package.

Request-wide concerns: request context capture and organization context
resolution.
"""

from clinic_tenancy.middleware.request_context import (
    RequestContextMiddleware,
    get_request_context,
    get_client_ip,
    RequestContext,
)
from clinic_tenancy.middleware.organization_context import (
    ORGANIZATION_HEADER,
    RESOLUTION_RULES,
    OrganizationContext,
    OrganizationContextResolver,
    ResolutionInput,
    organization_scope,
    parse_organization_id,
    require_organization_context,
    resolve_organization_context,
    resolve_organization_id,
    with_organization,
)

__all__ = [
    # Request context
    "RequestContextMiddleware",
    "get_request_context",
    "get_client_ip",
    "RequestContext",
    # Organization context
    "ORGANIZATION_HEADER",
    "RESOLUTION_RULES",
    "OrganizationContext",
    "OrganizationContextResolver",
    "ResolutionInput",
    "organization_scope",
    "parse_organization_id",
    "require_organization_context",
    "resolve_organization_context",
    "resolve_organization_id",
    "with_organization",
]
