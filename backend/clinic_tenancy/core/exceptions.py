"""
Custom exception hierarchy for structured error handling.

WHY: Every failure the organization core can produce maps to exactly one
exception class with a fixed HTTP status, so route handlers and dependencies
can simply raise and let the exception handlers shape the response.

IMPORTANT: NEVER raise the base Exception class. Always use custom exceptions.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    All custom exceptions inherit from this class. Subclasses set
    ``status_code`` and ``default_message``; callers may override the
    message and attach debugging context as keyword arguments.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class AuthenticationRequiredError(AuthenticationError):
    """
    Raised when a request carries no authenticated identity at all.

    Checked before any organization logic runs.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Authentication required"


class TokenExpiredError(AuthenticationError):
    """
    Raised when JWT token has expired.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """
    Raised when JWT token is malformed or has invalid signature.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token is invalid"


class AuthorizationError(AppException):
    """
    Raised when user lacks permissions for an action.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


class InsufficientPermissionsError(AuthorizationError):
    """
    Raised when user's global role doesn't allow an action.

    HTTP Status: 403 Forbidden
    """

    default_message = "Insufficient permissions"


# ============================================================================
# Validation & Resource Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource already exists"


# ============================================================================
# Organization Context Exceptions (request resolution)
# ============================================================================


class NoOrganizationContextError(ValidationError):
    """
    Raised when no resolution rule produced an organization id.

    HTTP Status: 400 Bad Request
    """

    default_message = "No organization context available. Please select an organization."


class OrganizationContextRequiredError(ValidationError):
    """
    Raised by the require-context guard when no context was attached.

    HTTP Status: 400 Bad Request
    """

    default_message = "Organization context is required for this operation"


class OrganizationNotFoundError(ResourceNotFoundError):
    """
    Raised when an organization id does not exist in the directory.

    HTTP Status: 404 Not Found
    """

    default_message = "Organization not found"


class OrganizationInactiveError(AuthorizationError):
    """
    Raised when the resolved organization has been deactivated.

    Takes priority over AccessDeniedError: an inactive organization is
    rejected before membership is checked.

    HTTP Status: 403 Forbidden
    """

    default_message = "Organization is inactive. Please contact your administrator."


class AccessDeniedError(AuthorizationError):
    """
    Raised when the user is neither a member nor a superadmin.

    HTTP Status: 403 Forbidden
    """

    default_message = "You do not have access to this organization"


class OrganizationContextResolutionFailedError(AppException):
    """
    Raised when resolution fails for an unexpected reason.

    Wraps the original exception (available as ``__cause__``) so that
    nothing unexpected escapes the resolver as anything but a 500.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Failed to resolve organization context"


# ============================================================================
# Organization Service Exceptions (administrative mutations)
# ============================================================================


class OrganizationExistsError(ResourceAlreadyExistsError):
    """
    Raised when a name (case-insensitive) or email is already taken.

    HTTP Status: 409 Conflict
    """

    default_message = "Organization already exists"


class UserAlreadyMemberError(ResourceAlreadyExistsError):
    """
    Raised when adding a user to an organization they already belong to.

    HTTP Status: 409 Conflict
    """

    default_message = "User is already a member of this organization"


class UserAccessDeniedError(ValidationError):
    """
    Raised when setting a default organization the user is not a member of.

    HTTP Status: 400 Bad Request
    """

    default_message = "User does not have access to this organization"
