"""
auditflow - Custom exceptions for error handling.
"""

from typing import Any, Optional


class AuditFlowError(Exception):
    """Base exception for all auditflow errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


class ConfigError(AuditFlowError):
    """Raised when client configuration cannot be loaded."""

    pass


class CredentialStoreError(AuditFlowError):
    """Raised when persisted credentials cannot be read or written."""

    pass


class TokenDecodeError(AuditFlowError):
    """Raised when an access token has no readable expiry claim."""

    pass


# ==================== Transport ====================


class TransportError(AuditFlowError):
    """Raised when a network call or the backing store fails."""

    pass


class AuthenticationError(TransportError):
    """Raised on a 401 that could not be recovered by a token refresh."""

    pass


class InvalidCredentialsError(AuthenticationError):
    """Raised when the identity provider rejects a username/password pair."""

    pass


class SessionExpiredError(AuthenticationError):
    """Raised when the refresh exchange itself fails.

    Persisted tokens have been cleared by the time this is raised; callers
    should send the user back to the login flow.
    """

    pass


class ForbiddenError(TransportError):
    """Raised when the backing store refuses an action (HTTP 403)."""

    pass


class NotFoundError(TransportError):
    """Raised when a requested resource is not found."""

    pass


class ValidationError(TransportError):
    """Raised when request validation fails."""

    def __init__(self, message: str, errors: Optional[dict[str, Any]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = errors or {}


# ==================== Workflow ====================


class WorkflowError(AuditFlowError):
    """Base exception for workflow rule violations.

    These are raised before any network call is attempted.
    """

    pass


class IllegalTransitionError(WorkflowError):
    """Raised when a role may not move a request to the proposed status."""

    def __init__(self, message: str, role: Any = None, current: Any = None, proposed: Any = None) -> None:
        super().__init__(message)
        self.role = role
        self.current = current
        self.proposed = proposed


class MissingCertificateError(WorkflowError):
    """Raised when an approval is requested without a certificate."""

    pass


class PermissionDeniedError(WorkflowError):
    """Raised when a role may not attach, remove or comment on a request."""

    pass
