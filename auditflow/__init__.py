"""
auditflow - Python client for the empanelment audit-request tracker.

A CSP submits an empanelment request, which moves through MeitY review,
STQC audit and Scientist F approval. This package keeps a client logged in
against the tracker's bearer-token API and enforces the role-gated status
workflow before any change is sent.
"""

from .client import AuditClient
from .config import ClientConfig
from .credentials import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)
from .exceptions import (
    AuditFlowError,
    AuthenticationError,
    ConfigError,
    CredentialStoreError,
    ForbiddenError,
    IllegalTransitionError,
    InvalidCredentialsError,
    MissingCertificateError,
    NotFoundError,
    PermissionDeniedError,
    SessionExpiredError,
    TokenDecodeError,
    TransportError,
    ValidationError,
    WorkflowError,
)
from .gateway import ApiGateway
from .identity import IdentityProvider
from .models import (
    AuditRequest,
    Document,
    Identity,
    LoginResult,
    Remark,
    RequestStatus,
    Role,
    SessionState,
    TokenPair,
)
from .session import SessionManager
from .validation import InputValidationError
from .workflow import (
    TRANSITIONS,
    available_actions,
    can_add_remark,
    can_delete_document,
    can_upload_document,
    partition_for_reviewer,
    validate_transition,
)

__version__ = "0.1.0"
__all__ = [
    "AuditClient",
    "ClientConfig",
    "ApiGateway",
    "IdentityProvider",
    "SessionManager",
    "CredentialStore",
    "MemoryCredentialStore",
    "FileCredentialStore",
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "AuditRequest",
    "Document",
    "Identity",
    "LoginResult",
    "Remark",
    "RequestStatus",
    "Role",
    "SessionState",
    "TokenPair",
    "AuditFlowError",
    "AuthenticationError",
    "ConfigError",
    "CredentialStoreError",
    "ForbiddenError",
    "IllegalTransitionError",
    "InvalidCredentialsError",
    "MissingCertificateError",
    "NotFoundError",
    "PermissionDeniedError",
    "SessionExpiredError",
    "TokenDecodeError",
    "TransportError",
    "ValidationError",
    "WorkflowError",
    "InputValidationError",
    "TRANSITIONS",
    "available_actions",
    "validate_transition",
    "can_upload_document",
    "can_add_remark",
    "can_delete_document",
    "partition_for_reviewer",
]
