"""
auditflow - Client for the empanelment audit-request API.

Ties the credential store, session manager, API gateway and workflow rules
together behind one object. Every mutating call is checked against the
workflow rules first, so an illegal action never reaches the network.
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional, TypeVar, Union

import httpx

from .config import ClientConfig
from .credentials import CredentialStore, FileCredentialStore
from .exceptions import AuthenticationError, PermissionDeniedError, TransportError
from .gateway import ApiGateway
from .identity import IdentityProvider
from .models import AuditRequest, Document, Identity, LoginResult, Remark, RequestStatus, Role, SessionState
from .session import SessionManager
from .validation import (
    InputValidationError,
    validate_file,
    validate_registration,
    validate_remark,
    validate_request_create,
    validate_required,
)
from .workflow import (
    available_actions,
    require_add_remark,
    require_delete_document,
    require_upload_document,
    validate_transition,
)

logger = logging.getLogger("auditflow.client")

FileSource = Union[str, Path, bytes, tuple]

REQUESTS_URL = "audit-management/requests/"
DOCUMENTS_URL = "audit-management/documents/"

ModelT = TypeVar("ModelT", AuditRequest, Document, Remark)


def _decode(model: type[ModelT], data: Any) -> ModelT:
    """Build ``model`` from a backend payload, raising ``TransportError`` if it does not fit."""
    try:
        return model.from_dict(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.error("Unexpected %s payload from server: %s", model.__name__, e)
        raise TransportError(f"Unexpected {model.__name__} payload from server: {e}", response=data) from e


def _file_part(source: FileSource, default_name: str = "upload.pdf") -> tuple:
    """
    Turn a path, raw bytes, or an explicit ``(name, content, mime)`` tuple
    into a multipart file part whose content can be sent more than once.
    """
    if isinstance(source, tuple):
        return source
    if isinstance(source, bytes):
        return (default_name, source, mimetypes.guess_type(default_name)[0] or "application/octet-stream")
    path = Path(source)
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return (path.name, path.read_bytes(), mime)


class AuditClient:
    """
    Asynchronous client for the audit-request tracker.

    Example:
        ```python
        async with AuditClient.from_config(ClientConfig.from_env()) as client:
            await client.restore()
            if not client.session.is_authenticated:
                await client.login("reviewer", "s3cret")

            for request in await client.list_requests():
                if client.available_actions(request):
                    await client.update_status(request, RequestStatus.FORWARDED_TO_STQC)
        ```
    """

    def __init__(
        self,
        base_url: str,
        store: CredentialStore,
        timeout: float = 30.0,
        refresh_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.store = store
        self.identity_provider = IdentityProvider(base_url, timeout=timeout, transport=transport)
        self.session = SessionManager(store, self.identity_provider)
        self.gateway = ApiGateway(
            base_url,
            store,
            self.identity_provider,
            timeout=timeout,
            refresh_timeout=refresh_timeout,
            transport=transport,
        )
        self.gateway.add_refresh_listener(self.session.token_refreshed)
        self.gateway.add_expiry_listener(self.session.session_expired)

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        store: Optional[CredentialStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "AuditClient":
        """Build a client whose tokens persist in the configured credentials file."""
        return cls(
            base_url=config.base_url,
            store=store if store is not None else FileCredentialStore(config.credentials_file),
            timeout=config.timeout,
            refresh_timeout=config.refresh_timeout,
            transport=transport,
        )

    # ==================== Session ====================

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.identity

    def _require_identity(self) -> Identity:
        identity = self.session.identity
        if identity is None:
            raise AuthenticationError("You are not logged in")
        return identity

    async def restore(self) -> SessionState:
        return await self.session.restore()

    async def login(self, username: str, password: str) -> LoginResult:
        return await self.session.login(username, password)

    async def register(self, user_data: dict[str, Any]) -> LoginResult:
        """Validate and submit a registration, then log in as the new user."""
        try:
            validate_registration(user_data)
        except InputValidationError as e:
            return LoginResult.failed(e.message)
        payload = {k: v for k, v in user_data.items() if k != "confirm_password"}
        return await self.session.register(payload)

    async def logout(self) -> None:
        await self.session.logout()

    # ==================== Audit requests ====================

    async def list_requests(self) -> list[AuditRequest]:
        """List the audit requests visible to the current user."""
        data = await self.gateway.get(REQUESTS_URL)
        if isinstance(data, dict):
            data = data.get("results", [])
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransportError("Unexpected request list payload from server", response=data)
        return [_decode(AuditRequest, item) for item in data]

    async def get_request(self, request_id: int) -> AuditRequest:
        """Fetch one audit request with its documents and remarks."""
        data = await self.gateway.get(f"{REQUESTS_URL}{request_id}/")
        return _decode(AuditRequest, data)

    async def create_request(
        self,
        service_provider_name: str,
        data_center_location: str,
        description: str = "",
    ) -> AuditRequest:
        """Submit a new empanelment request. Only a CSP may do this."""
        identity = self._require_identity()
        if identity.role != Role.CSP:
            raise PermissionDeniedError("Only a CSP can submit an audit request")
        validate_request_create(service_provider_name, data_center_location)

        payload = {
            "service_provider_name": service_provider_name,
            "data_center_location": data_center_location,
            "description": description,
            "status": RequestStatus.SUBMITTED_BY_CSP.value,
        }
        data = await self.gateway.post(REQUESTS_URL, json=payload)
        request = _decode(AuditRequest, data)
        logger.info("Created audit request #%s", request.id)
        return request

    async def submit_request(
        self,
        service_provider_name: str,
        data_center_location: str,
        description: str = "",
        documents: Optional[list[tuple[str, FileSource]]] = None,
    ) -> AuditRequest:
        """
        Create a request and upload its supporting documents.

        Args:
            documents: ``(document_type, file)`` pairs. Every pair is checked
                before the request is created, then all are uploaded
                concurrently.
        """
        documents = documents or []
        for document_type, source in documents:
            validate_required(document_type, "document_type")
            validate_file(source)

        request = await self.create_request(service_provider_name, data_center_location, description)
        if documents:
            await asyncio.gather(
                *(self._attach_document(request, document_type, source) for document_type, source in documents)
            )
            logger.info("Uploaded %d documents to request #%s", len(documents), request.id)
        return request

    async def _attach_document(self, request: AuditRequest, document_type: str, source: FileSource) -> Any:
        return await self.gateway.post(
            DOCUMENTS_URL,
            data={"audit_request": str(request.id), "document_type": document_type.strip()},
            files={"file": _file_part(source)},
        )

    # ==================== Status workflow ====================

    def available_actions(self, request: AuditRequest) -> frozenset[RequestStatus]:
        """Statuses the current user may move ``request`` to."""
        identity = self.session.identity
        if identity is None:
            return frozenset()
        return available_actions(identity.role, request.status)

    async def update_status(
        self,
        request: AuditRequest,
        new_status: Union[RequestStatus, str],
        certificate: Optional[FileSource] = None,
    ) -> AuditRequest:
        """
        Move a request to a new status.

        The transition is validated for the current user before anything is
        sent. Approval requires ``certificate``, which is uploaded with the
        status change.

        Raises:
            IllegalTransitionError: If the user's role cannot make this move.
            MissingCertificateError: If approving without a certificate.
        """
        identity = self._require_identity()
        target = validate_transition(identity.role, request.status, new_status, certificate)
        url = f"{REQUESTS_URL}{request.id}/status-update/"

        if certificate:
            validate_file(certificate, "certificate_of_empanelment")
            data = await self.gateway.patch(
                url,
                data={"status": target.value},
                files={"certificate_of_empanelment": _file_part(certificate, "certificate.pdf")},
            )
        else:
            data = await self.gateway.patch(url, json={"status": target.value})

        logger.info("Request #%s moved from %s to %s", request.id, request.status.value, target.value)
        # The status endpoint may echo only the changed fields
        merged = request.to_dict()
        merged["status"] = target.value
        if isinstance(data, dict):
            merged.update(data)
        return _decode(AuditRequest, merged)

    # ==================== Attachments ====================

    async def upload_document(
        self,
        request: AuditRequest,
        document_type: str,
        file: FileSource,
        description: str = "",
    ) -> Document:
        """Attach a document to a request the current user may upload to."""
        identity = self._require_identity()
        require_upload_document(identity, request)
        validate_required(document_type, "document_type")
        validate_file(file)

        data = await self.gateway.post(
            f"{REQUESTS_URL}{request.id}/documents/upload/",
            data={"document_type": document_type, "description": description},
            files={"file": _file_part(file)},
        )
        return _decode(Document, data)

    async def delete_document(self, document: Document) -> None:
        """Delete a document. Only its uploader may do this."""
        identity = self._require_identity()
        require_delete_document(identity, document)
        await self.gateway.delete(f"{DOCUMENTS_URL}{document.id}/delete/")
        logger.info("Deleted document #%s", document.id)

    async def add_remark(self, request: AuditRequest, comment: str) -> Remark:
        """Add a reviewer remark to a request."""
        identity = self._require_identity()
        require_add_remark(identity.role)
        validate_remark(comment)

        data = await self.gateway.post(
            f"{REQUESTS_URL}{request.id}/remarks/add/",
            json={"comment": comment},
        )
        return _decode(Remark, data)

    # ==================== Lifecycle ====================

    async def close(self) -> None:
        await self.gateway.close()
        await self.identity_provider.close()

    async def __aenter__(self) -> "AuditClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
