"""
auditflow - Authenticated API gateway.

Every business call goes through ``ApiGateway.request``. The gateway reads
the access token from the credential store at send time, and recovers from
a single expired-token 401 per call by refreshing the token and retrying.

Refresh is single-flight: concurrent calls that hit 401 with the same stale
token share one refresh exchange. Identity providers that rotate refresh
tokens reject a second redemption, so independent refreshes would log out
every caller but the first.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from .credentials import CredentialStore
from .exceptions import (
    AuditFlowError,
    AuthenticationError,
    CredentialStoreError,
    SessionExpiredError,
    TransportError,
)
from .identity import IdentityProvider
from .responses import detail_message, handle_response, response_payload

logger = logging.getLogger("auditflow.gateway")

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."


@dataclass
class _Call:
    """One logical API call; ``retried`` is set once its single retry is spent."""

    method: str
    url: str
    options: dict[str, Any] = field(default_factory=dict)
    retried: bool = False


class ApiGateway:
    """
    Asynchronous HTTP gateway that attaches bearer credentials.

    Request bodies must be replayable (JSON, form fields, or file contents as
    bytes), since a call may be sent twice.

    Example:
        ```python
        gateway = ApiGateway(
            base_url="http://localhost:8000/api/",
            store=store,
            identity_provider=idp,
        )
        requests = await gateway.get("audit-management/requests/")
        ```
    """

    def __init__(
        self,
        base_url: str,
        store: CredentialStore,
        identity_provider: IdentityProvider,
        timeout: float = 30.0,
        refresh_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.refresh_timeout = refresh_timeout
        self._store = store
        self._idp = identity_provider
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )
        self._refresh_lock = asyncio.Lock()
        # Stale token whose refresh failed, and the error every caller holding it gets
        self._failed_refresh: Optional[tuple[Optional[str], SessionExpiredError]] = None
        self._refresh_listeners: list[Callable[[str], None]] = []
        self._expiry_listeners: list[Callable[[Exception], None]] = []

    def add_refresh_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(access_token)`` after every successful refresh."""
        self._refresh_listeners.append(listener)

    def add_expiry_listener(self, listener: Callable[[Exception], None]) -> None:
        """Call ``listener(error)`` when a refresh fails and the session ends."""
        self._expiry_listeners.append(listener)

    # ==================== Sending ====================

    async def _send(self, call: _Call, token: Optional[str] = None) -> tuple[httpx.Response, Optional[str]]:
        """Send a call with ``token``, or the stored token when none is given."""
        if token is None:
            token = self._store.access_token
        request = self._client.build_request(call.method, call.url, **call.options)
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            request.headers.pop("Authorization", None)
        try:
            response = await self._client.send(request)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", call.method, call.url, e)
            raise TransportError(f"Network error during {call.method} {call.url}: {e}") from e
        logger.debug("%s %s -> %s", call.method, call.url, response.status_code)
        return response, token

    async def request(self, method: str, url: str, **options: Any) -> Any:
        """
        Send an authenticated request and return its decoded body.

        Raises:
            SessionExpiredError: If a refresh was needed and failed.
            AuthenticationError: If the call is unauthorized and cannot be
                refreshed, or is still unauthorized after its retry.
            TransportError: On any other failure.
        """
        call = _Call(method=method, url=url, options=options)
        response, token = await self._send(call)

        if response.status_code == 401 and not call.retried:
            call.retried = True
            logger.info("%s %s unauthorized, attempting token refresh", method, url)
            new_token = await self._refresh(token, response)
            logger.debug("Retrying %s %s with refreshed token", method, url)
            response, _ = await self._send(call, new_token)

        return handle_response(response)

    async def get(self, url: str, **options: Any) -> Any:
        return await self.request("GET", url, **options)

    async def post(self, url: str, **options: Any) -> Any:
        return await self.request("POST", url, **options)

    async def patch(self, url: str, **options: Any) -> Any:
        return await self.request("PATCH", url, **options)

    async def delete(self, url: str, **options: Any) -> Any:
        return await self.request("DELETE", url, **options)

    # ==================== Refresh ====================

    async def _refresh(self, stale_token: Optional[str], original: httpx.Response) -> str:
        """
        Return an access token that replaces ``stale_token``.

        Only one refresh runs at a time. A caller that queued behind a
        successful refresh gets its token without another exchange; one that
        queued behind a failed refresh gets the same ``SessionExpiredError``.
        """
        async with self._refresh_lock:
            current = self._store.access_token
            if current and current != stale_token:
                logger.debug("Access token already refreshed by a concurrent call")
                return current

            if self._failed_refresh is not None and self._failed_refresh[0] == stale_token:
                raise self._failed_refresh[1]

            refresh_token = self._store.refresh_token
            if not refresh_token:
                logger.info("No refresh token stored, cannot refresh")
                data = response_payload(original)
                raise AuthenticationError(
                    detail_message(data, "Authentication credentials were not accepted"),
                    status_code=original.status_code,
                    response=data,
                )

            try:
                tokens = await asyncio.wait_for(
                    self._idp.refresh(refresh_token),
                    timeout=self.refresh_timeout,
                )
            except asyncio.TimeoutError as e:
                raise self._expire(stale_token, SessionExpiredError(SESSION_EXPIRED_MESSAGE)) from e
            except AuditFlowError as e:
                error = SessionExpiredError(
                    detail_message(e.response, SESSION_EXPIRED_MESSAGE),
                    status_code=e.status_code,
                    response=e.response,
                )
                raise self._expire(stale_token, error) from e

            try:
                self._store.save_tokens(tokens)
            except CredentialStoreError as e:
                # The refresh token is spent; queued callers must not redeem it again
                error = SessionExpiredError(f"Cannot persist refreshed tokens: {e.message}")
                raise self._expire(stale_token, error) from e

            self._client.headers["Authorization"] = f"Bearer {tokens.access}"
            self._failed_refresh = None
            logger.info("Access token refreshed")
            for listener in list(self._refresh_listeners):
                listener(tokens.access)
            return tokens.access

    def _expire(self, stale_token: Optional[str], error: SessionExpiredError) -> SessionExpiredError:
        logger.error("Token refresh failed, clearing credentials: %s", error)
        try:
            self._store.clear_tokens()
        except CredentialStoreError as e:
            logger.error("Failed to clear stored tokens: %s", e)
        self._client.headers.pop("Authorization", None)
        self._failed_refresh = (stale_token, error)
        for listener in list(self._expiry_listeners):
            listener(error)
        return error

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
