"""
auditflow - Identity provider client.

Raw calls to the token and user endpoints. These never go through the API
gateway: they either carry no credential at all or carry one the caller
supplies explicitly.
"""

import logging
from typing import Any, Optional

import httpx

from .exceptions import InvalidCredentialsError, TransportError
from .models import Identity, TokenPair
from .responses import detail_message, handle_response, response_payload

logger = logging.getLogger("auditflow.identity")

LOGIN_FAILED_MESSAGE = "Login failed. Please check your credentials."


class IdentityProvider:
    """
    Asynchronous client for the token-issuing identity endpoints.

    Example:
        ```python
        async with IdentityProvider("http://localhost:8000/api/") as idp:
            tokens = await idp.obtain_token("alice", "s3cret")
            me = await idp.fetch_identity(tokens.access)
        ```
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"Cannot reach identity provider: {e}") from e

    async def obtain_token(self, username: str, password: str) -> TokenPair:
        """
        Exchange a username and password for an access/refresh token pair.

        Raises:
            InvalidCredentialsError: If the provider rejects the credentials.
            TransportError: On any other failure.
        """
        response = await self._post("token/", {"username": username, "password": password})
        if response.status_code in (400, 401):
            data = response_payload(response)
            raise InvalidCredentialsError(
                detail_message(data, LOGIN_FAILED_MESSAGE),
                status_code=response.status_code,
                response=data,
            )
        data = handle_response(response)
        try:
            return TokenPair.from_dict(data)
        except (KeyError, TypeError) as e:
            raise TransportError("Token response is missing the access token", response=data) from e

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Mint a new access token from a refresh token."""
        response = await self._post("token/refresh/", {"refresh": refresh_token})
        data = handle_response(response)
        try:
            return TokenPair.from_dict(data)
        except (KeyError, TypeError) as e:
            raise TransportError("Refresh response is missing the access token", response=data) from e

    async def fetch_identity(self, access_token: str) -> Identity:
        """Fetch the user the given access token belongs to."""
        try:
            response = await self._client.get(
                "users/me/",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Cannot reach identity provider: {e}") from e
        data = handle_response(response)
        try:
            return Identity.from_dict(data)
        except (KeyError, TypeError) as e:
            raise TransportError("Identity response is not a user record", response=data) from e

    async def register(self, user_data: dict[str, Any]) -> dict[str, Any]:
        """Create a new account. Returns the provider's record of the user."""
        response = await self._post("users/register/", user_data)
        return handle_response(response) or {}

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "IdentityProvider":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
