"""
auditflow - Session management.

A ``SessionManager`` is the single source of truth for who is logged in.
It is created once per client and handed to whatever needs the current
identity; nothing reads authentication state from module globals.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .credentials import CredentialStore
from .exceptions import AuditFlowError, CredentialStoreError, TokenDecodeError
from .identity import LOGIN_FAILED_MESSAGE, IdentityProvider
from .models import Identity, LoginResult, SessionState
from .responses import detail_message, field_errors
from .tokens import token_expiry

logger = logging.getLogger("auditflow.session")

REGISTRATION_FAILED_MESSAGE = "Registration failed. Please try again."

SessionListener = Callable[[SessionState, Optional[Identity]], None]


def registration_failure_reason(payload: Any) -> str:
    """Build a user-facing message from a failed registration response."""
    if payload is None:
        return REGISTRATION_FAILED_MESSAGE
    reason = field_errors(payload, ("username", "email", "password"))
    if reason:
        return reason
    if isinstance(payload, str):
        return payload
    return json.dumps(payload)


class SessionManager:
    """
    Owns authentication state: restore, login, registration and logout.

    The session starts in ``LOADING`` and leaves it exactly once, when
    ``restore()`` resolves. ``wait_ready()`` lets collaborators block until
    then. Token refresh is not handled here; the API gateway reports refreshes
    and refresh failures through ``token_refreshed`` and ``session_expired``.

    Example:
        ```python
        session = SessionManager(store, identity_provider)
        await session.restore()
        if not session.is_authenticated:
            result = await session.login("alice", "s3cret")
            if not result.success:
                print(result.reason)
        ```
    """

    def __init__(self, store: CredentialStore, identity_provider: IdentityProvider):
        self._store = store
        self._idp = identity_provider
        self._state = SessionState.LOADING
        self._identity: Optional[Identity] = None
        self._expires_at: Optional[datetime] = None
        self._ready = asyncio.Event()
        self._listeners: list[SessionListener] = []

    # ==================== State ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED and self._identity is not None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        """Wait until the initial ``restore()`` has resolved."""
        await self._ready.wait()

    def add_listener(self, listener: SessionListener) -> None:
        """Register a callback invoked with the new state on every transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state, self._identity)
            except Exception:
                logger.exception("Session listener failed")

    def _set_authenticated(self, identity: Identity, access_token: str) -> None:
        self._identity = identity
        self._expires_at = self._expiry_or_none(access_token)
        self._state = SessionState.AUTHENTICATED
        logger.info(
            "Session authenticated as %s (role %s)",
            identity.username,
            identity.role.value if identity.role else "unknown",
        )
        self._notify()

    def _set_unauthenticated(self) -> None:
        changed = self._state != SessionState.UNAUTHENTICATED
        self._identity = None
        self._expires_at = None
        self._state = SessionState.UNAUTHENTICATED
        if changed:
            self._notify()

    @staticmethod
    def _expiry_or_none(access_token: str) -> Optional[datetime]:
        try:
            return token_expiry(access_token)
        except TokenDecodeError:
            logger.warning("Issued access token carries no readable expiry")
            return None

    def _clear_tokens_quietly(self) -> None:
        try:
            self._store.clear_tokens()
        except CredentialStoreError as e:
            logger.error("Failed to clear stored tokens: %s", e)

    # ==================== Operations ====================

    async def restore(self) -> SessionState:
        """
        Resume a persisted session, if there is a usable one.

        Never raises. Missing, corrupt or expired tokens leave the session
        unauthenticated; expired or corrupt ones are also removed from the
        store. A valid token is confirmed with an identity lookup, and a
        failed lookup clears the stored tokens as well.
        """
        logger.debug("Restoring session from credential store")
        try:
            try:
                token = self._store.access_token
            except CredentialStoreError as e:
                logger.error("Cannot read credential store: %s", e)
                token = None

            if not token:
                logger.info("No stored access token, session is unauthenticated")
                self._set_unauthenticated()
                return self._state

            try:
                expires_at = token_expiry(token)
            except TokenDecodeError:
                logger.warning("Stored access token is unreadable, clearing credentials")
                self._clear_tokens_quietly()
                self._set_unauthenticated()
                return self._state

            if expires_at <= datetime.now(timezone.utc):
                logger.info("Stored access token expired at %s, clearing credentials", expires_at)
                self._clear_tokens_quietly()
                self._set_unauthenticated()
                return self._state

            try:
                identity = await self._idp.fetch_identity(token)
            except AuditFlowError as e:
                logger.warning("Identity lookup failed during restore: %s", e)
                self._clear_tokens_quietly()
                self._set_unauthenticated()
                return self._state

            self._set_authenticated(identity, token)
            return self._state
        finally:
            self._ready.set()
            logger.debug("Session restore finished in state %s", self._state.value)

    async def login(self, username: str, password: str) -> LoginResult:
        """
        Log in with a username and password.

        Returns:
            A successful ``LoginResult`` carrying the identity, or a failed
            one whose ``reason`` comes from the provider's ``detail`` field
            when it has one.
        """
        logger.info("Attempting login for user %s", username)
        try:
            tokens = await self._idp.obtain_token(username, password)
        except AuditFlowError as e:
            logger.warning("Login failed for user %s: %s", username, e)
            return LoginResult.failed(detail_message(e.response, LOGIN_FAILED_MESSAGE))

        try:
            self._store.save_tokens(tokens)
            identity = await self._idp.fetch_identity(tokens.access)
        except AuditFlowError as e:
            logger.warning("Login for user %s could not complete: %s", username, e)
            self._clear_tokens_quietly()
            self._set_unauthenticated()
            return LoginResult.failed(detail_message(e.response, LOGIN_FAILED_MESSAGE))

        self._set_authenticated(identity, tokens.access)
        return LoginResult.ok(identity)

    async def register(self, user_data: dict[str, Any]) -> LoginResult:
        """
        Create an account and log straight into it.

        The result is exactly the result of the follow-up login, so a
        registration that succeeds followed by a failed login reports the
        login failure.
        """
        username = user_data.get("username", "")
        logger.info("Attempting registration for user %s", username)
        try:
            await self._idp.register(user_data)
        except AuditFlowError as e:
            logger.warning("Registration failed for user %s: %s", username, e)
            return LoginResult.failed(registration_failure_reason(e.response))

        return await self.login(username, user_data.get("password", ""))

    async def logout(self) -> None:
        """Forget the stored tokens and the current identity."""
        self._clear_tokens_quietly()
        self._set_unauthenticated()
        logger.info("Logged out")

    # ==================== Gateway callbacks ====================

    def token_refreshed(self, access_token: str) -> None:
        """Record the expiry of an access token minted by a refresh."""
        self._expires_at = self._expiry_or_none(access_token)

    def session_expired(self, error: Exception) -> None:
        """Drop to unauthenticated after the gateway failed to refresh."""
        logger.warning("Session expired: %s", error)
        self._set_unauthenticated()
