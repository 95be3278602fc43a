"""
Shared fixtures: an in-process fake of the tracker backend.

The fake speaks the same HTTP API as the real service through
``httpx.MockTransport``, so the client, gateway and session are exercised
end to end without a network.
"""

import asyncio
import itertools
import json
import re
import time
from typing import Any, Optional

import httpx
import jwt
import pytest

from auditflow.client import AuditClient
from auditflow.credentials import MemoryCredentialStore
from auditflow.identity import IdentityProvider

BASE_URL = "http://testserver/api/"
SIGNING_KEY = "test-signing-key"

_token_ids = itertools.count(1)


def make_token(username: str = "alice", expires_in: int = 300, **claims: Any) -> str:
    """Mint a JWT the way the identity provider would."""
    payload = {
        "sub": username,
        "exp": int(time.time()) + expires_in,
        "jti": str(next(_token_ids)),
        **claims,
    }
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


USERS = {
    "csp": {"password": "csp-pass", "id": 1, "role": "CSP", "organization": "CloudCo"},
    "reviewer": {"password": "rev-pass", "id": 2, "role": "MeitY_Reviewer", "organization": "MeitY"},
    "auditor": {"password": "aud-pass", "id": 3, "role": "STQC_Auditor", "organization": "STQC"},
    "scientist": {"password": "sci-pass", "id": 4, "role": "Scientist_F", "organization": "MeitY"},
}


class FakeBackend:
    """Identity provider plus audit-management endpoints, held in memory."""

    def __init__(self) -> None:
        self.users = {name: dict(info) for name, info in USERS.items()}
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.requests: dict[int, dict[str, Any]] = {}
        self.ids = itertools.count(100)
        self.log: list[httpx.Request] = []
        self.refresh_calls = 0
        self.refresh_delay = 0.0
        self.protected_delay = 0.0
        self.fail_refresh = False
        self.identity_down = False
        self.last_body: Optional[bytes] = None

    # ----- helpers for tests -----

    def issue(self, username: str) -> tuple[str, str]:
        access = make_token(username)
        refresh = make_token(username, expires_in=86400, token_type="refresh")
        self.access_tokens[access] = username
        self.refresh_tokens[refresh] = username
        return access, refresh

    def revoke_access_tokens(self) -> None:
        """Make every issued access token stale on the server side."""
        self.access_tokens.clear()

    def add_request(self, status: str = "Submitted_by_CSP", csp_id: int = 1, **extra: Any) -> dict[str, Any]:
        request_id = next(self.ids)
        record = {
            "id": request_id,
            "csp": {"id": csp_id, "username": "csp", "organization": "CloudCo"},
            "service_provider_name": "CloudCo",
            "data_center_location": "Pune",
            "description": "Tier III facility",
            "status": status,
            "certificate_of_empanelment": None,
            "request_date": "2026-01-10T09:30:00Z",
            "last_updated": "2026-01-11T10:00:00Z",
            "documents": [],
            "remarks": [],
        }
        record.update(extra)
        self.requests[request_id] = record
        return record

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.log]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ----- request handling -----

    def _user_for(self, request: httpx.Request) -> Optional[dict[str, Any]]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        username = self.access_tokens.get(header[len("Bearer "):])
        if username is None:
            return None
        return {"username": username, **self.users[username]}

    @staticmethod
    def _identity(user: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": user["id"],
            "username": user["username"],
            "email": f"{user['username']}@example.com",
            "role": user["role"],
            "organization": user["organization"],
        }

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.log.append(request)
        path = request.url.path[len("/api/"):]

        if path == "token/" and request.method == "POST":
            body = json.loads(request.content)
            user = self.users.get(body.get("username"))
            if user is None or user["password"] != body.get("password"):
                return httpx.Response(401, json={"detail": "No active account found with the given credentials"})
            access, refresh = self.issue(body["username"])
            return httpx.Response(200, json={"access": access, "refresh": refresh})

        if path == "token/refresh/" and request.method == "POST":
            self.refresh_calls += 1
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            body = json.loads(request.content)
            # Refresh tokens are single use
            username = self.refresh_tokens.pop(body.get("refresh"), None)
            if self.fail_refresh or username is None:
                return httpx.Response(
                    401, json={"detail": "Token is invalid or expired", "code": "token_not_valid"}
                )
            access, refresh = self.issue(username)
            return httpx.Response(200, json={"access": access, "refresh": refresh})

        if path == "users/register/" and request.method == "POST":
            body = json.loads(request.content)
            if body["username"] in self.users:
                return httpx.Response(400, json={"username": ["A user with that username already exists."]})
            self.users[body["username"]] = {
                "password": body["password"],
                "id": next(self.ids),
                "role": body["role"],
                "organization": body.get("organization", ""),
            }
            return httpx.Response(201, json={"username": body["username"], "role": body["role"]})

        if path == "users/me/" and request.method == "GET":
            if self.identity_down:
                return httpx.Response(503, json={"detail": "Service unavailable"})
            user = self._user_for(request)
            if user is None:
                return httpx.Response(401, json={"detail": "Given token not valid for any token type"})
            return httpx.Response(200, json=self._identity(user))

        if path.startswith("audit-management/"):
            if self.protected_delay:
                await asyncio.sleep(self.protected_delay)
            user = self._user_for(request)
            if user is None:
                return httpx.Response(401, json={"detail": "Given token not valid for any token type"})
            return self._audit_management(request, path[len("audit-management/"):], user)

        return httpx.Response(404, json={"detail": "Not found."})

    def _audit_management(self, request: httpx.Request, path: str, user: dict[str, Any]) -> httpx.Response:
        self.last_body = request.content

        if path == "requests/" and request.method == "GET":
            return httpx.Response(200, json=list(self.requests.values()))

        if path == "requests/" and request.method == "POST":
            body = json.loads(request.content)
            record = self.add_request(
                csp_id=user["id"],
                service_provider_name=body["service_provider_name"],
                data_center_location=body["data_center_location"],
                description=body.get("description", ""),
            )
            return httpx.Response(201, json=record)

        if path == "documents/" and request.method == "POST":
            doc = {"id": next(self.ids), "document_type": "uploaded", "uploaded_by": self._identity(user)}
            return httpx.Response(201, json=doc)

        match = re.fullmatch(r"documents/(\d+)/delete/", path)
        if match and request.method == "DELETE":
            return httpx.Response(204)

        match = re.fullmatch(r"requests/(\d+)/(.*)", path)
        if not match or int(match.group(1)) not in self.requests:
            return httpx.Response(404, json={"detail": "Not found."})
        record = self.requests[int(match.group(1))]
        action = match.group(2)

        if action == "" and request.method == "GET":
            return httpx.Response(200, json=record)

        if action == "status-update/" and request.method == "PATCH":
            if request.headers.get("content-type", "").startswith("application/json"):
                status = json.loads(request.content)["status"]
            else:
                status = re.search(rb'name="status"\r\n\r\n([A-Za-z_]+)', request.content).group(1).decode()
                record["certificate_of_empanelment"] = "http://testserver/media/certificates/cert.pdf"
            record["status"] = status
            return httpx.Response(200, json={"status": status})

        if action == "documents/upload/" and request.method == "POST":
            doc_type = re.search(rb'name="document_type"\r\n\r\n([^\r]*)', request.content).group(1).decode()
            doc = {
                "id": next(self.ids),
                "document_type": doc_type,
                "description": "",
                "file_url": "http://testserver/media/docs/file.pdf",
                "uploaded_by": self._identity(user),
                "upload_date": "2026-02-01T12:00:00Z",
            }
            record["documents"].append(doc)
            return httpx.Response(201, json=doc)

        if action == "remarks/add/" and request.method == "POST":
            remark = {
                "id": next(self.ids),
                "comment": json.loads(request.content)["comment"],
                "author": self._identity(user),
                "timestamp": "2026-02-02T08:00:00Z",
            }
            record["remarks"].append(remark)
            return httpx.Response(201, json=remark)

        return httpx.Response(405, json={"detail": f'Method "{request.method}" not allowed.'})


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def client(backend: FakeBackend, store: MemoryCredentialStore) -> AuditClient:
    return AuditClient(BASE_URL, store, refresh_timeout=2.0, transport=backend.transport())


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def identity_provider(backend: FakeBackend) -> IdentityProvider:
    return IdentityProvider(BASE_URL, transport=backend.transport())
