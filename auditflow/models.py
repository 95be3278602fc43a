"""
auditflow - Data models for the audit-request tracker API.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    """Role of a user in the empanelment workflow."""

    CSP = "CSP"
    MEITY_REVIEWER = "MeitY_Reviewer"
    STQC_AUDITOR = "STQC_Auditor"
    SCIENTIST_F = "Scientist_F"

    @property
    def display_name(self) -> str:
        return _ROLE_DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Return the matching role, or None for an unknown value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


_ROLE_DISPLAY_NAMES = {
    Role.CSP: "Cloud Service Provider",
    Role.MEITY_REVIEWER: "MeitY Reviewer",
    Role.STQC_AUDITOR: "STQC Auditor",
    Role.SCIENTIST_F: "Scientist F",
}


class RequestStatus(str, Enum):
    """Status of an audit request, declared in order of progress."""

    SUBMITTED_BY_CSP = "Submitted_by_CSP"
    FORWARDED_TO_STQC = "Forwarded_to_STQC"
    AUDIT_COMPLETED_BY_STQC = "Audit_Completed_by_STQC"
    APPROVED_BY_SCIENTIST_F = "Approved_by_ScientistF"
    REJECTED_BY_SCIENTIST_F = "Rejected_by_ScientistF"

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY_NAMES[self]

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.APPROVED_BY_SCIENTIST_F, RequestStatus.REJECTED_BY_SCIENTIST_F)

    @property
    def progress(self) -> int:
        """Position along the workflow; both terminal statuses share the last step."""
        return min(list(RequestStatus).index(self), 3)

    @classmethod
    def parse(cls, value: Any) -> Optional["RequestStatus"]:
        """Return the matching status, or None for an unknown value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


_STATUS_DISPLAY_NAMES = {
    RequestStatus.SUBMITTED_BY_CSP: "Submitted by CSP",
    RequestStatus.FORWARDED_TO_STQC: "Forwarded to STQC for Audit",
    RequestStatus.AUDIT_COMPLETED_BY_STQC: "Audit Completed by STQC",
    RequestStatus.APPROVED_BY_SCIENTIST_F: "Approved by Scientist F",
    RequestStatus.REJECTED_BY_SCIENTIST_F: "Rejected by Scientist F",
}


class SessionState(str, Enum):
    """Authentication state of a session."""

    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    # Django REST framework emits a trailing "Z" for UTC
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Identity:
    """
    A user as reported by the identity endpoint.

    The same shape is embedded in requests, documents and remarks as a
    summary of the owning user, where role and email may be missing.
    """

    id: int
    username: str
    role: Optional[Role] = None
    email: Optional[str] = None
    organization: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "username": self.username}
        if self.role:
            result["role"] = self.role.value
        if self.email:
            result["email"] = self.email
        if self.organization:
            result["organization"] = self.organization
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Identity":
        return cls(
            id=data["id"],
            username=data.get("username", ""),
            role=Role.parse(data.get("role")),
            email=data.get("email"),
            organization=data.get("organization"),
        )


@dataclass
class TokenPair:
    """Access token and, when issued, the refresh token that mints new ones."""

    access: str
    refresh: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenPair":
        return cls(access=data["access"], refresh=data.get("refresh"))


@dataclass
class LoginResult:
    """Outcome of a login or registration attempt."""

    success: bool
    identity: Optional[Identity] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, identity: Identity) -> "LoginResult":
        return cls(success=True, identity=identity)

    @classmethod
    def failed(cls, reason: str) -> "LoginResult":
        return cls(success=False, reason=reason)


@dataclass
class Document:
    """A file attached to an audit request."""

    id: int
    document_type: str
    description: str = ""
    file_url: Optional[str] = None
    uploaded_by: Optional[Identity] = None
    upload_date: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "description": self.description,
            "file_url": self.file_url,
            "uploaded_by": self.uploaded_by.to_dict() if self.uploaded_by else None,
            "upload_date": self.upload_date.isoformat() if self.upload_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        uploader = data.get("uploaded_by")
        return cls(
            id=data["id"],
            document_type=data.get("document_type", ""),
            description=data.get("description") or "",
            file_url=data.get("file_url") or data.get("file"),
            uploaded_by=Identity.from_dict(uploader) if isinstance(uploader, dict) else None,
            upload_date=_parse_datetime(data.get("upload_date")),
        )


@dataclass
class Remark:
    """A reviewer comment on an audit request."""

    id: int
    comment: str
    author: Optional[Identity] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "comment": self.comment,
            "author": self.author.to_dict() if self.author else None,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Remark":
        author = data.get("author")
        return cls(
            id=data["id"],
            comment=data.get("comment", ""),
            author=Identity.from_dict(author) if isinstance(author, dict) else None,
            timestamp=_parse_datetime(data.get("timestamp")),
        )


@dataclass
class AuditRequest:
    """
    An empanelment request submitted by a CSP.

    The backing store owns these records. The client only reads them and
    validates status transitions before asking the store to apply them.
    """

    id: int
    csp_id: Optional[int]
    service_provider_name: str
    data_center_location: str
    status: RequestStatus
    description: str = ""
    certificate_of_empanelment: Optional[str] = None
    request_date: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    csp: Optional[Identity] = None
    documents: list[Document] = field(default_factory=list)
    remarks: list[Remark] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_valid_certificate_state(self) -> bool:
        """A certificate may only be present on an approved request."""
        if self.certificate_of_empanelment:
            return self.status == RequestStatus.APPROVED_BY_SCIENTIST_F
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "csp_id": self.csp_id,
            "service_provider_name": self.service_provider_name,
            "data_center_location": self.data_center_location,
            "description": self.description,
            "status": self.status.value,
            "certificate_of_empanelment": self.certificate_of_empanelment,
            "request_date": self.request_date.isoformat() if self.request_date else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "csp": self.csp.to_dict() if self.csp else None,
            "documents": [d.to_dict() for d in self.documents],
            "remarks": [r.to_dict() for r in self.remarks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditRequest":
        # The list endpoint returns the CSP as an id, the detail endpoint nests it
        csp_data = data.get("csp")
        csp = Identity.from_dict(csp_data) if isinstance(csp_data, dict) else None
        csp_id = data.get("csp_id")
        if csp_id is None:
            csp_id = csp.id if csp else csp_data
        return cls(
            id=data["id"],
            csp_id=csp_id,
            service_provider_name=data.get("service_provider_name", ""),
            data_center_location=data.get("data_center_location", ""),
            status=RequestStatus(data["status"]),
            description=data.get("description") or "",
            certificate_of_empanelment=data.get("certificate_of_empanelment"),
            request_date=_parse_datetime(data.get("request_date")),
            last_updated=_parse_datetime(data.get("last_updated")),
            csp=csp,
            documents=[Document.from_dict(d) for d in data.get("documents", [])],
            remarks=[Remark.from_dict(r) for r in data.get("remarks", [])],
        )
