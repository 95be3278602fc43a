"""
auditflow - Empanelment workflow rules.

Which role may move an audit request from which status to which, and who
may attach documents and remarks along the way. Everything here is pure:
no network, no session state. Collaborators ask ``available_actions``
before offering an action and the audit client calls
``validate_transition`` before sending one.

Example:
    from auditflow.workflow import available_actions

    for status in available_actions("Scientist_F", "Audit_Completed_by_STQC"):
        print(status.display_name)
"""

from typing import Any, Iterable, Optional, Union

from .exceptions import IllegalTransitionError, MissingCertificateError, PermissionDeniedError
from .models import AuditRequest, Document, Identity, RequestStatus, Role

RoleLike = Union[Role, str, None]
StatusLike = Union[RequestStatus, str, None]

TRANSITIONS: dict[tuple[Role, RequestStatus], frozenset[RequestStatus]] = {
    (Role.MEITY_REVIEWER, RequestStatus.SUBMITTED_BY_CSP): frozenset(
        {RequestStatus.FORWARDED_TO_STQC}
    ),
    (Role.STQC_AUDITOR, RequestStatus.FORWARDED_TO_STQC): frozenset(
        {RequestStatus.AUDIT_COMPLETED_BY_STQC}
    ),
    (Role.SCIENTIST_F, RequestStatus.AUDIT_COMPLETED_BY_STQC): frozenset(
        {RequestStatus.APPROVED_BY_SCIENTIST_F, RequestStatus.REJECTED_BY_SCIENTIST_F}
    ),
}

REMARK_ROLES = frozenset({Role.MEITY_REVIEWER, Role.STQC_AUDITOR, Role.SCIENTIST_F})

NO_ACTIONS: frozenset[RequestStatus] = frozenset()


def available_actions(role: RoleLike, status: StatusLike) -> frozenset[RequestStatus]:
    """
    Return the statuses ``role`` may move a request in ``status`` to.

    Unknown roles or statuses, and every pair not in the transition table,
    have no actions. That is an expected outcome, not an error.
    """
    parsed_role = Role.parse(role)
    parsed_status = RequestStatus.parse(status)
    if parsed_role is None or parsed_status is None:
        return NO_ACTIONS
    return TRANSITIONS.get((parsed_role, parsed_status), NO_ACTIONS)


def validate_transition(
    role: RoleLike,
    status: StatusLike,
    proposed: StatusLike,
    certificate: Optional[Any] = None,
) -> RequestStatus:
    """
    Check a requested status change before it is sent.

    Args:
        role: The acting user's role.
        status: The request's current status.
        proposed: The status the user wants to move to.
        certificate: The certificate of empanelment, required when approving
            and not allowed otherwise.

    Returns:
        The proposed status as a ``RequestStatus``.

    Raises:
        IllegalTransitionError: If the move is not in the transition table,
            or a certificate accompanies anything but an approval.
        MissingCertificateError: If an approval has no certificate.
    """
    allowed = available_actions(role, status)
    target = RequestStatus.parse(proposed)
    if target is None or target not in allowed:
        raise IllegalTransitionError(
            f"Role {_value(role)} cannot move a request from {_value(status)} to {_value(proposed)}",
            role=role,
            current=status,
            proposed=proposed,
        )

    if target == RequestStatus.APPROVED_BY_SCIENTIST_F:
        if not certificate:
            raise MissingCertificateError("A certificate of empanelment is required to approve a request")
    elif certificate:
        raise IllegalTransitionError(
            f"A certificate can only accompany {RequestStatus.APPROVED_BY_SCIENTIST_F.value}",
            role=role,
            current=status,
            proposed=proposed,
        )
    return target


def _value(item: Any) -> str:
    return getattr(item, "value", item) if item is not None else "unknown"


# ==================== Attachments ====================


def can_upload_document(identity: Optional[Identity], request: AuditRequest) -> bool:
    """A CSP may upload to its own request; an auditor only while auditing."""
    if identity is None:
        return False
    if identity.role == Role.CSP:
        return request.csp_id is not None and identity.id == request.csp_id
    if identity.role == Role.STQC_AUDITOR:
        return request.status == RequestStatus.FORWARDED_TO_STQC
    return False


def can_add_remark(role: RoleLike) -> bool:
    """Reviewers, auditors and approvers may comment at any status."""
    return Role.parse(role) in REMARK_ROLES


def can_delete_document(identity: Optional[Identity], document: Document) -> bool:
    """Only the original uploader may delete a document."""
    if identity is None or document.uploaded_by is None:
        return False
    return identity.id == document.uploaded_by.id


def require_upload_document(identity: Optional[Identity], request: AuditRequest) -> None:
    if not can_upload_document(identity, request):
        raise PermissionDeniedError(f"You cannot upload documents to request #{request.id} at its current status")


def require_add_remark(role: RoleLike) -> None:
    if not can_add_remark(role):
        raise PermissionDeniedError("You are not authorized to add remarks")


def require_delete_document(identity: Optional[Identity], document: Document) -> None:
    if not can_delete_document(identity, document):
        raise PermissionDeniedError("Only the uploader can delete this document")


# ==================== Listing ====================


def partition_for_reviewer(
    requests: Iterable[AuditRequest],
) -> tuple[list[AuditRequest], list[AuditRequest]]:
    """
    Split requests into those awaiting review and those already reviewed.

    Returns:
        ``(pending, reviewed)``: pending requests are still
        ``Submitted_by_CSP``; everything further along is reviewed.
    """
    pending: list[AuditRequest] = []
    reviewed: list[AuditRequest] = []
    for request in requests:
        if request.status == RequestStatus.SUBMITTED_BY_CSP:
            pending.append(request)
        else:
            reviewed.append(request)
    return pending, reviewed
