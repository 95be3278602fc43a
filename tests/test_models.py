"""
Tests for auditflow data models.
"""

from datetime import datetime, timezone

import pytest

from auditflow.models import (
    AuditRequest,
    Document,
    Identity,
    LoginResult,
    Remark,
    RequestStatus,
    Role,
    TokenPair,
)


class TestRole:
    def test_values(self):
        assert Role.CSP.value == "CSP"
        assert Role.MEITY_REVIEWER.value == "MeitY_Reviewer"
        assert Role.STQC_AUDITOR.value == "STQC_Auditor"
        assert Role.SCIENTIST_F.value == "Scientist_F"

    def test_display_names(self):
        assert Role.CSP.display_name == "Cloud Service Provider"
        assert Role.SCIENTIST_F.display_name == "Scientist F"

    def test_parse_unknown_is_none(self):
        assert Role.parse("ScientistF") is None
        assert Role.parse(None) is None

    def test_parse_known(self):
        assert Role.parse("STQC_Auditor") is Role.STQC_AUDITOR
        assert Role.parse(Role.CSP) is Role.CSP


class TestRequestStatus:
    def test_progress_order(self):
        progress = [s.progress for s in RequestStatus]
        assert progress == [0, 1, 2, 3, 3]

    def test_terminal(self):
        assert RequestStatus.APPROVED_BY_SCIENTIST_F.is_terminal
        assert RequestStatus.REJECTED_BY_SCIENTIST_F.is_terminal
        assert not RequestStatus.AUDIT_COMPLETED_BY_STQC.is_terminal

    def test_display_name(self):
        assert RequestStatus.FORWARDED_TO_STQC.display_name == "Forwarded to STQC for Audit"

    def test_parse(self):
        assert RequestStatus.parse("Forwarded_to_STQC") is RequestStatus.FORWARDED_TO_STQC
        assert RequestStatus.parse("forwarded") is None


class TestIdentity:
    def test_from_dict(self):
        identity = Identity.from_dict(
            {"id": 4, "username": "sci", "role": "Scientist_F", "email": "s@example.com", "organization": "MeitY"}
        )
        assert identity.role is Role.SCIENTIST_F
        assert identity.organization == "MeitY"

    def test_unknown_role_kept_as_none(self):
        identity = Identity.from_dict({"id": 4, "username": "sci", "role": "ScientistF"})
        assert identity.role is None

    def test_to_dict_omits_missing(self):
        assert Identity(id=1, username="csp").to_dict() == {"id": 1, "username": "csp"}


class TestTokenPair:
    def test_refresh_optional(self):
        pair = TokenPair.from_dict({"access": "a"})
        assert pair.access == "a"
        assert pair.refresh is None

    def test_missing_access_raises(self):
        with pytest.raises(KeyError):
            TokenPair.from_dict({"refresh": "r"})


class TestLoginResult:
    def test_ok(self):
        identity = Identity(id=1, username="csp", role=Role.CSP)
        result = LoginResult.ok(identity)
        assert result.success
        assert result.identity is identity
        assert result.reason is None

    def test_failed(self):
        result = LoginResult.failed("No active account")
        assert not result.success
        assert result.reason == "No active account"


class TestAuditRequest:
    DETAIL = {
        "id": 12,
        "csp": {"id": 1, "username": "csp", "organization": "CloudCo"},
        "service_provider_name": "CloudCo",
        "data_center_location": "Pune",
        "description": None,
        "status": "Approved_by_ScientistF",
        "certificate_of_empanelment": "http://testserver/media/cert.pdf",
        "request_date": "2026-01-10T09:30:00Z",
        "last_updated": "2026-01-11T10:00:00.123456Z",
        "documents": [
            {
                "id": 3,
                "document_type": "ISO 27001",
                "description": "",
                "file_url": "http://testserver/media/iso.pdf",
                "uploaded_by": {"id": 1, "username": "csp", "role": "CSP"},
                "upload_date": "2026-01-10T09:31:00Z",
            }
        ],
        "remarks": [
            {
                "id": 5,
                "comment": "Looks complete",
                "author": {"id": 2, "username": "reviewer", "role": "MeitY_Reviewer"},
                "timestamp": "2026-01-10T11:00:00Z",
            }
        ],
    }

    def test_from_detail(self):
        request = AuditRequest.from_dict(self.DETAIL)
        assert request.csp_id == 1
        assert request.csp.username == "csp"
        assert request.description == ""
        assert request.status is RequestStatus.APPROVED_BY_SCIENTIST_F
        assert request.request_date == datetime(2026, 1, 10, 9, 30, tzinfo=timezone.utc)
        assert isinstance(request.documents[0], Document)
        assert request.documents[0].uploaded_by.role is Role.CSP
        assert isinstance(request.remarks[0], Remark)
        assert request.remarks[0].author.username == "reviewer"

    def test_list_item_with_plain_csp_id(self):
        request = AuditRequest.from_dict(
            {
                "id": 3,
                "csp": 9,
                "service_provider_name": "X",
                "data_center_location": "Y",
                "status": "Submitted_by_CSP",
            }
        )
        assert request.csp_id == 9
        assert request.csp is None
        assert request.documents == []

    def test_certificate_state(self):
        request = AuditRequest.from_dict(self.DETAIL)
        assert request.has_valid_certificate_state
        request.status = RequestStatus.REJECTED_BY_SCIENTIST_F
        assert not request.has_valid_certificate_state
        request.certificate_of_empanelment = None
        assert request.has_valid_certificate_state

    def test_to_dict_round_trip_keeps_nested(self):
        request = AuditRequest.from_dict(self.DETAIL)
        again = AuditRequest.from_dict(request.to_dict())
        assert again == request

    def test_unknown_status_raises(self):
        data = dict(self.DETAIL, status="Archived")
        with pytest.raises(ValueError):
            AuditRequest.from_dict(data)
