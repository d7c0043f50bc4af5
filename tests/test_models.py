"""Tests for the data models."""
import pytest

from tembo_auth.exceptions import ValidationRejected
from tembo_auth.models import (
    AuditEvent,
    AuditEventType,
    CredentialRecord,
    EncryptedPayload,
    RemoteIdentityClaims,
    StatusView,
    ValidationStatus,
)


@pytest.fixture
def payload():
    return EncryptedPayload(ciphertext="Y3Q=", iv="aXY=", salt="c2FsdA==")


class TestRemoteIdentityClaims:

    def test_ignores_extra_fields(self):
        claims = RemoteIdentityClaims.from_response({
            "userId": "U1", "orgId": "O1", "plan": "pro", "email": "",
        })
        assert claims == RemoteIdentityClaims(user_id="U1", org_id="O1")

    @pytest.mark.parametrize("data", [
        {},
        {"userId": "", "orgId": "O1"},
        {"userId": "U1", "orgId": ""},
        {"userId": 42, "orgId": "O1"},
        None,
        "U1",
    ])
    def test_rejects_incomplete(self, data):
        with pytest.raises(ValidationRejected):
            RemoteIdentityClaims.from_response(data)


class TestCredentialRecord:

    def test_from_payload_defaults(self, payload):
        record = CredentialRecord.from_payload("u1", payload)
        assert record.validation_status is ValidationStatus.PENDING
        assert record.registered_at == record.last_used_at
        assert record.last_validated_at is None
        assert record.claims is None
        assert record.payload == payload

    def test_repr_hides_ciphertext(self, payload):
        record = CredentialRecord.from_payload("u1", payload)
        assert "Y3Q=" not in repr(record)

    def test_status_from_record(self, payload):
        record = CredentialRecord.from_payload(
            "u1", payload,
            claims=RemoteIdentityClaims(user_id="U1", org_id="O1"),
            status=ValidationStatus.VALID,
        )
        status = StatusView.from_record(record)
        assert status.registered is True
        assert status.remote_user_id == "U1"
        assert "ciphertext" not in status.model_dump()

    def test_not_registered(self):
        assert StatusView.not_registered().model_dump(exclude_none=True) == {
            "registered": False,
        }


class TestAuditEvent:

    def test_timestamp_defaults_to_now(self):
        event = AuditEvent(identity="u1", event_type="register")
        assert event.event_type is AuditEventType.REGISTER
        assert event.timestamp > 0

    def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            AuditEvent(identity="u1", event_type="login")
