"""
Tembo Auth data models.

- ``EncryptedPayload`` — output of the cipher, input of the store write path
- ``CredentialRecord`` — one stored credential per identity
- ``AuditEvent`` — append-only lifecycle event
- ``RemoteIdentityClaims`` — validated identity returned by the remote service
- ``StatusView`` — read-only projection for status display
"""
import time
from enum import Enum
from typing import Any, Optional, Mapping

from pydantic import BaseModel, Field

from .exceptions import ValidationRejected


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class ValidationStatus(str, Enum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


class AuditEventType(str, Enum):
    REGISTER = "register"
    UPDATE = "update"
    UNREGISTER = "unregister"
    VALIDATION_SUCCESS = "validation_success"
    VALIDATION_FAILURE = "validation_failure"
    AUTH_FAILURE = "auth_failure"


class EncryptedPayload(BaseModel):
    """Base64-encoded ciphertext, IV and salt of one encryption."""

    ciphertext: str
    iv: str
    salt: str

    model_config = {"frozen": True}


class RemoteIdentityClaims(BaseModel):
    """Identity claims returned by the remote ``/me`` endpoint."""

    user_id: str = Field(min_length=1)
    org_id: str = Field(min_length=1)
    email: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def from_response(cls, data: Any) -> "RemoteIdentityClaims":
        """Build claims from a loosely typed API response.

        Accepts ``userId``, ``orgId`` (or ``organizationId``) and ``email``;
        anything else is ignored.

        Raises:
            ValidationRejected: If the response is not a mapping or the
                user id / organization id are missing or empty.
        """
        if not isinstance(data, Mapping):
            raise ValidationRejected("Unexpected identity response shape")
        user_id = data.get("userId")
        org_id = data.get("orgId") or data.get("organizationId")
        email = data.get("email")
        if not isinstance(user_id, str) or not user_id:
            raise ValidationRejected("Identity response is missing a user id")
        if not isinstance(org_id, str) or not org_id:
            raise ValidationRejected(
                "Identity response is missing an organization id"
            )
        return cls(
            user_id=user_id,
            org_id=org_id,
            email=email if isinstance(email, str) and email else None,
        )


class CredentialRecord(BaseModel):
    """Encrypted credential stored for one identity."""

    identity: str
    ciphertext: str = Field(repr=False)
    iv: str = Field(repr=False)
    salt: str = Field(repr=False)
    registered_at: int = Field(default_factory=now_ms)
    last_used_at: int = Field(default_factory=now_ms)
    last_validated_at: Optional[int] = None
    validation_status: ValidationStatus = ValidationStatus.PENDING
    remote_user_id: Optional[str] = None
    remote_org_id: Optional[str] = None
    remote_email: Optional[str] = None

    @property
    def payload(self) -> EncryptedPayload:
        return EncryptedPayload(
            ciphertext=self.ciphertext, iv=self.iv, salt=self.salt
        )

    @property
    def claims(self) -> Optional[RemoteIdentityClaims]:
        if not self.remote_user_id or not self.remote_org_id:
            return None
        return RemoteIdentityClaims(
            user_id=self.remote_user_id,
            org_id=self.remote_org_id,
            email=self.remote_email,
        )

    @classmethod
    def from_payload(
        cls,
        identity: str,
        payload: EncryptedPayload,
        claims: Optional[RemoteIdentityClaims] = None,
        status: ValidationStatus = ValidationStatus.PENDING,
        validated_at: Optional[int] = None,
    ) -> "CredentialRecord":
        """Create a new record from a freshly encrypted payload."""
        now = now_ms()
        return cls(
            identity=identity,
            ciphertext=payload.ciphertext,
            iv=payload.iv,
            salt=payload.salt,
            registered_at=now,
            last_used_at=now,
            last_validated_at=validated_at,
            validation_status=status,
            remote_user_id=claims.user_id if claims else None,
            remote_org_id=claims.org_id if claims else None,
            remote_email=claims.email if claims else None,
        )


class AuditEvent(BaseModel):
    """Immutable record of a lifecycle action on a credential."""

    identity: str
    event_type: AuditEventType
    timestamp: int = Field(default_factory=now_ms)
    metadata: Optional[dict[str, Any]] = None

    model_config = {"frozen": True}


class StatusView(BaseModel):
    """Registration status of an identity, for display."""

    registered: bool
    identity: Optional[str] = None
    registered_at: Optional[int] = None
    last_used_at: Optional[int] = None
    last_validated_at: Optional[int] = None
    validation_status: Optional[ValidationStatus] = None
    remote_user_id: Optional[str] = None
    remote_org_id: Optional[str] = None
    remote_email: Optional[str] = None

    @classmethod
    def not_registered(cls) -> "StatusView":
        return cls(registered=False)

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "StatusView":
        return cls(
            registered=True,
            identity=record.identity,
            registered_at=record.registered_at,
            last_used_at=record.last_used_at,
            last_validated_at=record.last_validated_at,
            validation_status=record.validation_status,
            remote_user_id=record.remote_user_id,
            remote_org_id=record.remote_org_id,
            remote_email=record.remote_email,
        )
