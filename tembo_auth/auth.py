"""
AuthService — Registration, authentication and unregistration of Tembo API keys.

Ties together the remote validator, the envelope cipher and the credential
store:

- ``register(identity, credential)`` — validate remotely, encrypt, upsert
- ``authenticate(identity)`` — decrypt, revalidate, return a bound client
- ``unregister(identity)`` — hard delete
- ``is_registered(identity)`` / ``get_status(identity)`` — store passthroughs

Validation status transitions:
    pending → valid      (registration validated)
    valid   → invalid    (authentication-time rejection)
    invalid → valid      (only through a new ``register``)

A remote outage never invalidates a stored credential.

Security Note:
    Plaintext credentials are never logged, never returned in a result
    and never written to audit metadata.
"""
import logging
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .client import CredentialValidator, TemboClient, TemboValidator
from .exceptions import (
    DecryptionError,
    StorageError,
    ValidationRejected,
    ValidationUnavailable,
)
from .models import (
    AuditEvent,
    AuditEventType,
    CredentialRecord,
    RemoteIdentityClaims,
    StatusView,
    ValidationStatus,
    now_ms,
)
from .vault.config import VaultConfig
from .vault.crypto import EnvelopeCipher
from .vault.store import CredentialStore

logger = logging.getLogger("tembo.auth")

# User-facing messages
MSG_REJECTED = (
    "Invalid API key. Please check your key and try again. Make sure you "
    "copied the entire key from the Tembo dashboard."
)
MSG_UNAVAILABLE = (
    "Could not reach Tembo to validate your API key. Please try again later."
)
MSG_ENCRYPTION = (
    "Failed to encrypt your API key. Please try again or contact support."
)
MSG_STORAGE = (
    "An unexpected error occurred while saving your API key. Please try again."
)
MSG_UNREADABLE = "credential unreadable, re-registration required"
MSG_AUTH_REJECTED = (
    "Your API key is invalid or expired. Please update it using /setup."
)
MSG_AUTH_UNAVAILABLE = (
    "Failed to validate your API key. Please try again in a moment."
)
MSG_AUTH_STORAGE = "An unexpected error occurred during authentication."


class RegisterFailure(str, Enum):
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"
    ENCRYPTION_ERROR = "encryption_error"
    STORAGE_ERROR = "storage_error"


class AuthOutcome(str, Enum):
    AUTHENTICATED = "authenticated"
    NOT_REGISTERED = "not_registered"
    FAILED = "failed"


class AuthFailure(str, Enum):
    UNREADABLE = "unreadable"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"
    STORAGE_ERROR = "storage_error"


class RegisterResult(BaseModel):
    """Outcome of ``AuthService.register``."""

    success: bool
    claims: Optional[RemoteIdentityClaims] = None
    updated: bool = False
    reason: Optional[RegisterFailure] = None
    message: Optional[str] = None

    @classmethod
    def failed(cls, reason: RegisterFailure, message: str) -> "RegisterResult":
        return cls(success=False, reason=reason, message=message)


class AuthResult(BaseModel):
    """Outcome of ``AuthService.authenticate``.

    ``client`` is set only when ``outcome`` is ``authenticated``;
    ``reason`` and ``message`` only when it is ``failed``.
    """

    outcome: AuthOutcome
    client: Optional[Any] = None
    reason: Optional[AuthFailure] = None
    message: Optional[str] = None

    model_config = {"arbitrary_types_allowed": True}

    @property
    def authenticated(self) -> bool:
        return self.outcome is AuthOutcome.AUTHENTICATED

    @property
    def requires_onboarding(self) -> bool:
        return self.outcome is AuthOutcome.NOT_REGISTERED

    @classmethod
    def failed(cls, reason: AuthFailure, message: str) -> "AuthResult":
        return cls(outcome=AuthOutcome.FAILED, reason=reason, message=message)


class AuthService:
    """Authentication orchestrator.

    Args:
        store: Credential record store.
        cipher: Envelope cipher holding the master secret.
        validator: Remote validation capability.
        client_factory: Builds the API client handed back on successful
            authentication. Defaults to the validator's ``client_for``
            when it has one, otherwise ``TemboClient``.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: EnvelopeCipher,
        validator: CredentialValidator,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self._store = store
        self._cipher = cipher
        self._validator = validator
        self._client_factory = (
            client_factory
            or getattr(validator, "client_for", None)
            or TemboClient
        )

    @classmethod
    def from_env(cls, db_pool: Any) -> "AuthService":
        """Build a service from environment settings over ``db_pool``.

        Raises:
            ConfigurationError: If the master key settings are invalid.
        """
        config = VaultConfig.from_env()
        return cls(
            store=CredentialStore(db_pool),
            cipher=EnvelopeCipher.from_config(config),
            validator=TemboValidator(),
        )

    async def _audit(
        self,
        identity: str,
        event_type: AuditEventType,
        **metadata: Any,
    ) -> None:
        await self._store.append_audit_event(
            AuditEvent(
                identity=identity,
                event_type=event_type,
                metadata=metadata or None,
            )
        )

    async def _validate(self, credential: str) -> RemoteIdentityClaims:
        """Run the validator and normalize what it returns.

        Raises:
            ValidationRejected: If the key is refused or the returned
                identity is incomplete.
            ValidationUnavailable: On any other validator failure.
        """
        try:
            claims = await self._validator.validate(credential)
        except (ValidationRejected, ValidationUnavailable):
            raise
        except Exception as err:
            logger.error(
                "Validator failed unexpectedly: error=%s", type(err).__name__,
            )
            raise ValidationUnavailable("Validation failed") from err
        if not isinstance(claims, RemoteIdentityClaims):
            claims = RemoteIdentityClaims.from_response(claims)
        return claims

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(self, identity: str, credential: str) -> RegisterResult:
        """Validate, encrypt and store an API key for ``identity``.

        Storage is untouched unless the remote service accepts the key and
        returns a usable identity.
        """
        if not credential or not credential.strip():
            logger.warning("Empty API key submitted: identity=%s", identity)
            return RegisterResult.failed(RegisterFailure.REJECTED, MSG_REJECTED)
        credential = credential.strip()

        # 1. validate against the remote service
        try:
            claims = await self._validate(credential)
        except ValidationRejected as err:
            logger.warning(
                "API key validation rejected: identity=%s status=%s",
                identity, err.status_code,
            )
            return RegisterResult.failed(RegisterFailure.REJECTED, MSG_REJECTED)
        except ValidationUnavailable as err:
            logger.error(
                "API key validation unavailable: identity=%s status=%s",
                identity, err.status_code,
            )
            return RegisterResult.failed(
                RegisterFailure.UNAVAILABLE, MSG_UNAVAILABLE
            )
        logger.info(
            "API key validated: identity=%s tembo_user=%s",
            identity, claims.user_id,
        )

        # 2. encrypt bound to the identity
        try:
            payload = self._cipher.encrypt(credential, identity)
        except Exception as err:
            logger.error(
                "Failed to encrypt API key: identity=%s error=%s",
                identity, type(err).__name__,
            )
            return RegisterResult.failed(
                RegisterFailure.ENCRYPTION_ERROR, MSG_ENCRYPTION
            )

        # 3. update or insert
        try:
            existing = await self._store.get_record(identity)
            updated = False
            if existing is not None:
                # false when the row was deleted after the read
                updated = await self._store.update_ciphertext(identity, payload)
            if updated:
                await self._store.update_validation_status(
                    identity, ValidationStatus.VALID, claims,
                )
                event_type = AuditEventType.UPDATE
            else:
                await self._store.insert_record(
                    CredentialRecord.from_payload(
                        identity,
                        payload,
                        claims=claims,
                        status=ValidationStatus.VALID,
                        validated_at=now_ms(),
                    )
                )
                event_type = AuditEventType.REGISTER
        except StorageError:
            logger.error("Failed to store API key: identity=%s", identity)
            return RegisterResult.failed(
                RegisterFailure.STORAGE_ERROR, MSG_STORAGE
            )

        await self._audit(
            identity, AuditEventType.VALIDATION_SUCCESS,
            tembo_user_id=claims.user_id,
        )
        await self._audit(identity, event_type, tembo_user_id=claims.user_id)
        logger.info(
            "API key %s: identity=%s",
            "updated" if updated else "registered", identity,
        )
        return RegisterResult(success=True, claims=claims, updated=updated)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def authenticate(self, identity: str) -> AuthResult:
        """Decrypt and revalidate the stored API key of ``identity``.

        Returns:
            ``authenticated`` with a client bound to the key,
            ``not_registered`` when there is no record, or ``failed``
            with a reason and a user-facing message.
        """
        try:
            record = await self._store.get_record(identity)
        except StorageError:
            return AuthResult.failed(AuthFailure.STORAGE_ERROR, MSG_AUTH_STORAGE)
        if record is None:
            logger.info("User not registered: identity=%s", identity)
            return AuthResult(outcome=AuthOutcome.NOT_REGISTERED)

        try:
            credential = self._cipher.decrypt(record.payload, identity)
        except DecryptionError:
            logger.error("Failed to decrypt API key: identity=%s", identity)
            await self._audit(
                identity, AuditEventType.AUTH_FAILURE,
                reason="decryption_failed",
            )
            return AuthResult.failed(AuthFailure.UNREADABLE, MSG_UNREADABLE)

        # every authentication revalidates; keys can be revoked upstream
        try:
            await self._validate(credential)
        except ValidationRejected:
            logger.warning("Stored API key rejected: identity=%s", identity)
            try:
                await self._store.update_validation_status(
                    identity, ValidationStatus.INVALID,
                )
            except StorageError:
                logger.error(
                    "Could not mark API key invalid: identity=%s", identity,
                )
            await self._audit(
                identity, AuditEventType.AUTH_FAILURE,
                reason="invalid_api_key",
            )
            return AuthResult.failed(AuthFailure.REJECTED, MSG_AUTH_REJECTED)
        except ValidationUnavailable as err:
            logger.error(
                "API key revalidation unavailable: identity=%s status=%s",
                identity, err.status_code,
            )
            return AuthResult.failed(
                AuthFailure.UNAVAILABLE, MSG_AUTH_UNAVAILABLE
            )

        await self._store.touch_last_used(identity)
        logger.info("User authenticated: identity=%s", identity)
        return AuthResult(
            outcome=AuthOutcome.AUTHENTICATED,
            client=self._client_factory(credential),
        )

    # ------------------------------------------------------------------
    # Unregistration and status
    # ------------------------------------------------------------------

    async def unregister(self, identity: str) -> bool:
        """Delete the stored API key of ``identity``.

        Unconditional and idempotent.

        Returns:
            True if a record existed.

        Raises:
            StorageError: If the delete fails.
        """
        existed = await self._store.delete_record(identity)
        await self._audit(identity, AuditEventType.UNREGISTER)
        logger.info("User unregistered: identity=%s", identity)
        return existed

    async def is_registered(self, identity: str) -> bool:
        return await self._store.get_record(identity) is not None

    async def get_status(self, identity: str) -> StatusView:
        return await self._store.get_status(identity)
