"""Tembo Auth.

Encrypted per-user Tembo API key storage and authentication
orchestration for the Tembo chat bot.
"""
from .version import __version__
from .exceptions import (
    TemboAuthError,
    ConfigurationError,
    DecryptionError,
    CredentialValidationError,
    ValidationRejected,
    ValidationUnavailable,
    StorageError,
)
from .models import (
    AuditEvent,
    AuditEventType,
    CredentialRecord,
    EncryptedPayload,
    RemoteIdentityClaims,
    StatusView,
    ValidationStatus,
)
from .auth import AuthService, AuthResult, AuthOutcome, RegisterResult
from .client import CredentialValidator, TemboClient, TemboValidator
from .vault import EnvelopeCipher, CredentialStore, VaultConfig

__all__ = (
    "__version__",
    "TemboAuthError",
    "ConfigurationError",
    "DecryptionError",
    "CredentialValidationError",
    "ValidationRejected",
    "ValidationUnavailable",
    "StorageError",
    "AuditEvent",
    "AuditEventType",
    "CredentialRecord",
    "EncryptedPayload",
    "RemoteIdentityClaims",
    "StatusView",
    "ValidationStatus",
    "AuthService",
    "AuthResult",
    "AuthOutcome",
    "RegisterResult",
    "CredentialValidator",
    "TemboClient",
    "TemboValidator",
    "EnvelopeCipher",
    "CredentialStore",
    "VaultConfig",
)
