"""
Tembo Auth exceptions.

Every error that can cross the package boundary derives from
``TemboAuthError``. Backend and crypto exceptions are always chained
into one of these types, never passed through unwrapped.

Security Note:
    Exception messages never include credential plaintext, ciphertext
    or key material.
"""


class TemboAuthError(Exception):
    """Base class for all Tembo Auth errors."""


class ConfigurationError(TemboAuthError):
    """Invalid or missing configuration (e.g. a bad master secret).

    Fatal at startup.
    """


class DecryptionError(TemboAuthError):
    """A stored credential could not be decrypted.

    Raised with a fixed message for every cause (identity mismatch,
    tampered bytes, undecodable fields) so callers cannot tell which
    step failed.
    """

    message = (
        "Decryption failed. The data may be corrupted "
        "or the identity may not match."
    )

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class CredentialValidationError(TemboAuthError):
    """Base class for failures of the remote validation call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationRejected(CredentialValidationError):
    """The remote service rejected the credential, or returned
    identity claims too incomplete to trust."""


class ValidationUnavailable(CredentialValidationError):
    """The remote service could not be reached or answered with an
    error unrelated to the credential itself."""


class StorageError(TemboAuthError):
    """A critical read or write against the record store failed."""
