"""
Vault Configuration — Master secret loading and validated settings.

Reads the master secret from the environment:
    TEMBO_AUTH_MASTER_KEY = <base64-encoded key, at least 32 bytes>
    TEMBO_AUTH_KDF_ITERATIONS = <integer, at least 100000>

Security Note:
    Never log key material. Only log lengths and iteration counts.
"""
import os
import base64
import binascii
import secrets
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ConfigurationError

logger = logging.getLogger("tembo.vault")

MASTER_KEY_ENV = "TEMBO_AUTH_MASTER_KEY"
KDF_ITERATIONS_ENV = "TEMBO_AUTH_KDF_ITERATIONS"

MIN_MASTER_KEY_LENGTH = 32  # 256 bits
MIN_KDF_ITERATIONS = 100_000
DEFAULT_KDF_ITERATIONS = 100_000


def decode_master_key(value: str | bytes | None) -> bytes:
    """Decode and check a master secret.

    Raw bytes are taken as-is; strings must be base64.

    Raises:
        ConfigurationError: If the secret is missing, not valid base64,
            or shorter than 32 bytes.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError("Encryption master key is required")
    if isinstance(value, bytes):
        key_bytes = value
    else:
        try:
            key_bytes = base64.b64decode(value.strip(), validate=True)
        except (binascii.Error, ValueError) as err:
            raise ConfigurationError(
                "Invalid encryption master key format: not valid base64"
            ) from err
    if len(key_bytes) < MIN_MASTER_KEY_LENGTH:
        raise ConfigurationError(
            f"Encryption master key must be at least {MIN_MASTER_KEY_LENGTH} "
            f"bytes, got {len(key_bytes)}"
        )
    return key_bytes


def load_master_key() -> bytes:
    """Load the master secret from TEMBO_AUTH_MASTER_KEY.

    Returns:
        Raw master secret bytes.

    Raises:
        ConfigurationError: If the variable is unset or holds a bad key.
    """
    key_bytes = decode_master_key(os.environ.get(MASTER_KEY_ENV))
    logger.debug("Loaded master key (%d bytes)", len(key_bytes))
    return key_bytes


def get_kdf_iterations() -> int:
    """Read PBKDF2 iterations from TEMBO_AUTH_KDF_ITERATIONS.

    Raises:
        ConfigurationError: If the value is not an integer.
    """
    raw = os.environ.get(KDF_ITERATIONS_ENV)
    if raw is None:
        return DEFAULT_KDF_ITERATIONS
    try:
        return int(raw)
    except ValueError as err:
        raise ConfigurationError(
            f"{KDF_ITERATIONS_ENV} must be an integer"
        ) from err


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return as base64 string.

    This is a utility for operators to generate new keys.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(
        secrets.token_bytes(MIN_MASTER_KEY_LENGTH)
    ).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    master_key: bytes = Field(repr=False)
    kdf_iterations: int = Field(
        default=DEFAULT_KDF_ITERATIONS, ge=MIN_KDF_ITERATIONS
    )

    model_config = {"frozen": True}

    @field_validator("master_key")
    @classmethod
    def validate_master_key(cls, v: bytes) -> bytes:
        """Ensure the master key is long enough for AES-256."""
        if len(v) < MIN_MASTER_KEY_LENGTH:
            raise ValueError(
                f"master_key must be at least {MIN_MASTER_KEY_LENGTH} bytes"
            )
        return v

    @classmethod
    def build(cls, master_key: bytes, kdf_iterations: int) -> "VaultConfig":
        """Create a VaultConfig, reporting failures as ConfigurationError."""
        try:
            return cls(master_key=master_key, kdf_iterations=kdf_iterations)
        except ValidationError as err:
            fields = ", ".join(
                str(e["loc"][0]) for e in err.errors() if e.get("loc")
            )
            raise ConfigurationError(
                f"Invalid vault configuration: {fields}"
            ) from None

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        return cls.build(
            master_key=load_master_key(),
            kdf_iterations=get_kdf_iterations(),
        )
