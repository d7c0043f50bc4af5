"""
Vault Crypto Core — Envelope encryption of stored credentials.

Every encryption derives its own key:
    PBKDF2-HMAC-SHA256(master_key, salt 16B, >=100k iterations) → AES-256 key
    AES-GCM(key, nonce 12B, aad=identity) → ciphertext + 16B tag

The identity is bound as additional authenticated data, so a ciphertext
copied to another identity fails to decrypt.

Security Note:
    Never log plaintext, ciphertext or derived keys.
    Salt and nonce are random per call and never reused.
"""
import os
import base64
import binascii
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import ConfigurationError, DecryptionError
from ..models import EncryptedPayload
from .config import (
    VaultConfig,
    decode_master_key,
    DEFAULT_KDF_ITERATIONS,
    MIN_KDF_ITERATIONS,
)

logger = logging.getLogger("tembo.vault")

SALT_SIZE = 16  # 128-bit salt
NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16  # 128-bit GCM tag


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


class EnvelopeCipher:
    """AES-256-GCM cipher with a per-call PBKDF2-derived key.

    The master key is read-only after construction; instances are safe
    to share between concurrent tasks.

    Raises:
        ConfigurationError: If the master key is unusable or
            ``iterations`` is below the minimum.
    """

    def __init__(
        self,
        master_key: str | bytes | None,
        iterations: int = DEFAULT_KDF_ITERATIONS,
    ):
        self._master_key = decode_master_key(master_key)
        if iterations < MIN_KDF_ITERATIONS:
            raise ConfigurationError(
                f"iterations must be at least {MIN_KDF_ITERATIONS}"
            )
        self._iterations = iterations

    def __repr__(self) -> str:
        return f"<EnvelopeCipher AES-256-GCM iterations={self._iterations}>"

    @classmethod
    def from_config(cls, config: VaultConfig) -> "EnvelopeCipher":
        return cls(config.master_key, iterations=config.kdf_iterations)

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    def derive_key(self, salt: bytes) -> bytes:
        """Derive a 32-byte AES key from the master key and ``salt``."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._master_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str, identity: str) -> EncryptedPayload:
        """Encrypt ``plaintext`` bound to ``identity``.

        Args:
            plaintext: Credential to encrypt.
            identity: Owner identity, used as additional authenticated data.

        Returns:
            EncryptedPayload with base64 ciphertext, iv and salt.
        """
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        cipher = AESGCM(self.derive_key(salt))
        ct = cipher.encrypt(
            nonce, plaintext.encode("utf-8"), identity.encode("utf-8"),
        )
        return EncryptedPayload(
            ciphertext=_b64encode(ct),
            iv=_b64encode(nonce),
            salt=_b64encode(salt),
        )

    def decrypt(self, payload: EncryptedPayload, identity: str) -> str:
        """Decrypt a payload previously encrypted for ``identity``.

        Raises:
            DecryptionError: On any failure. The cause is not exposed.
        """
        try:
            ct = _b64decode(payload.ciphertext)
            nonce = _b64decode(payload.iv)
            salt = _b64decode(payload.salt)
            if (
                len(nonce) != NONCE_SIZE
                or len(salt) != SALT_SIZE
                or len(ct) < TAG_SIZE
            ):
                raise DecryptionError()
            cipher = AESGCM(self.derive_key(salt))
            plaintext = cipher.decrypt(nonce, ct, identity.encode("utf-8"))
            return plaintext.decode("utf-8")
        except DecryptionError:
            raise
        except (InvalidTag, binascii.Error, ValueError, TypeError):
            # UnicodeDecodeError is a ValueError
            raise DecryptionError() from None
