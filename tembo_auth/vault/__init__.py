"""Credential Vault — Envelope-encrypted API keys bound to user identities.

Security Note (Threat Model):
    The master key and decrypted API keys live in process memory while in
    use. A memory dump of the bot process could expose them. This is an
    accepted limitation; mitigation requires HSM integration which is out
    of scope.
"""

from .crypto import EnvelopeCipher
from .store import CredentialStore, create_pool
from .config import VaultConfig, load_master_key, generate_master_key

__all__ = [
    "EnvelopeCipher",
    "CredentialStore",
    "create_pool",
    "VaultConfig",
    "load_master_key",
    "generate_master_key",
]
