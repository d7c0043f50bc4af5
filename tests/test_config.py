"""Tests for vault configuration loading."""
import base64

import pytest

from tembo_auth.auth import AuthService
from tembo_auth.exceptions import ConfigurationError
from tembo_auth.vault.config import (
    KDF_ITERATIONS_ENV,
    MASTER_KEY_ENV,
    VaultConfig,
    generate_master_key,
    load_master_key,
)
from tembo_auth.vault.crypto import EnvelopeCipher


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv(MASTER_KEY_ENV, raising=False)
    monkeypatch.delenv(KDF_ITERATIONS_ENV, raising=False)
    return monkeypatch


class TestLoadMasterKey:

    def test_missing(self, clean_env):
        with pytest.raises(ConfigurationError):
            load_master_key()

    def test_valid(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, base64.b64encode(bytes(32)).decode())
        assert load_master_key() == bytes(32)

    def test_too_short(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, base64.b64encode(bytes(16)).decode())
        with pytest.raises(ConfigurationError):
            load_master_key()

    def test_garbage(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, "not-a-key")
        with pytest.raises(ConfigurationError):
            load_master_key()

    def test_generate_master_key(self):
        key = generate_master_key()
        assert len(base64.b64decode(key)) == 32
        assert generate_master_key() != key


class TestVaultConfig:

    def test_from_env_defaults(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, generate_master_key())
        config = VaultConfig.from_env()
        assert config.kdf_iterations == 100_000
        assert len(config.master_key) == 32

    def test_from_env_iterations(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, generate_master_key())
        clean_env.setenv(KDF_ITERATIONS_ENV, "250000")
        assert VaultConfig.from_env().kdf_iterations == 250_000

    def test_iterations_not_integer(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, generate_master_key())
        clean_env.setenv(KDF_ITERATIONS_ENV, "lots")
        with pytest.raises(ConfigurationError):
            VaultConfig.from_env()

    def test_iterations_too_low(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, generate_master_key())
        clean_env.setenv(KDF_ITERATIONS_ENV, "1000")
        with pytest.raises(ConfigurationError) as exc:
            VaultConfig.from_env()
        assert "kdf_iterations" in str(exc.value)

    def test_build_short_key(self):
        with pytest.raises(ConfigurationError):
            VaultConfig.build(master_key=bytes(8), kdf_iterations=100_000)

    def test_repr_hides_key(self):
        config = VaultConfig(master_key=b"k" * 32)
        assert "kkkk" not in repr(config)

    def test_service_from_env(self, clean_env, mock_pool):
        clean_env.setenv(MASTER_KEY_ENV, generate_master_key())
        service = AuthService.from_env(mock_pool)
        assert isinstance(service, AuthService)

    def test_service_from_env_without_key(self, clean_env, mock_pool):
        with pytest.raises(ConfigurationError):
            AuthService.from_env(mock_pool)

    def test_cipher_from_env_config(self, clean_env):
        clean_env.setenv(MASTER_KEY_ENV, generate_master_key())
        cipher = EnvelopeCipher.from_config(VaultConfig.from_env())
        payload = cipher.encrypt("k-abc", "u1")
        assert cipher.decrypt(payload, "u1") == "k-abc"
