"""Shared fixtures: cipher, in-memory store, scripted validator, fake HTTP session."""
import base64
import itertools
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from tembo_auth.auth import AuthService
from tembo_auth.exceptions import (
    StorageError,
    ValidationRejected,
    ValidationUnavailable,
)
from tembo_auth.models import (
    AuditEvent,
    AuditEventType,
    CredentialRecord,
    RemoteIdentityClaims,
    StatusView,
    ValidationStatus,
)
from tembo_auth.vault.crypto import EnvelopeCipher

MASTER_KEY = base64.b64encode(bytes(range(32))).decode("ascii")


class InMemoryCredentialStore:
    """Dict-backed stand-in for CredentialStore.

    Timestamps come from a strictly increasing clock so ordering
    assertions are deterministic.
    """

    def __init__(self):
        self.records: dict[str, CredentialRecord] = {}
        self.events: list[AuditEvent] = []
        self.fail_writes = False
        self._clock = itertools.count(1_700_000_000_000).__next__

    def _check_writes(self):
        if self.fail_writes:
            raise StorageError("Failed to save credential")

    def event_types(self, identity: str) -> list[AuditEventType]:
        return [e.event_type for e in self.events if e.identity == identity]

    async def get_record(self, identity):
        record = self.records.get(identity)
        return record.model_copy() if record else None

    async def get_status(self, identity):
        record = self.records.get(identity)
        if record is None:
            return StatusView.not_registered()
        return StatusView.from_record(record)

    async def insert_record(self, record):
        self._check_writes()
        if record.identity in self.records:
            raise StorageError("Credential already registered")
        now = self._clock()
        self.records[record.identity] = record.model_copy(
            update={"registered_at": now, "last_used_at": now}
        )

    async def update_ciphertext(self, identity, payload):
        self._check_writes()
        record = self.records.get(identity)
        if record is None:
            return False
        self.records[identity] = record.model_copy(update={
            "ciphertext": payload.ciphertext,
            "iv": payload.iv,
            "salt": payload.salt,
            "last_used_at": self._clock(),
            "validation_status": ValidationStatus.PENDING,
        })
        return True

    async def update_validation_status(self, identity, status, claims=None):
        self._check_writes()
        record = self.records.get(identity)
        if record is None:
            return
        update = {
            "validation_status": ValidationStatus(status),
            "last_validated_at": self._clock(),
        }
        if claims is not None:
            update.update(
                remote_user_id=claims.user_id,
                remote_org_id=claims.org_id,
                remote_email=claims.email,
            )
        self.records[identity] = record.model_copy(update=update)

    async def touch_last_used(self, identity):
        record = self.records.get(identity)
        if record is not None:
            self.records[identity] = record.model_copy(
                update={"last_used_at": self._clock()}
            )

    async def delete_record(self, identity):
        self._check_writes()
        return self.records.pop(identity, None) is not None

    async def append_audit_event(self, event):
        self.events.append(event)


class FakeValidator:
    """Scripted validator: accepts with ``claims`` until told otherwise."""

    def __init__(self, claims=None):
        self.claims = claims or RemoteIdentityClaims(user_id="U1", org_id="O1")
        self.error = None
        self.calls: list[str] = []

    def accept(self, claims=None):
        self.error = None
        if claims is not None:
            self.claims = claims

    def reject(self):
        self.error = ValidationRejected("Invalid Tembo API key", status_code=401)

    def go_down(self):
        self.error = ValidationUnavailable(
            "Tembo service is temporarily unavailable", status_code=503
        )

    async def validate(self, credential):
        self.calls.append(credential)
        if self.error is not None:
            raise self.error
        return self.claims


class FakeClient:
    def __init__(self, api_key):
        self.api_key = api_key


class FakeResponse:
    """Stand-in for an aiohttp response context manager."""

    def __init__(self, status=200, body=None, json_error=None):
        self.status = status
        self._body = body
        self._json_error = json_error

    async def json(self, content_type="application/json"):
        if self._json_error is not None:
            raise self._json_error
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Records GET calls and replays a canned response or error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture(scope="session")
def cipher():
    """Cipher shared across tests; construction is cheap, encryption is not."""
    return EnvelopeCipher(MASTER_KEY)


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def validator():
    return FakeValidator()


@pytest.fixture
def service(store, cipher, validator):
    return AuthService(
        store=store, cipher=cipher, validator=validator,
        client_factory=FakeClient,
    )


@pytest.fixture
def mock_connection():
    """Mock asyncpg connection with fetchrow/fetchval/execute."""
    conn = AsyncMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=0)
    conn.execute = AsyncMock(return_value="UPDATE 1")
    return conn


@pytest.fixture
def mock_pool(mock_connection):
    """Mock asyncpg pool whose acquire() yields ``mock_connection``."""
    pool = AsyncMock()

    @asynccontextmanager
    async def acquire():
        yield mock_connection

    pool.acquire = acquire
    return pool
