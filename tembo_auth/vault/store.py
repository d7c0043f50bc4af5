"""
CredentialStore — Persistence of encrypted credentials and the auth audit log.

Provides the storage API used by the authentication service:
- ``get_record(identity)`` / ``get_status(identity)`` — single-row reads
- ``insert_record(record)`` — create the row for a new identity
- ``update_ciphertext(identity, payload)`` — replace the encrypted credential
- ``update_validation_status(identity, status, claims)`` — record a validation
- ``delete_record(identity)`` — hard delete
- ``touch_last_used(identity)`` / ``append_audit_event(event)`` — best-effort

Every statement is parameterized; values are never interpolated into SQL.

Security Note:
    Never log ciphertext, IV or salt values. Only log identities,
    event types and validation statuses.
"""
import logging
from typing import Any, Optional

import asyncpg
import orjson

from ..exceptions import StorageError
from ..models import (
    AuditEvent,
    CredentialRecord,
    EncryptedPayload,
    RemoteIdentityClaims,
    StatusView,
    ValidationStatus,
    now_ms,
)

logger = logging.getLogger("tembo.vault")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_RECORD = """
SELECT discord_user_id, encrypted_api_key, encryption_iv, encryption_salt,
       registration_timestamp, last_used_timestamp, last_validated_timestamp,
       validation_status, tembo_user_id, tembo_org_id, tembo_email
FROM user_api_keys
WHERE discord_user_id = $1
"""

_INSERT_RECORD = """
INSERT INTO user_api_keys (
    discord_user_id, encrypted_api_key, encryption_iv, encryption_salt,
    registration_timestamp, last_used_timestamp, last_validated_timestamp,
    validation_status, tembo_user_id, tembo_org_id, tembo_email
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
"""

_UPDATE_CIPHERTEXT = """
UPDATE user_api_keys
SET encrypted_api_key = $1,
    encryption_iv = $2,
    encryption_salt = $3,
    last_used_timestamp = $4,
    validation_status = 'pending'
WHERE discord_user_id = $5
"""

_UPDATE_VALIDATION = """
UPDATE user_api_keys
SET validation_status = $1,
    last_validated_timestamp = $2,
    tembo_user_id = COALESCE($3, tembo_user_id),
    tembo_org_id = COALESCE($4, tembo_org_id),
    tembo_email = COALESCE($5, tembo_email)
WHERE discord_user_id = $6
"""

_TOUCH_LAST_USED = """
UPDATE user_api_keys
SET last_used_timestamp = $1
WHERE discord_user_id = $2
"""

_DELETE_RECORD = """
DELETE FROM user_api_keys
WHERE discord_user_id = $1
"""

_COUNT_RECORDS = """
SELECT COUNT(*) FROM user_api_keys
"""

_INSERT_AUDIT = """
INSERT INTO auth_events (discord_user_id, event_type, timestamp, metadata)
VALUES ($1, $2, $3, $4)
"""


def _affected_rows(status: Any) -> int:
    """Parse the row count from an asyncpg command tag (e.g. ``DELETE 1``)."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0


def _row_to_record(row: Any) -> CredentialRecord:
    return CredentialRecord(
        identity=row["discord_user_id"],
        ciphertext=row["encrypted_api_key"],
        iv=row["encryption_iv"],
        salt=row["encryption_salt"],
        registered_at=row["registration_timestamp"],
        last_used_at=row["last_used_timestamp"],
        last_validated_at=row["last_validated_timestamp"],
        validation_status=row["validation_status"],
        remote_user_id=row["tembo_user_id"],
        remote_org_id=row["tembo_org_id"],
        remote_email=row["tembo_email"],
    )


async def create_pool(dsn: str, **kwargs) -> Any:
    """Create an asyncpg connection pool for the credential store."""
    return await asyncpg.create_pool(dsn, **kwargs)


class CredentialStore:
    """Encrypted credential rows and audit events over an asyncpg pool.

    Critical operations raise ``StorageError`` on backend failure.
    ``touch_last_used`` and ``append_audit_event`` are best-effort: their
    failures are logged and never raised.
    """

    def __init__(self, db_pool: Any):
        if db_pool is None:
            raise ValueError("A database pool is required")
        self._db = db_pool

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_record(self, identity: str) -> Optional[CredentialRecord]:
        """Return the credential record for ``identity``, or None.

        Raises:
            StorageError: If the query fails.
        """
        try:
            async with self._db.acquire() as conn:
                row = await conn.fetchrow(_SELECT_RECORD, identity)
        except Exception as err:
            logger.error(
                "Failed to read credential for identity=%s: %s",
                identity, type(err).__name__,
            )
            raise StorageError("Database query failed") from err
        if row is None:
            return None
        return _row_to_record(row)

    async def get_status(self, identity: str) -> StatusView:
        """Return the status projection for ``identity``.

        Returns ``StatusView.not_registered()`` when no record exists.
        """
        record = await self.get_record(identity)
        if record is None:
            return StatusView.not_registered()
        return StatusView.from_record(record)

    async def count_records(self) -> int:
        """Number of registered identities; 0 if the query fails."""
        try:
            async with self._db.acquire() as conn:
                count = await conn.fetchval(_COUNT_RECORDS)
        except Exception as err:
            logger.error("Failed to count credentials: %s", err)
            return 0
        return int(count or 0)

    # ------------------------------------------------------------------
    # Critical writes
    # ------------------------------------------------------------------

    async def insert_record(self, record: CredentialRecord) -> None:
        """Insert the record of a new identity.

        Raises:
            StorageError: If a record already exists or the insert fails.
        """
        try:
            async with self._db.acquire() as conn:
                await conn.execute(
                    _INSERT_RECORD,
                    record.identity,
                    record.ciphertext,
                    record.iv,
                    record.salt,
                    record.registered_at,
                    record.last_used_at,
                    record.last_validated_at,
                    record.validation_status.value,
                    record.remote_user_id,
                    record.remote_org_id,
                    record.remote_email,
                )
        except asyncpg.UniqueViolationError as err:
            logger.warning(
                "Credential already exists for identity=%s", record.identity,
            )
            raise StorageError("Credential already registered") from err
        except Exception as err:
            logger.error(
                "Failed to save credential for identity=%s: %s",
                record.identity, type(err).__name__,
            )
            raise StorageError("Failed to save credential") from err
        logger.info("Credential saved: identity=%s", record.identity)

    async def update_ciphertext(
        self, identity: str, payload: EncryptedPayload
    ) -> bool:
        """Replace the encrypted credential and reset status to pending.

        Returns:
            True if a record was updated, False if none exists.

        Raises:
            StorageError: If the update fails.
        """
        try:
            async with self._db.acquire() as conn:
                result = await conn.execute(
                    _UPDATE_CIPHERTEXT,
                    payload.ciphertext,
                    payload.iv,
                    payload.salt,
                    now_ms(),
                    identity,
                )
        except Exception as err:
            logger.error(
                "Failed to update credential for identity=%s: %s",
                identity, type(err).__name__,
            )
            raise StorageError("Failed to update credential") from err
        updated = _affected_rows(result) > 0
        logger.info(
            "Credential updated: identity=%s existed=%s", identity, updated,
        )
        return updated

    async def update_validation_status(
        self,
        identity: str,
        status: ValidationStatus,
        claims: Optional[RemoteIdentityClaims] = None,
    ) -> None:
        """Record the outcome of a validation.

        Claims columns keep their previous values when ``claims`` is None.

        Raises:
            StorageError: If the update fails.
        """
        status = ValidationStatus(status)
        try:
            async with self._db.acquire() as conn:
                await conn.execute(
                    _UPDATE_VALIDATION,
                    status.value,
                    now_ms(),
                    claims.user_id if claims else None,
                    claims.org_id if claims else None,
                    claims.email if claims else None,
                    identity,
                )
        except Exception as err:
            logger.error(
                "Failed to update validation status for identity=%s: %s",
                identity, type(err).__name__,
            )
            raise StorageError("Failed to update validation status") from err
        logger.info(
            "Validation status updated: identity=%s status=%s",
            identity, status.value,
        )

    async def delete_record(self, identity: str) -> bool:
        """Hard-delete the record for ``identity``.

        Deleting an absent record is not an error.

        Returns:
            True if a record was deleted.

        Raises:
            StorageError: If the delete fails.
        """
        try:
            async with self._db.acquire() as conn:
                result = await conn.execute(_DELETE_RECORD, identity)
        except Exception as err:
            logger.error(
                "Failed to delete credential for identity=%s: %s",
                identity, type(err).__name__,
            )
            raise StorageError("Failed to delete credential") from err
        deleted = _affected_rows(result) > 0
        logger.info(
            "Credential deleted: identity=%s existed=%s", identity, deleted,
        )
        return deleted

    # ------------------------------------------------------------------
    # Best-effort writes
    # ------------------------------------------------------------------

    async def touch_last_used(self, identity: str) -> None:
        """Update the last-used timestamp. Failures are only logged."""
        try:
            async with self._db.acquire() as conn:
                await conn.execute(_TOUCH_LAST_USED, now_ms(), identity)
        except Exception as err:
            logger.warning(
                "Failed to update last used timestamp for identity=%s: %s",
                identity, type(err).__name__,
            )

    async def append_audit_event(self, event: AuditEvent) -> None:
        """Append an audit event. Failures are only logged."""
        try:
            metadata = (
                orjson.dumps(event.metadata).decode("utf-8")
                if event.metadata else None
            )
            async with self._db.acquire() as conn:
                await conn.execute(
                    _INSERT_AUDIT,
                    event.identity,
                    event.event_type.value,
                    event.timestamp,
                    metadata,
                )
        except Exception as err:
            logger.error(
                "Failed to log auth event identity=%s type=%s: %s",
                event.identity, event.event_type.value, type(err).__name__,
            )
            return
        logger.debug(
            "Auth event logged: identity=%s type=%s",
            event.identity, event.event_type.value,
        )
