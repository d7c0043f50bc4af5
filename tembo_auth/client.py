"""
Tembo API client — validation of API keys against the remote ``/me`` endpoint.

The authentication service only depends on the ``CredentialValidator``
protocol; ``TemboValidator`` is the production implementation.

Outcome mapping of ``GET /me``:
    2xx with user id and org id → RemoteIdentityClaims
    401 / 403, or incomplete identity → ValidationRejected
    429, 5xx, other status, network error, timeout → ValidationUnavailable

Security Note:
    The API key is only ever sent in the Authorization header.
    It is never logged and never part of an exception message or repr.
"""
import time
import asyncio
import logging
from typing import Any, Optional, Protocol

import aiohttp

from . import conf
from .exceptions import ValidationRejected, ValidationUnavailable
from .models import RemoteIdentityClaims

logger = logging.getLogger("tembo.client")

_REJECTED_STATUS = (401, 403)


def _has_control_chars(value: str) -> bool:
    return any(ord(c) < 32 or ord(c) == 127 for c in value)


class CredentialValidator(Protocol):
    """Validates a plaintext credential against the remote service."""

    async def validate(self, credential: str) -> RemoteIdentityClaims:
        ...


class TemboClient:
    """Tembo API client bound to one API key.

    Args:
        api_key: Plaintext Tembo API key.
        base_url: API base URL (defaults to ``TEMBO_API_URL``).
        timeout: Total request timeout in seconds
            (defaults to ``TEMBO_API_TIMEOUT``).
        http_session: Optional shared aiohttp session. When omitted a
            session is opened per request.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self._api_key = (api_key or "").strip()
        self._base_url = (base_url or conf.TEMBO_API_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else conf.TEMBO_API_TIMEOUT
        self._http_session = http_session

    def __repr__(self) -> str:
        return f"<TemboClient base_url={self._base_url!r}>"

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }

    async def _get_json(
        self, session: aiohttp.ClientSession, endpoint: str
    ) -> Any:
        async with session.get(
            f"{self._base_url}{endpoint}",
            headers=self._headers(),
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        ) as response:
            status = response.status
            if status in _REJECTED_STATUS:
                raise ValidationRejected(
                    "Invalid Tembo API key", status_code=status
                )
            if status == 429:
                raise ValidationUnavailable(
                    "Tembo rate limit exceeded", status_code=status
                )
            if status >= 500:
                raise ValidationUnavailable(
                    "Tembo service is temporarily unavailable",
                    status_code=status,
                )
            if not 200 <= status < 300:
                raise ValidationUnavailable(
                    f"Unexpected Tembo response ({status})",
                    status_code=status,
                )
            try:
                return await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError) as err:
                raise ValidationUnavailable(
                    "Tembo returned an invalid response", status_code=status
                ) from err

    async def request(self, endpoint: str) -> Any:
        """GET ``endpoint`` and return the decoded JSON body.

        Raises:
            ValidationRejected: The API key was refused.
            ValidationUnavailable: The service failed or timed out.
        """
        if not self._api_key:
            raise ValidationRejected("Tembo API key is required")
        if _has_control_chars(self._api_key):
            raise ValidationRejected("Tembo API key contains invalid characters")
        started = time.monotonic()
        try:
            if self._http_session is not None:
                data = await self._get_json(self._http_session, endpoint)
            else:
                async with aiohttp.ClientSession() as session:
                    data = await self._get_json(session, endpoint)
        except asyncio.TimeoutError as err:
            logger.warning("Tembo request timed out: endpoint=%s", endpoint)
            raise ValidationUnavailable("Tembo request timed out") from err
        except aiohttp.ClientError as err:
            logger.warning(
                "Tembo request failed: endpoint=%s error=%s",
                endpoint, type(err).__name__,
            )
            raise ValidationUnavailable("Could not reach Tembo") from err
        logger.debug(
            "Tembo GET %s took %.0fms",
            endpoint, (time.monotonic() - started) * 1000,
        )
        return data

    async def get_current_user(self) -> RemoteIdentityClaims:
        """Fetch the identity the API key belongs to."""
        data = await self.request("/me")
        return RemoteIdentityClaims.from_response(data)


class TemboValidator:
    """``CredentialValidator`` backed by the Tembo ``/me`` endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._http_session = http_session

    def client_for(self, credential: str) -> TemboClient:
        """Build a client bound to ``credential`` with this validator's settings."""
        return TemboClient(
            credential,
            base_url=self._base_url,
            timeout=self._timeout,
            http_session=self._http_session,
        )

    async def validate(self, credential: str) -> RemoteIdentityClaims:
        return await self.client_for(credential).get_current_user()
