"""
Remote Sync Service Client

Thin async HTTP client for the four endpoints the app consumes:

    POST /api/auth/login
    POST /api/auth/logout
    POST /api/sync/replace-all-client-data
    GET  /api/sync/get-all-server-data

This client only speaks HTTP and classifies failures. It does NOT decide
what a failure means for local state; the sync engine and the session
manager do that.

IMPORTANT: No retries here. A sync phase that fails is reported to the
user, who decides whether to try again.
"""

from typing import Any, Optional

import httpx

from spendsync.audit.logger import get_logger
from spendsync.config import RemoteSettings, get_settings
from spendsync.models.sync import FailureReason
from spendsync.services.remote.schemas import server_message


logger = get_logger(__name__)


class RemoteServiceError(Exception):
    """A request to the remote service did not produce a usable body."""

    def __init__(
        self,
        message: str,
        reason: FailureReason,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        self.reason = reason
        self.status_code = status_code
        self.server_message = server_message
        super().__init__(message)


class SyncApiClient:
    """
    Async client for the remote sync/auth API.
    """

    LOGIN_PATH = "/api/auth/login"
    LOGOUT_PATH = "/api/auth/logout"
    PUSH_PATH = "/api/sync/replace-all-client-data"
    PULL_PATH = "/api/sync/get-all-server-data"

    def __init__(
        self,
        settings: Optional[RemoteSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            settings: Remote settings; loaded from the environment if None.
            transport: Custom httpx transport (tests pass httpx.MockTransport).
        """
        self._settings = settings or get_settings().remote
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def settings(self) -> RemoteSettings:
        return self._settings

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        token: Optional[str] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            RemoteServiceError: network failure, timeout, non-2xx status
                or a body that is not JSON
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        client = self._get_client()

        try:
            response = await client.request(
                method,
                path,
                json=json_body,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise RemoteServiceError(
                f"{method} {path} timed out after {timeout:g}s",
                FailureReason.TIMEOUT,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteServiceError(
                f"{method} {path} could not reach the server: {e}",
                FailureReason.NETWORK,
            ) from e

        if not response.is_success:
            try:
                message = server_message(response.json())
            except ValueError:
                message = None
            logger.warning(
                "remote_request_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                server_message=message,
            )
            raise RemoteServiceError(
                f"{method} {path} returned HTTP {response.status_code}",
                FailureReason.HTTP_STATUS,
                status_code=response.status_code,
                server_message=message,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(
                f"{method} {path} returned a non-JSON body",
                FailureReason.MALFORMED_RESPONSE,
                status_code=response.status_code,
            ) from e

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def push_all(
        self,
        expenses: list[dict],
        deleted_ids: list[int],
        token: str,
    ) -> Any:
        """Send the complete client-side expense set (replace-all semantics)."""
        return await self._request(
            "POST",
            self.PUSH_PATH,
            timeout=self._settings.push_timeout_seconds,
            token=token,
            json_body={"expenses": expenses, "deleted_ids": deleted_ids},
        )

    async def fetch_all(self, token: str) -> Any:
        """Fetch the server's complete authoritative state."""
        return await self._request(
            "GET",
            self.PULL_PATH,
            timeout=self._settings.pull_timeout_seconds,
            token=token,
        )

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Any:
        return await self._request(
            "POST",
            self.LOGIN_PATH,
            timeout=self._settings.auth_timeout_seconds,
            json_body={"email": email, "password": password},
        )

    async def logout(self, token: str) -> Any:
        return await self._request(
            "POST",
            self.LOGOUT_PATH,
            timeout=self._settings.auth_timeout_seconds,
            token=token,
        )
