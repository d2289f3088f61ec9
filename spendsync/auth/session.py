"""
Session Management

DESIGN DECISION: The logged-in user is an explicit object owned by a
SessionManager, never a module-level global. Whatever needs the token
asks the manager for it.

Lifecycle:
    hydrate()  restore the session persisted under 'currentUser'
    login()    exchange credentials for a bearer token, persist the session
    logout()   tell the server (best effort), then drop the session and the
               sync metadata (watermark + tombstones) that belonged to it
"""

from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from spendsync.audit.logger import AuditLogger, get_logger
from spendsync.models.audit import AuditEventBuilder
from spendsync.models.sync import UserSession
from spendsync.services.remote.client import RemoteServiceError, SyncApiClient
from spendsync.services.remote.schemas import LoginResponse
from spendsync.services.storage.record_store import LocalRecordStore


logger = get_logger(__name__)


class AuthError(Exception):
    """Login failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.server_message = server_message
        super().__init__(message)


class NotAuthenticatedError(Exception):
    """An operation needs a logged-in user and there is none."""
    pass


class SessionManager:
    """
    Owns the current UserSession and its persistence.
    """

    def __init__(
        self,
        store: LocalRecordStore,
        client: SyncApiClient,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._client = client
        self._audit_logger = audit_logger
        self._current: Optional[UserSession] = None

    @property
    def current(self) -> Optional[UserSession]:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    def hydrate(self) -> Optional[UserSession]:
        """Restore the persisted session, if any. Call once at startup."""
        self._current = self._store.load_session()
        if self._current:
            logger.info("session_hydrated", email=self._current.email)
        return self._current

    def require(self) -> UserSession:
        """
        The current session.

        Raises:
            NotAuthenticatedError: If nobody is logged in
        """
        if self._current is None:
            raise NotAuthenticatedError("Log in to synchronize your expenses")
        return self._current

    async def login(self, email: str, password: str) -> UserSession:
        """
        Exchange credentials for a bearer token and persist the session.

        Raises:
            AuthError: Rejected credentials, unreachable server or a
                response without an access token
        """
        email = email.strip()
        try:
            body = await self._client.login(email, password)
            token = LoginResponse.model_validate(body).access_token
        except RemoteServiceError as e:
            self._log_failure(email, e.server_message or str(e))
            raise AuthError(
                e.server_message or f"Login failed: {e}",
                status_code=e.status_code,
                server_message=e.server_message,
            ) from e
        except ValidationError as e:
            self._log_failure(email, "response without access_token")
            raise AuthError("Login response did not include an access token") from e

        session = UserSession(email=email, access_token=token, logged_in_at=datetime.now())
        self._store.save_session(session)
        self._current = session

        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.user_logged_in(email))
        return session

    async def logout(self) -> None:
        """
        End the session locally, whatever the server says.

        Clears the token and the sync metadata. Local expenses stay.
        """
        session = self._current or self._store.load_session()

        if session is not None:
            try:
                await self._client.logout(session.access_token)
            except RemoteServiceError as e:
                # The token is dropped locally either way
                logger.warning("remote_logout_failed", email=session.email, error=str(e))

        self._store.clear_session()
        self._store.clear_sync_metadata()
        self._current = None

        if session is not None and self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.user_logged_out(session.email))

    def _log_failure(self, email: str, message: str) -> None:
        logger.warning("login_failed", email=email, error=message)
        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.login_failed(email, message))
