"""
Session handling for authenticated backend calls.

The session is an explicit object created at CLI startup and passed to the
commands that need it; there is no module-level current user.

SessionStore persists the bearer token and a "remembered user" cache to a
JSON file. SessionContext ties the store to the backend: init() restores and
verifies the stored token, login()/logout() change it, teardown() drops the
in-memory state.

Security:
    - The token file is written with 0600 permissions
    - Tokens are never logged

Example:
    >>> session = SessionContext(client, SessionStore(settings.session_file))
    >>> await session.init()
    >>> user = session.require_admin()
    >>> leads = await session.client().list_leads()
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from geo_tracker.api.client import GeoTrackerClient
from geo_tracker.api.models import AuthUser
from geo_tracker.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    TransportError,
)
from geo_tracker.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

# Status codes meaning the backend rejected the token itself
REJECTED_TOKEN_STATUS_CODES = frozenset([401, 403])


class StoredSession(BaseModel):
    """Contents of the session file."""

    token: str
    user: AuthUser | None = None
    saved_at: str | None = None


class SessionStore:
    """
    JSON file holding the bearer token and the remembered user.

    A missing or corrupt file reads as "no session".
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> StoredSession | None:
        if not self.path.exists():
            return None

        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
            return StoredSession.model_validate(data)
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

    def save(self, session: StoredSession) -> None:
        """
        Write the session file (0600).

        Raises:
            OSError: If the file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = session.model_copy(update={"saved_at": utc_timestamp()}).model_dump(
            mode="json"
        )

        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        logger.debug(f"Wrote session file: {self.path}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class SessionContext:
    """
    The authenticated user of this process, if any.

    Attributes:
        user: Verified (or remembered) user, None when logged out
        token: Bearer token, None when logged out
        verified: True when the backend confirmed the token during this process
    """

    def __init__(self, client: GeoTrackerClient, store: SessionStore):
        self._base_client = client
        self.store = store
        self.user: AuthUser | None = None
        self.token: str | None = None
        self.verified = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.token is not None

    def client(self) -> GeoTrackerClient:
        """Backend client carrying this session's bearer token."""
        return self._base_client.with_token(self.token)

    async def init(self) -> AuthUser | None:
        """
        Restore the stored session and verify it with the backend.

        A token the backend rejects is discarded. When the backend cannot be
        reached, the remembered user is kept unverified.

        Returns:
            The session user, or None when logged out
        """
        stored = self.store.load()
        if stored is None:
            return None

        self.token = stored.token
        self.user = stored.user

        try:
            response = await self._base_client.with_token(stored.token).verify_token()
        except TransportError as e:
            if e.status_code in REJECTED_TOKEN_STATUS_CODES:
                logger.info("Stored session was rejected by the backend")
                self.logout()
                return None
            logger.warning(f"Could not verify stored session, using remembered user: {e}")
            return self.user

        if not response.valid or response.user is None:
            logger.info("Stored session is no longer valid")
            self.logout()
            return None

        self.user = response.user
        self.verified = True
        self.store.save(StoredSession(token=stored.token, user=response.user))
        return self.user

    async def login(self, token: str) -> AuthUser:
        """
        Verify token with the backend and persist it.

        Raises:
            AuthenticationError: If the backend rejects the token
            TransportError: If the backend cannot be reached
        """
        token = token.strip()
        if not token:
            raise AuthenticationError("Token cannot be empty")

        try:
            response = await self._base_client.with_token(token).verify_token()
        except TransportError as e:
            if e.status_code in REJECTED_TOKEN_STATUS_CODES:
                raise AuthenticationError(f"Login failed: {e}") from e
            raise

        if not response.valid or response.user is None:
            raise AuthenticationError("Login failed: token is invalid or expired")

        self.token = token
        self.user = response.user
        self.verified = True
        self.store.save(StoredSession(token=token, user=response.user))
        logger.info("Logged in", extra={"context": {"role": response.user.role}})
        return response.user

    def logout(self) -> None:
        """Forget the session in memory and on disk."""
        self.store.clear()
        self.teardown()

    def teardown(self) -> None:
        """Drop in-memory session state (the session file is kept)."""
        self.user = None
        self.token = None
        self.verified = False

    def require_user(self) -> AuthUser:
        """
        Return the session user.

        Raises:
            AuthenticationError: If nobody is logged in
        """
        if not self.is_authenticated:
            raise AuthenticationError("Not logged in. Run 'geo-tracker login' first.")
        return self.user

    def require_admin(self, permission: str | None = None) -> AuthUser:
        """
        Return the session user if they may use the admin surface.

        Args:
            permission: Optional UserPermissions field that must also be granted
                (e.g. "can_update_leads")

        Raises:
            AuthenticationError: If nobody is logged in
            PermissionDeniedError: If the user lacks admin access or permission
        """
        user = self.require_user()

        if not user.has_admin_access:
            raise PermissionDeniedError(
                f"{user.email} has no admin access", redirect_to="dashboard"
            )

        if permission is not None and not getattr(user.permissions, permission, False):
            raise PermissionDeniedError(
                f"{user.email} lacks permission {permission}", redirect_to="admin"
            )

        return user
