"""Session guard - single-flight admin authentication for every remote call.

Hey future me - ALL Jellyfin calls of a radio run go through SessionGuard.with_auth().
It owns the run's Session (token, expiry, pending refresh) and guarantees:

1. A cached token is reused until expires_at (set BELOW the server's nominal lifetime)
2. When the token is stale, exactly ONE credential exchange runs, no matter how many
   coroutines ask at once - the others await the same pending future (single-flight)
3. An operation failing with an auth error gets the token invalidated, ONE refresh,
   and ONE retry. Never more. Non-auth errors propagate untouched.

The Session is an explicit value (no module-level singleton), so two runs or two
tests in the same process never share credentials by accident.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

import httpx

from jellyradio.domain.entities import AuthToken, Session
from jellyradio.domain.exceptions import AuthenticationError, ConfigurationError
from jellyradio.domain.ports import ILibraryClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_STATUS_CODES = frozenset({401, 403})
AUTH_MESSAGE_MARKERS = ("unauthorized", "forbidden", "authentication", "token")

DEFAULT_SESSION_LIFETIME = timedelta(hours=23)


def _status_of(error: BaseException) -> int | None:
    for attr in ("http_status", "status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_auth_error(error: BaseException) -> bool:
    """Classify an error as an authentication failure.

    Structured status 401/403 wins. As a fallback heuristic the message is
    searched (case-insensitive) for AUTH_MESSAGE_MARKERS.
    """
    status = _status_of(error)
    if status in AUTH_STATUS_CODES:
        return True
    if isinstance(error, AuthenticationError) and status is None:
        return True
    message = str(error).lower()
    return any(marker in message for marker in AUTH_MESSAGE_MARKERS)


class SessionGuard:
    """Holds the admin session and wraps remote calls with refresh-and-retry-once."""

    def __init__(
        self,
        client: ILibraryClient,
        username: str | None,
        password: str | None,
        session_lifetime: timedelta = DEFAULT_SESSION_LIFETIME,
        session: Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the guard.

        Args:
            client: Remote library client performing the credential exchange
            username: Admin user name
            password: Admin password
            session_lifetime: How long a fresh token is trusted (keep it below the
                server's nominal lifetime)
            session: Pre-seeded session (e.g. a token obtained elsewhere)
            clock: Returns "now" as an aware datetime; injectable for tests
        """
        self._client = client
        self._username = username
        self._password = password
        self._session_lifetime = session_lifetime
        self._session = session or Session()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def session(self) -> Session:
        return self._session

    async def get_valid_token(self) -> AuthToken:
        """Return a valid token, refreshing at most once across concurrent callers.

        Raises:
            AuthenticationError: If the credential exchange is rejected
            ConfigurationError: If no admin credentials are configured
        """
        session = self._session
        if session.token is not None and session.is_valid(self._clock()):
            return session.token

        if session.pending_refresh is None:
            session.pending_refresh = asyncio.ensure_future(self._refresh())
        else:
            logger.debug("Token refresh already in flight, awaiting it")

        # shield: a cancelled waiter must not cancel the refresh other callers share
        return await asyncio.shield(session.pending_refresh)

    async def _refresh(self) -> AuthToken:
        session = self._session
        try:
            if not self._username or not self._password:
                raise ConfigurationError(
                    "Jellyfin admin credentials not configured "
                    "(JELLYFIN__ADMIN_USER / JELLYFIN__ADMIN_PASSWORD)"
                )
            logger.info("Authenticating as admin for library operations")
            token = await self._client.authenticate(self._username, self._password)
            session.token = token
            session.expires_at = self._clock() + self._session_lifetime
            logger.info(f"Admin session established, valid until {session.expires_at.isoformat()}")
            return token
        except Exception as e:
            logger.error(f"Admin authentication failed: {e}")
            raise
        finally:
            session.pending_refresh = None

    def invalidate(self, token: AuthToken | None = None) -> None:
        """Drop the cached token.

        With token given, only drops it if it is still the cached one. A late
        failure from an old token must not throw away a token another caller
        just refreshed.
        """
        if token is None or self._session.token == token:
            self._session.invalidate()

    async def with_auth(self, operation: Callable[[AuthToken], Awaitable[T]]) -> T:
        """Run operation with a valid token; on an auth error refresh once and retry once.

        Args:
            operation: Coroutine function receiving the token to use

        Returns:
            Whatever operation returns

        Raises:
            Whatever operation raises on non-auth errors, or on the retry
        """
        token = await self.get_valid_token()
        try:
            return await operation(token)
        except Exception as e:
            if not is_auth_error(e):
                raise
            logger.info(f"Auth error detected ({e}), refreshing token and retrying once")

        self.invalidate(token)
        fresh = await self.get_valid_token()
        return await operation(fresh)

