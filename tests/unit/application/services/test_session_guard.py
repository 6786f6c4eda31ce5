"""Tests for SessionGuard single-flight authentication and retry-once."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from jellyradio.application.services.session_guard import SessionGuard, is_auth_error
from jellyradio.domain.entities import AuthToken, Session
from jellyradio.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExternalServiceError,
)
from jellyradio.domain.ports import ILibraryClient


class FakeClock:
    """Controllable 'now' for session expiry."""

    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def client() -> AsyncMock:
    mock = AsyncMock(spec=ILibraryClient)
    mock.authenticate.side_effect = [
        AuthToken(access_token="token-1", user_id="admin"),
        AuthToken(access_token="token-2", user_id="admin"),
        AuthToken(access_token="token-3", user_id="admin"),
    ]
    return mock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def guard(client: AsyncMock, clock: FakeClock) -> SessionGuard:
    return SessionGuard(
        client,
        username="admin",
        password="secret",
        session_lifetime=timedelta(hours=23),
        clock=clock,
    )


class TestIsAuthError:
    """Test classification of auth failures."""

    def test_authentication_error_without_status(self) -> None:
        assert is_auth_error(AuthenticationError("rejected")) is True

    def test_structured_401(self) -> None:
        assert is_auth_error(AuthenticationError("rejected", http_status=401)) is True

    def test_httpx_status_error_403(self) -> None:
        request = httpx.Request("GET", "http://jellyfin/Users/Me")
        response = httpx.Response(403, request=request)
        error = httpx.HTTPStatusError("Forbidden", request=request, response=response)

        assert is_auth_error(error) is True

    def test_message_markers(self) -> None:
        assert is_auth_error(RuntimeError("401 Unauthorized")) is True
        assert is_auth_error(RuntimeError("Invalid TOKEN supplied")) is True

    def test_other_errors_are_not_auth(self) -> None:
        assert is_auth_error(ExternalServiceError("boom", http_status=500)) is False
        assert is_auth_error(ValueError("disk full")) is False


class TestGetValidToken:
    """Test token caching and refresh."""

    @pytest.mark.asyncio
    async def test_first_call_authenticates(
        self, guard: SessionGuard, client: AsyncMock, clock: FakeClock
    ) -> None:
        token = await guard.get_valid_token()

        assert token.access_token == "token-1"
        client.authenticate.assert_awaited_once_with("admin", "secret")
        assert guard.session.expires_at == clock.now + timedelta(hours=23)

    @pytest.mark.asyncio
    async def test_cached_token_reused(self, guard: SessionGuard, client: AsyncMock) -> None:
        first = await guard.get_valid_token()
        second = await guard.get_valid_token()

        assert first is second
        assert client.authenticate.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_token_refreshed(
        self, guard: SessionGuard, client: AsyncMock, clock: FakeClock
    ) -> None:
        await guard.get_valid_token()
        clock.now += timedelta(hours=23, seconds=1)

        token = await guard.get_valid_token()

        assert token.access_token == "token-2"
        assert client.authenticate.await_count == 2

    @pytest.mark.asyncio
    async def test_preseeded_session_skips_authentication(
        self, client: AsyncMock, clock: FakeClock
    ) -> None:
        seeded = AuthToken(access_token="seeded", user_id="admin")
        guard = SessionGuard(
            client,
            username="admin",
            password="secret",
            session=Session(token=seeded, expires_at=clock.now + timedelta(hours=1)),
            clock=clock,
        )

        assert await guard.get_valid_token() == seeded
        client.authenticate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(
        self, guard: SessionGuard, client: AsyncMock
    ) -> None:
        release = asyncio.Event()

        async def slow_authenticate(username: str, password: str) -> AuthToken:
            await release.wait()
            return AuthToken(access_token="shared", user_id="admin")

        client.authenticate.side_effect = slow_authenticate

        waiters = [asyncio.ensure_future(guard.get_valid_token()) for _ in range(10)]
        await asyncio.sleep(0)
        release.set()
        tokens = await asyncio.gather(*waiters)

        assert client.authenticate.await_count == 1
        assert {token.access_token for token in tokens} == {"shared"}
        assert guard.session.pending_refresh is None

    @pytest.mark.asyncio
    async def test_failed_refresh_reaches_every_waiter_and_clears_pending(
        self, guard: SessionGuard, client: AsyncMock
    ) -> None:
        client.authenticate.side_effect = AuthenticationError("bad password", http_status=401)

        results = await asyncio.gather(
            guard.get_valid_token(), guard.get_valid_token(), return_exceptions=True
        )

        assert all(isinstance(r, AuthenticationError) for r in results)
        assert client.authenticate.await_count == 1
        assert guard.session.pending_refresh is None

    @pytest.mark.asyncio
    async def test_missing_credentials_raise_configuration_error(
        self, client: AsyncMock
    ) -> None:
        guard = SessionGuard(client, username=None, password=None)

        with pytest.raises(ConfigurationError):
            await guard.get_valid_token()

        client.authenticate.assert_not_awaited()
        assert guard.session.pending_refresh is None


class TestInvalidate:
    """Test token invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_without_token_clears(self, guard: SessionGuard) -> None:
        await guard.get_valid_token()
        guard.invalidate()

        assert guard.session.token is None

    @pytest.mark.asyncio
    async def test_stale_token_does_not_clear_fresh_one(self, guard: SessionGuard) -> None:
        current = await guard.get_valid_token()

        guard.invalidate(AuthToken(access_token="old", user_id="admin"))
        assert guard.session.token == current

        guard.invalidate(current)
        assert guard.session.token is None


class TestWithAuth:
    """Test refresh-and-retry-once."""

    @pytest.mark.asyncio
    async def test_success_passes_token(self, guard: SessionGuard) -> None:
        operation = AsyncMock(return_value="ok")

        assert await guard.with_auth(operation) == "ok"
        operation.assert_awaited_once_with(AuthToken(access_token="token-1", user_id="admin"))

    @pytest.mark.asyncio
    async def test_auth_error_refreshes_and_retries_once(
        self, guard: SessionGuard, client: AsyncMock
    ) -> None:
        operation = AsyncMock(
            side_effect=[AuthenticationError("expired", http_status=401), "ok"]
        )

        assert await guard.with_auth(operation) == "ok"

        assert client.authenticate.await_count == 2
        used = [call.args[0].access_token for call in operation.await_args_list]
        assert used == ["token-1", "token-2"]

    @pytest.mark.asyncio
    async def test_second_auth_error_propagates(
        self, guard: SessionGuard, client: AsyncMock
    ) -> None:
        operation = AsyncMock(side_effect=AuthenticationError("still no", http_status=401))

        with pytest.raises(AuthenticationError):
            await guard.with_auth(operation)

        assert operation.await_count == 2
        assert client.authenticate.await_count == 2

    @pytest.mark.asyncio
    async def test_non_auth_error_not_retried(
        self, guard: SessionGuard, client: AsyncMock
    ) -> None:
        operation = AsyncMock(side_effect=ExternalServiceError("boom", http_status=500))

        with pytest.raises(ExternalServiceError):
            await guard.with_auth(operation)

        assert operation.await_count == 1
        assert client.authenticate.await_count == 1
