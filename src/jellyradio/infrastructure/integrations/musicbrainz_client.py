"""MusicBrainz recording search, used to tag freshly downloaded files.

Hey future me, MusicBrainz is STRICT about rate limiting - 1 req/sec per client, NO
EXCEPTIONS! A radio run finishes up to K downloads at the same moment and every one
of them wants a lookup, so all requests queue behind one RequestSpacer.
"""

import asyncio
import logging
from types import TracebackType
from typing import Any, cast

import httpx

from jellyradio.config.settings import MusicBrainzSettings
from jellyradio.domain.ports import IMusicBrainzClient

logger = logging.getLogger(__name__)


class RequestSpacer:
    """Serializes callers and keeps at least `interval` seconds between them.

    The timestamp is taken when a caller LEAVES, so a slow response doesn't
    let the next request go out early.
    """

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._lock = asyncio.Lock()
        self._released_at: float | None = None

    async def __aenter__(self) -> None:
        await self._lock.acquire()
        if self._released_at is None:
            return
        wait = self.interval - (asyncio.get_running_loop().time() - self._released_at)
        if wait > 0:
            await asyncio.sleep(wait)

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._released_at = asyncio.get_running_loop().time()
        self._lock.release()


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_recording_query(
    artist: str, title: str, album: str | None = None, strict: bool = True
) -> str:
    """Lucene query for /recording.

    strict quotes each field as an exact phrase. Broad mode just joins the words,
    which lets MusicBrainz match "Dont Stop Me Now" against "Don't Stop Me Now".
    """
    if not strict:
        return " ".join(part for part in (title, artist, album) if part)

    fields = (("recording", title), ("artist", artist), ("release", album))
    return " AND ".join(f"{name}:{_quote(value)}" for name, value in fields if value)


class MusicBrainzClient(IMusicBrainzClient):
    """Rate-limited MusicBrainz web service client (JSON)."""

    API_BASE_URL = "https://musicbrainz.org/ws/2"
    RATE_LIMIT_DELAY = 1.0

    def __init__(
        self,
        settings: MusicBrainzSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize MusicBrainz client.

        Args:
            settings: App identity sent in the User-Agent
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._spacer = RequestSpacer(self.RATE_LIMIT_DELAY)

    @property
    def user_agent(self) -> str:
        # MusicBrainz answers 403 without "AppName/Version ( contact )"
        return (
            f"{self.settings.app_name}/{self.settings.app_version} "
            f"( {self.settings.contact} )"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE_URL,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=30.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MusicBrainzClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Send one request once the spacer lets us through.

        Raises:
            httpx.HTTPError: If the request fails
        """
        client = await self._get_client()
        async with self._spacer:
            return await client.request(method, url, **kwargs)

    async def search_recording(
        self,
        artist: str,
        title: str,
        album: str | None = None,
        limit: int = 5,
        strict: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Search recordings, best match first.

        Raises:
            httpx.HTTPStatusError: On a non-2xx answer (503 when we got throttled)
        """
        query = build_recording_query(artist, title, album, strict)
        logger.debug(f"MusicBrainz recording search: {query}")

        response = await self._rate_limited_request(
            "GET",
            "/recording",
            params={"query": query, "fmt": "json", "limit": limit},
        )
        response.raise_for_status()
        return cast(list[dict[str, Any]], response.json().get("recordings", []))
