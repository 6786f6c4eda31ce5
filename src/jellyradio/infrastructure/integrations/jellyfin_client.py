"""Jellyfin HTTP client implementation."""

import logging
from typing import Any, cast

import httpx

from jellyradio.config.settings import JellyfinSettings
from jellyradio.domain.entities import (
    AuthToken,
    Collection,
    LibraryTrack,
    ScanTask,
    ScanTaskState,
)
from jellyradio.domain.exceptions import AuthenticationError, ExternalServiceError
from jellyradio.domain.ports import ILibraryClient

logger = logging.getLogger(__name__)

TICKS_PER_SECOND = 10_000_000


def _relevance_key(track: LibraryTrack, query: str) -> tuple[Any, ...]:
    # False sorts first: artist exact, artist prefix, artist contains, title contains
    artist = (track.album_artist or "").lower()
    name = track.name.lower()
    return (
        artist != query,
        not artist.startswith(query),
        query not in artist,
        query not in name,
        artist,
        (track.album or "").lower(),
        name,
    )


def sort_by_relevance(tracks: list[LibraryTrack], query: str) -> list[LibraryTrack]:
    """Order search hits by relevance to query. Stable for equal keys."""
    query_lower = query.lower()
    return sorted(tracks, key=lambda track: _relevance_key(track, query_lower))


class JellyfinClient(ILibraryClient):
    """HTTP client for the Jellyfin REST API.

    Hey future me - this client is STATELESS about auth! Every call gets the token
    passed in (SessionGuard decides which one). 401/403 become AuthenticationError
    so the guard can refresh-and-retry, everything else that goes wrong becomes
    ExternalServiceError. Don't let raw httpx exceptions leak out of here.
    """

    def __init__(
        self,
        settings: JellyfinSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize Jellyfin client.

        Args:
            settings: Jellyfin configuration settings
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.url,
                timeout=self.settings.request_timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JellyfinClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Listen future me, Jellyfin identifies clients by this MediaBrowser header. Without
    # Client/Device/DeviceId/Version the server refuses AuthenticateByName with a 400.
    # The token goes both in here AND in X-Emby-Token because older servers only read one.
    def _auth_headers(self, access_token: str | None = None) -> dict[str, str]:
        parts = [
            f'Client="{self.settings.client_name}"',
            f'Device="{self.settings.device_name}"',
            f'DeviceId="{self.settings.device_id}"',
            f'Version="{self.settings.client_version}"',
        ]
        headers: dict[str, str] = {}
        if access_token:
            parts.append(f'Token="{access_token}"')
            headers["X-Emby-Token"] = access_token
        headers["Authorization"] = "MediaBrowser " + ", ".join(parts)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map failures to domain exceptions.

        Raises:
            AuthenticationError: On 401/403
            ExternalServiceError: On any other non-2xx or transport failure
        """
        client = await self._get_client()
        try:
            response = await client.request(
                method, path, headers=self._auth_headers(access_token), **kwargs
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"Jellyfin request failed: {method} {path}: {e}"
            ) from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Jellyfin rejected {method} {path} ({response.status_code} Unauthorized)",
                http_status=response.status_code,
            )
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Jellyfin API error: {response.status_code} {method} {path}",
                http_status=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"Jellyfin returned invalid JSON for {response.request.url.path}"
            ) from e

    async def authenticate(self, username: str, password: str) -> AuthToken:
        response = await self._request(
            "POST",
            "/Users/AuthenticateByName",
            json={"Username": username, "Pw": password},
        )
        data = self._json(response)
        access_token = data.get("AccessToken")
        user_id = (data.get("User") or {}).get("Id")
        if not access_token or not user_id:
            raise AuthenticationError("Jellyfin authentication response lacks token or user")
        logger.debug(f"Authenticated against Jellyfin as {username}")
        return AuthToken(access_token=access_token, user_id=user_id)

    async def get_current_user(self, access_token: str) -> dict[str, Any]:
        response = await self._request("GET", "/Users/Me", access_token)
        return cast(dict[str, Any], self._json(response))

    # Hey future me, SearchHints is MUCH faster than /Items?searchTerm= on big libraries.
    # It can return the same item twice (once via artist, once via title) - dedupe by id.
    # The relevance sort mirrors what users see in the web UI search box.
    async def search(
        self, query: str, limit: int, token: AuthToken
    ) -> list[LibraryTrack]:
        response = await self._request(
            "GET",
            "/Search/Hints",
            token.access_token,
            params={
                "userId": token.user_id,
                "searchTerm": query,
                "includeItemTypes": "Audio",
                "includeMedia": "true",
                "includeArtists": "false",
                "limit": limit,
            },
        )
        hints = self._json(response).get("SearchHints") or []

        tracks: list[LibraryTrack] = []
        seen: set[str] = set()
        for hint in hints:
            item_id = hint.get("Id") or hint.get("ItemId")
            if hint.get("Type") != "Audio" or not item_id or item_id in seen:
                continue
            seen.add(item_id)
            ticks = hint.get("RunTimeTicks")
            tracks.append(
                LibraryTrack(
                    id=item_id,
                    name=hint.get("Name") or "",
                    album_artist=hint.get("AlbumArtist") or None,
                    album=hint.get("Album") or None,
                    duration_seconds=int(ticks) // TICKS_PER_SECOND if ticks else None,
                    image_ref=hint.get("PrimaryImageTag") or None,
                    item_type="Audio",
                )
            )

        return sort_by_relevance(tracks, query)

    async def add_to_playlist(
        self, playlist_id: str, track_ids: list[str], token: AuthToken
    ) -> None:
        if not track_ids:
            return
        await self._request(
            "POST",
            f"/Playlists/{playlist_id}/Items",
            token.access_token,
            params={"ids": ",".join(track_ids), "userId": token.user_id},
        )

    async def create_playlist(
        self, name: str, token: AuthToken, user_id: str | None = None
    ) -> str:
        response = await self._request(
            "POST",
            "/Playlists",
            token.access_token,
            json={
                "Name": name,
                "UserId": user_id or token.user_id,
                "MediaType": "Audio",
                "Ids": [],
            },
        )
        playlist_id = self._json(response).get("Id")
        if not playlist_id:
            raise ExternalServiceError("Jellyfin did not return a playlist id")
        return cast(str, playlist_id)

    async def delete_playlist(self, playlist_id: str, token: AuthToken) -> None:
        await self._request("DELETE", f"/Items/{playlist_id}", token.access_token)

    async def list_collections(self, token: AuthToken) -> list[Collection]:
        response = await self._request(
            "GET", "/Library/VirtualFolders", token.access_token
        )
        return [
            Collection(
                id=folder["ItemId"],
                name=folder.get("Name") or "",
                content_type=folder.get("CollectionType"),
            )
            for folder in self._json(response) or []
            if folder.get("ItemId")
        ]

    # Yo, this refreshes ONE collection (Recursive) - NOT /Library/Refresh, which rescans
    # every library on the server and can take ages on big setups. Default refresh modes
    # only pick up new/changed files, they don't re-fetch all metadata.
    async def trigger_scan(self, collection_id: str, token: AuthToken) -> None:
        await self._request(
            "POST",
            f"/Items/{collection_id}/Refresh",
            token.access_token,
            params={
                "Recursive": "true",
                "MetadataRefreshMode": "Default",
                "ImageRefreshMode": "Default",
                "ReplaceAllMetadata": "false",
                "ReplaceAllImages": "false",
            },
        )

    async def list_active_tasks(self, token: AuthToken) -> list[ScanTask]:
        response = await self._request(
            "GET",
            "/ScheduledTasks",
            token.access_token,
            params={"isHidden": "false"},
        )
        tasks: list[ScanTask] = []
        for task in self._json(response) or []:
            last_result = task.get("LastExecutionResult") or {}
            tasks.append(
                ScanTask(
                    id=task.get("Id") or "",
                    name=task.get("Name") or "",
                    key=task.get("Key") or "",
                    state=ScanTaskState.parse(task.get("State")),
                    progress_percent=task.get("CurrentProgressPercentage"),
                    status_message=last_result.get("Status"),
                )
            )
        return tasks
