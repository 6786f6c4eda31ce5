"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from jellyradio.domain.entities import (
    AcquisitionResult,
    AuthToken,
    Collection,
    LibraryTrack,
    ProgressEvent,
    ScanTask,
    SongSuggestion,
)


# Hey future me, ILibraryClient is THE remote catalog contract (Jellyfin today). Every
# call takes the AuthToken explicitly - there is NO hidden module-level client holding
# session state. The SessionGuard decides which token goes in and retries once on auth
# failures. Implementations MUST raise AuthenticationError for 401/403 so the guard can
# classify them, and ExternalServiceError for everything else that goes wrong.
class ILibraryClient(ABC):
    """Remote media library client."""

    @abstractmethod
    async def authenticate(self, username: str, password: str) -> AuthToken:
        """Exchange credentials for a session token.

        Raises:
            AuthenticationError: If the server rejects the credentials
        """
        pass

    @abstractmethod
    async def get_current_user(self, access_token: str) -> dict[str, Any]:
        """Return the user owning access_token.

        Raises:
            AuthenticationError: If the token is not accepted
        """
        pass

    @abstractmethod
    async def search(
        self, query: str, limit: int, token: AuthToken
    ) -> list[LibraryTrack]:
        """Search the catalog for Audio items."""
        pass

    @abstractmethod
    async def add_to_playlist(
        self, playlist_id: str, track_ids: list[str], token: AuthToken
    ) -> None:
        """Append tracks to a playlist."""
        pass

    @abstractmethod
    async def create_playlist(
        self, name: str, token: AuthToken, user_id: str | None = None
    ) -> str:
        """Create an empty playlist and return its id.

        user_id owns the playlist, defaulting to the token's user.
        """
        pass

    @abstractmethod
    async def delete_playlist(self, playlist_id: str, token: AuthToken) -> None:
        """Delete a playlist."""
        pass

    @abstractmethod
    async def list_collections(self, token: AuthToken) -> list[Collection]:
        """List top-level library collections."""
        pass

    @abstractmethod
    async def trigger_scan(self, collection_id: str, token: AuthToken) -> None:
        """Start a re-index of ONE collection. Returns without waiting."""
        pass

    @abstractmethod
    async def list_active_tasks(self, token: AuthToken) -> list[ScanTask]:
        """List server scheduled tasks with their current state."""
        pass


class ISuggestionSource(ABC):
    """Opaque generator of song suggestions."""

    @abstractmethod
    async def generate(
        self, seed_descriptor: str, mode: str, count: int
    ) -> list[SongSuggestion]:
        """Generate up to count suggestions for a seed.

        Implementations may return malformed payloads; callers treat those as
        an empty list. Raising means the source is unusable.
        """
        pass


class IAcquisitionService(ABC):
    """External tool that fetches audio for a title/artist query."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the tool is installed and runnable."""
        pass

    @abstractmethod
    async def fetch(
        self,
        title: str,
        artist: str,
        album: str | None,
        target_dir: str,
    ) -> AcquisitionResult:
        """Fetch one song into target_dir.

        Failures are reported through AcquisitionResult, not raised.
        """
        pass


class IMusicBrainzClient(ABC):
    """Port for MusicBrainz recording lookups."""

    @abstractmethod
    async def search_recording(
        self,
        artist: str,
        title: str,
        album: str | None = None,
        limit: int = 5,
        strict: bool = True,
    ) -> list[dict[str, Any]]:
        """Search recordings by artist/title (and album when given).

        strict=True quotes every field (exact phrases), strict=False sends a
        plain keyword query for fuzzier hits.
        """
        pass


ProgressListener = Callable[[ProgressEvent], Awaitable[None]]


__all__ = [
    "IAcquisitionService",
    "ILibraryClient",
    "IMusicBrainzClient",
    "ISuggestionSource",
    "ProgressListener",
]
