"""Domain entities for radio playlist synthesis.

Hey future me - these are plain dataclasses, NO I/O in here! Everything the
pipeline passes around lives in this module:

- SongSuggestion: what the suggestion source wants us to play (immutable)
- LibraryTrack: read-only projection of a Jellyfin Audio item
- MatchResult: transient result of fuzzy matching one suggestion
- ScanTask: a Jellyfin scheduled task, observed only (we never create one)
- Session / AuthToken: admin session state owned by the SessionGuard
- SynthesisResult: the accumulated output of ONE pipeline run
"""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class SongSuggestion:
    """A song the suggestion source wants in the playlist."""

    title: str
    artist: str
    album: str | None = None
    reason: str | None = None

    @property
    def label(self) -> str:
        """Human-readable label used in error strings and logs."""
        return f'"{self.title}" by {self.artist}'

    @classmethod
    def from_dict(cls, data: Any) -> "SongSuggestion | None":
        """Build from a loosely-typed payload item.

        Returns None when the item is not a mapping or lacks a non-blank
        title/artist. Extra keys are ignored.
        """
        if not isinstance(data, dict):
            return None
        title = data.get("title")
        artist = data.get("artist")
        if not isinstance(title, str) or not isinstance(artist, str):
            return None
        if not title.strip() or not artist.strip():
            return None
        album = data.get("album")
        reason = data.get("reason")
        return cls(
            title=title.strip(),
            artist=artist.strip(),
            album=album.strip() if isinstance(album, str) and album.strip() else None,
            reason=reason if isinstance(reason, str) else None,
        )


@dataclass(frozen=True)
class LibraryTrack:
    """Read-only projection of a remote catalog Audio item."""

    id: str
    name: str
    album_artist: str | None = None
    album: str | None = None
    duration_seconds: int | None = None
    image_ref: str | None = None
    item_type: str = "Audio"


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one suggestion against a list of candidates.

    track is None when no candidate cleared the acceptance threshold.
    """

    suggestion: SongSuggestion
    track: LibraryTrack | None
    score: int

    @property
    def matched(self) -> bool:
        return self.track is not None


class ScanTaskState(str, Enum):
    """Jellyfin scheduled task states."""

    IDLE = "Idle"
    RUNNING = "Running"
    CANCELLING = "Cancelling"
    CANCELLED = "Cancelled"

    @property
    def is_active(self) -> bool:
        """Running and Cancelling still hold the library, anything else is settled."""
        return self in (ScanTaskState.RUNNING, ScanTaskState.CANCELLING)

    @classmethod
    def parse(cls, value: Any) -> "ScanTaskState":
        # Unknown states count as settled so a weird server never blocks us forever
        for state in cls:
            if isinstance(value, str) and state.value.lower() == value.lower():
                return state
        return cls.IDLE


@dataclass(frozen=True)
class ScanTask:
    """A server-side scheduled task (re-index job), observed by polling."""

    id: str
    name: str
    key: str
    state: ScanTaskState
    progress_percent: float | None = None
    status_message: str | None = None

    def matches_any(self, keywords: tuple[str, ...] | list[str]) -> bool:
        """True when name or key contains one of the keywords (case-insensitive)."""
        haystack = f"{self.name} {self.key}".lower()
        return any(keyword.lower() in haystack for keyword in keywords)


@dataclass(frozen=True)
class Collection:
    """A top-level library collection (Jellyfin virtual folder)."""

    id: str
    name: str
    content_type: str | None = None


@dataclass(frozen=True)
class AuthToken:
    """Credential handed to every remote call."""

    access_token: str
    user_id: str


@dataclass
class Session:
    """Admin session state for ONE orchestrator run.

    Hey future me - pending_refresh is the single-flight handle! While a
    credential exchange is in flight every other caller awaits THIS future
    instead of starting its own exchange. Only the SessionGuard mutates this.
    """

    token: AuthToken | None = None
    expires_at: datetime | None = None
    pending_refresh: "asyncio.Future[AuthToken] | None" = None

    def is_valid(self, now: datetime | None = None) -> bool:
        if self.token is None or self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) < self.expires_at

    def invalidate(self) -> None:
        self.token = None
        self.expires_at = None


@dataclass(frozen=True)
class AcquisitionResult:
    """Result of one acquisition fetch."""

    success: bool
    file_path: str | None = None
    error: str | None = None


@dataclass
class SynthesisResult:
    """Accumulated output of one pipeline run.

    Owned exclusively by one run. Counters are only touched at phase
    boundaries, after that phase's concurrent operations have settled.
    """

    playlist_id: str
    playlist_name: str
    total_suggestions: int = 0
    found_count: int = 0
    downloaded_count: int = 0
    added_count: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SynthesisPhase(str, Enum):
    """Pipeline phases published on the progress channel."""

    SUGGESTIONS = "suggestions"
    SEARCH = "search"
    ADD_FOUND = "add_found"
    ACQUIRE = "acquire"
    RESCAN = "rescan"
    ADD_DOWNLOADED = "add_downloaded"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update published by the orchestrator."""

    phase: SynthesisPhase
    message: str
    counters: dict[str, int] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


__all__ = [
    "AcquisitionResult",
    "AuthToken",
    "Collection",
    "LibraryTrack",
    "MatchResult",
    "ProgressEvent",
    "ScanTask",
    "ScanTaskState",
    "Session",
    "SongSuggestion",
    "SynthesisPhase",
    "SynthesisResult",
]
