"""External service integrations (Jellyfin, suggestion API, yt-dlp, MusicBrainz)."""

from jellyradio.infrastructure.integrations.jellyfin_client import JellyfinClient
from jellyradio.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from jellyradio.infrastructure.integrations.openai_suggestion_source import (
    OpenAISuggestionSource,
)
from jellyradio.infrastructure.integrations.ytdlp_acquisition import (
    YtDlpAcquisitionService,
)

__all__ = [
    "JellyfinClient",
    "MusicBrainzClient",
    "OpenAISuggestionSource",
    "YtDlpAcquisitionService",
]
