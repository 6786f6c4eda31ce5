"""Use case for downloading ONE song and (optionally) adding it to a playlist.

Hey future me - this is the "a song is missing, grab it" button. The radio run
does the same thing for a whole batch, this one does it for one song:

1. Download dir configured + yt-dlp healthy? Otherwise SetupError (503)
2. Fetch the song. Failed download = SetupError (502), nothing to scan for
3. Trigger ONE scoped library re-index. A failure here is only reported, the file
   is on disk and Jellyfin's own scheduled scan will pick it up eventually
4. With a playlist_id: wait for the scan (poller, not a fixed sleep), search the
   song and add it. Problems end up in playlist_error, never raised.
"""

import logging
from dataclasses import dataclass
from typing import Any

from jellyradio.application.use_cases import UseCase
from jellyradio.application.use_cases.synthesize_playlist import (
    REASON_NO_DOWNLOAD_DIR,
    REASON_TOOL_UNAVAILABLE,
    LibraryPipelineSteps,
)
from jellyradio.domain.entities import SongSuggestion, SynthesisPhase
from jellyradio.domain.exceptions import ConfigurationError, SetupError
from jellyradio.infrastructure.observability.logger_template import log_operation
from jellyradio.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)


@dataclass
class AcquireSongRequest:
    """Request to download one song."""

    title: str
    artist: str
    album: str | None = None
    playlist_id: str | None = None


@dataclass
class AcquireSongResult:
    """Outcome of a single-song download.

    The download itself succeeded (otherwise SetupError was raised). Scan and
    playlist problems are reported in scan_error / playlist_error.
    """

    title: str
    artist: str
    file_path: str | None = None
    scan_triggered: bool = False
    scan_error: str | None = None
    added_to_playlist: bool = False
    playlist_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "file_path": self.file_path,
            "scan_triggered": self.scan_triggered,
            "scan_error": self.scan_error,
            "added_to_playlist": self.added_to_playlist,
            "playlist_error": self.playlist_error,
        }


class AcquireSongUseCase(
    LibraryPipelineSteps, UseCase[AcquireSongRequest, AcquireSongResult]
):
    """Download one song, re-index, add it to a playlist."""

    async def execute(self, request: AcquireSongRequest) -> AcquireSongResult:
        """Download the song and wire it into the library.

        Raises:
            SetupError: Download impossible (no dir, tool missing) or failed
        """
        set_correlation_id()
        try:
            async with log_operation(
                logger,
                "song_acquisition",
                title=request.title,
                artist=request.artist,
                playlist_id=request.playlist_id,
            ):
                return await self._run(request)
        finally:
            self._progress.close()

    async def _run(self, request: AcquireSongRequest) -> AcquireSongResult:
        suggestion = SongSuggestion(
            title=request.title, artist=request.artist, album=request.album
        )

        download_dir = self._options.download_dir
        if not download_dir:
            raise SetupError(
                f"Cannot download {suggestion.label}: {REASON_NO_DOWNLOAD_DIR}",
                cause=ConfigurationError(REASON_NO_DOWNLOAD_DIR),
            )
        if not await self._acquisition_available():
            raise SetupError(
                f"Cannot download {suggestion.label}: {REASON_TOOL_UNAVAILABLE}",
                cause=ConfigurationError(REASON_TOOL_UNAVAILABLE),
            )

        await self._progress.emit(
            SynthesisPhase.ACQUIRE, f"Downloading {suggestion.label}", pending=1
        )
        fetched = await self._fetch(suggestion, download_dir)
        if fetched.error is not None:
            raise SetupError(
                f"Failed to download {suggestion.label}: {fetched.error.message}",
                cause=fetched.error,
            )
        logger.info(f"Downloaded {suggestion.label} to {fetched.result.file_path}")

        result = AcquireSongResult(
            title=request.title,
            artist=request.artist,
            file_path=fetched.result.file_path,
        )

        await self._progress.emit(
            SynthesisPhase.RESCAN, "Scanning library for the downloaded song"
        )
        result.scan_error = await self._trigger_download_scan()
        result.scan_triggered = result.scan_error is None
        if result.scan_error is not None:
            logger.warning(f"Library scan not triggered: {result.scan_error}")

        if request.playlist_id and result.scan_triggered:
            timeout = await self._await_download_scan()
            if timeout is not None:
                # Still worth a search, the song may already be indexed
                logger.warning(timeout.message)

            await self._progress.emit(
                SynthesisPhase.ADD_DOWNLOADED,
                f"Adding {suggestion.label} to playlist",
                downloaded=1,
            )
            added = await self._search_and_add_downloaded(
                request.playlist_id, suggestion
            )
            result.added_to_playlist = added.added
            if added.error is not None:
                result.playlist_error = added.error.message
                logger.warning(added.error.message)

        await self._progress.emit(
            SynthesisPhase.COMPLETED,
            f"Downloaded {suggestion.label}",
            downloaded=1,
            added=int(result.added_to_playlist),
        )
        return result
