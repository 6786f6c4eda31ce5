"""Use case for synthesizing a radio playlist from a seed.

Hey future me - this is THE pipeline! A seed ("Daft Punk", "Around the World by
Daft Punk") goes in, a populated Jellyfin playlist comes out. The flow:

0. Ask the suggestion source for N songs (garbage payload = empty list, not an error)
1. Search the library for every suggestion, all at once
2. Add every found track to the playlist, all at once
3. Download the misses with yt-dlp in sequential batches of K (K in flight max)
4. ONE scoped library re-index for the whole run, wait for it (120s default)
5. Search + add the downloaded songs

Each phase is a barrier: phase n+1 starts after ALL of phase n settled. Inside a
phase nothing is ordered, so playlist order follows COMPLETION order, not
suggestion order.

ERROR POLICY (important!):
- Setup failures (caller token rejected, no admin session, suggestion source down,
  playlist creation failed) raise SetupError. That's the ONLY thing that escapes.
- Everything inside phases 1-5 is captured as a per-suggestion outcome value
  carrying a MatchError / PlaylistAddError / AcquisitionError, and rendered into
  SynthesisResult.errors. A run where nothing got added is still a successful run -
  callers look at the counters.

Counters are only written at phase boundaries, after that phase's gather() returned.
The per-song steps live on LibraryPipelineSteps so the single-song download flow
(acquire_song.py) runs exactly the same search/add/fetch/scan code.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from jellyradio.application.services.library_index_poller import LibraryIndexPoller
from jellyradio.application.services.progress import ProgressChannel
from jellyradio.application.services.session_guard import SessionGuard
from jellyradio.application.use_cases import UseCase
from jellyradio.config.settings import Settings
from jellyradio.domain.entities import (
    AcquisitionResult,
    LibraryTrack,
    ScanTask,
    SongSuggestion,
    SynthesisPhase,
    SynthesisResult,
)
from jellyradio.domain.exceptions import (
    AcquisitionError,
    AuthenticationError,
    DomainException,
    MatchError,
    PlaylistAddError,
    ScanTimeoutError,
    SetupError,
)
from jellyradio.domain.ports import (
    IAcquisitionService,
    ILibraryClient,
    ISuggestionSource,
)
from jellyradio.domain.value_objects.fuzzy_match import best_match, build_queries
from jellyradio.infrastructure.observability.logger_template import log_operation
from jellyradio.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)

REASON_NO_DOWNLOAD_DIR = "download directory not configured"
REASON_TOOL_UNAVAILABLE = "acquisition tool not available"
SCAN_TRIGGER_FAILED = "Failed to trigger library scan for downloaded songs"
SCAN_TIMED_OUT = (
    "Library scan timed out - downloaded songs may not be available immediately"
)


@dataclass
class SynthesizePlaylistRequest:
    """Request to build a radio playlist.

    Hey future me - caller_token is the END USER's Jellyfin token (X-Emby-Token).
    It's only verified and used to pick the playlist owner. Every actual library
    call runs with the admin session held by the SessionGuard.
    """

    seed: str
    mode: str = "radio"  # "radio" or "similar"
    count: int = 25
    caller_token: str | None = None


@dataclass
class SynthesisOptions:
    """Operator knobs of the pipeline."""

    download_dir: str | None = None
    concurrency: int = 3
    search_limit: int = 50
    collection_type: str = "music"
    scan_max_wait_seconds: float = 120.0
    scan_poll_interval_seconds: float = 3.0
    playlist_suffix: str = " Radio"

    @classmethod
    def from_settings(cls, settings: Settings) -> "SynthesisOptions":
        return cls(
            download_dir=settings.acquisition.download_dir,
            concurrency=settings.acquisition.concurrency,
            search_limit=settings.jellyfin.search_limit,
            collection_type=settings.scan.collection_type,
            scan_max_wait_seconds=settings.scan.max_wait_seconds,
            scan_poll_interval_seconds=settings.scan.poll_interval_seconds,
            playlist_suffix=settings.radio.playlist_suffix,
        )


# Tagged per-suggestion outcomes. Steps return these instead of raising.


@dataclass(frozen=True)
class SearchOutcome:
    suggestion: SongSuggestion
    track: LibraryTrack | None = None
    error: MatchError | None = None


@dataclass(frozen=True)
class AddOutcome:
    suggestion: SongSuggestion
    error: PlaylistAddError | None = None

    @property
    def added(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AcquireOutcome:
    suggestion: SongSuggestion
    result: AcquisitionResult

    @property
    def error(self) -> AcquisitionError | None:
        if self.result.success:
            return None
        return AcquisitionError(self.result.error or "unknown error")


def _describe(error: BaseException) -> str:
    if isinstance(error, DomainException):
        return error.message
    return str(error) or type(error).__name__


class LibraryPipelineSteps:
    """Per-song steps shared by the radio pipeline and the single-song download.

    Nothing here raises for a per-song failure, everything comes back as an outcome.
    """

    def __init__(
        self,
        client: ILibraryClient,
        guard: SessionGuard,
        poller: LibraryIndexPoller,
        acquisition: IAcquisitionService,
        options: SynthesisOptions | None = None,
        progress: ProgressChannel | None = None,
    ) -> None:
        """Initialize the steps.

        Args:
            client: Remote library client
            guard: Session guard wrapping every library call
            poller: Re-index trigger/poller
            acquisition: Downloader for songs missing from the library
            options: Pipeline knobs (defaults when None)
            progress: Channel receiving phase/counter updates
        """
        self._client = client
        self._guard = guard
        self._poller = poller
        self._acquisition = acquisition
        self._options = options or SynthesisOptions()
        self._progress = progress or ProgressChannel()

    async def _search(self, suggestion: SongSuggestion) -> SearchOutcome:
        """Try each query in order, stop at the first accepted match."""
        limit = self._options.search_limit
        try:
            for query in build_queries(suggestion):
                candidates = await self._guard.with_auth(
                    lambda token, q=query: self._client.search(q, limit, token)
                )
                match = best_match(suggestion, candidates)
                if match.track is not None:
                    logger.debug(
                        f"Matched {suggestion.label} -> '{match.track.name}' "
                        f"(score {match.score}, query '{query}')"
                    )
                    return SearchOutcome(suggestion=suggestion, track=match.track)
        except Exception as e:
            logger.warning(f"Search failed for {suggestion.label}: {e}")
            return SearchOutcome(suggestion=suggestion, error=MatchError(_describe(e)))
        return SearchOutcome(suggestion=suggestion)

    async def _add(
        self, playlist_id: str, suggestion: SongSuggestion, track: LibraryTrack
    ) -> AddOutcome:
        try:
            await self._guard.with_auth(
                lambda token: self._client.add_to_playlist(playlist_id, [track.id], token)
            )
        except Exception as e:
            logger.warning(f"Adding '{track.name}' to playlist failed: {e}")
            return AddOutcome(suggestion=suggestion, error=PlaylistAddError(_describe(e)))
        logger.debug(f"Added '{track.name}' to playlist")
        return AddOutcome(suggestion=suggestion)

    async def _fetch(self, suggestion: SongSuggestion, target_dir: str) -> AcquireOutcome:
        try:
            result = await self._acquisition.fetch(
                suggestion.title, suggestion.artist, suggestion.album, target_dir
            )
        except Exception as e:
            result = AcquisitionResult(success=False, error=_describe(e))
        return AcquireOutcome(suggestion=suggestion, result=result)

    async def _acquisition_available(self) -> bool:
        try:
            return bool(await self._acquisition.health_check())
        except Exception as e:
            logger.warning(f"Acquisition health check failed: {e}")
            return False

    async def _trigger_download_scan(self) -> str | None:
        """Start ONE scoped re-index. Returns why it couldn't be started, or None."""
        collection_type = self._options.collection_type
        try:
            collection_id = await self._poller.find_collection_id(collection_type)
            if collection_id is None:
                return f"no '{collection_type}' collection in library"
            await self._poller.trigger_scan(collection_id)
        except Exception as e:
            logger.warning(f"Library scan trigger failed: {e}")
            return _describe(e)
        return None

    async def _await_download_scan(self) -> ScanTimeoutError | None:
        async def report(active: list[ScanTask], elapsed: float) -> None:
            names = ", ".join(task.name for task in active)
            await self._progress.emit(
                SynthesisPhase.RESCAN,
                f"Library scan still running after {elapsed:.0f}s ({names})",
                elapsed_seconds=int(elapsed),
            )

        completed = await self._poller.await_scan_completion(
            self._options.scan_max_wait_seconds,
            self._options.scan_poll_interval_seconds,
            on_progress=report,
        )
        return None if completed else ScanTimeoutError(SCAN_TIMED_OUT)

    async def _search_and_add_downloaded(
        self, playlist_id: str, suggestion: SongSuggestion
    ) -> AddOutcome:
        search = await self._search(suggestion)
        if search.error is not None:
            return AddOutcome(
                suggestion=suggestion,
                error=PlaylistAddError(
                    f"Search error for {suggestion.label}: {search.error.message}"
                ),
            )
        if search.track is None:
            return AddOutcome(
                suggestion=suggestion,
                error=PlaylistAddError(
                    f"Downloaded {suggestion.label} but couldn't find it in library after scan"
                ),
            )
        added = await self._add(playlist_id, suggestion, search.track)
        if added.error is not None:
            return AddOutcome(
                suggestion=suggestion,
                error=PlaylistAddError(
                    f"Failed to add downloaded {suggestion.label} to playlist: "
                    f"{added.error.message}"
                ),
            )
        return added


class SynthesizePlaylistUseCase(
    LibraryPipelineSteps, UseCase[SynthesizePlaylistRequest, SynthesisResult]
):
    """Reconcile suggestions against the library, fetch the misses, fill the playlist."""

    def __init__(
        self,
        client: ILibraryClient,
        guard: SessionGuard,
        poller: LibraryIndexPoller,
        suggestion_source: ISuggestionSource,
        acquisition: IAcquisitionService,
        options: SynthesisOptions | None = None,
        progress: ProgressChannel | None = None,
    ) -> None:
        """Initialize the use case.

        Args:
            client: Remote library client
            guard: Session guard wrapping every library call
            poller: Re-index trigger/poller
            suggestion_source: Where the songs come from
            acquisition: Downloader for songs missing from the library
            options: Pipeline knobs (defaults when None)
            progress: Channel receiving phase/counter updates
        """
        super().__init__(client, guard, poller, acquisition, options, progress)
        self._suggestions = suggestion_source

    async def execute(self, request: SynthesizePlaylistRequest) -> SynthesisResult:
        """Run the whole pipeline.

        Progress subscriptions are closed when the run ends, also on SetupError.

        Returns:
            SynthesisResult with counters and per-suggestion error strings

        Raises:
            SetupError: If the run cannot start (see module docstring)
        """
        set_correlation_id()
        try:
            async with log_operation(
                logger,
                "radio_synthesis",
                seed=request.seed,
                mode=request.mode,
                count=request.count,
            ):
                return await self._run(request)
        finally:
            self._progress.close()

    async def _run(self, request: SynthesizePlaylistRequest) -> SynthesisResult:
        owner_id = await self._verify_caller(request.caller_token)
        await self._ensure_session()

        suggestions = await self._fetch_suggestions(request)
        playlist_name = f"{request.seed.strip()}{self._options.playlist_suffix}"
        playlist_id = await self._create_playlist(playlist_name, owner_id)

        result = SynthesisResult(
            playlist_id=playlist_id,
            playlist_name=playlist_name,
            total_suggestions=len(suggestions),
        )

        # Phase 1
        await self._progress.emit(
            SynthesisPhase.SEARCH,
            f"Searching library for {len(suggestions)} songs",
            total=len(suggestions),
        )
        searches = await asyncio.gather(*(self._search(s) for s in suggestions))
        found = [o for o in searches if o.track is not None]
        missing = [o.suggestion for o in searches if o.track is None and o.error is None]
        for outcome in searches:
            if outcome.error is not None:
                self._record(
                    result,
                    f"Search error for {outcome.suggestion.label}: {outcome.error.message}",
                )
        logger.info(
            f"Found {len(found)} songs in library, {len(missing)} need downloading"
        )

        # Phase 2
        await self._progress.emit(
            SynthesisPhase.ADD_FOUND,
            f"Adding {len(found)} found songs to playlist",
            found=len(found),
        )
        adds = await asyncio.gather(
            *(
                self._add(playlist_id, o.suggestion, o.track)
                for o in found
                if o.track is not None
            )
        )
        added = sum(1 for a in adds if a.added)
        result.found_count = added
        result.added_count += added
        for add in adds:
            if add.error is not None:
                self._record(
                    result,
                    f"Failed to add {add.suggestion.label} to playlist: "
                    f"{add.error.message}",
                )

        # Phase 3
        downloaded = await self._acquire_missing(missing, result)

        if downloaded:
            # Phase 4
            await self._rescan(result)
            # Phase 5
            await self._add_downloaded(playlist_id, downloaded, result)

        await self._progress.emit(
            SynthesisPhase.COMPLETED,
            f"Added {result.added_count}/{result.total_suggestions} songs to '{playlist_name}'",
            added=result.added_count,
            found=result.found_count,
            downloaded=result.downloaded_count,
            errors=len(result.errors),
        )
        logger.info(
            f"Radio playlist '{playlist_name}' done: {result.added_count}/"
            f"{result.total_suggestions} added (found {result.found_count}, "
            f"downloaded {result.downloaded_count}, {len(result.errors)} errors)"
        )
        return result

    # -------------------------------------------------------------------------
    # Setup (the only failures that abort a run)
    # -------------------------------------------------------------------------

    async def _verify_caller(self, caller_token: str | None) -> str | None:
        if not caller_token:
            return None
        try:
            user = await self._client.get_current_user(caller_token)
        except AuthenticationError as e:
            raise SetupError("Invalid authentication", cause=e) from e
        except Exception as e:
            raise SetupError(f"Could not verify caller: {_describe(e)}", cause=e) from e
        user_id = user.get("Id")
        return str(user_id) if user_id else None

    async def _ensure_session(self) -> None:
        try:
            await self._guard.get_valid_token()
        except Exception as e:
            raise SetupError(
                f"No valid library session: {_describe(e)}", cause=e
            ) from e

    async def _fetch_suggestions(
        self, request: SynthesizePlaylistRequest
    ) -> list[SongSuggestion]:
        await self._progress.emit(
            SynthesisPhase.SUGGESTIONS,
            f"Generating {request.count} suggestions for '{request.seed}'",
        )
        try:
            payload: Any = await self._suggestions.generate(
                request.seed, request.mode, request.count
            )
        except Exception as e:
            raise SetupError(
                f"Suggestion source unavailable: {_describe(e)}", cause=e
            ) from e

        suggestions = self._coerce_suggestions(payload)
        logger.info(f"Got {len(suggestions)} suggestions for '{request.seed}'")
        return suggestions

    @staticmethod
    def _coerce_suggestions(payload: Any) -> list[SongSuggestion]:
        # Malformed or wrong-shaped payloads degrade to an empty list
        if not isinstance(payload, (list, tuple)):
            if payload is not None:
                logger.warning(
                    f"Suggestion payload is {type(payload).__name__}, not a list - ignoring it"
                )
            return []

        suggestions: list[SongSuggestion] = []
        for item in payload:
            if isinstance(item, SongSuggestion):
                suggestions.append(item)
                continue
            parsed = SongSuggestion.from_dict(item)
            if parsed is not None:
                suggestions.append(parsed)
        if len(suggestions) < len(payload):
            logger.warning(
                f"Dropped {len(payload) - len(suggestions)} malformed suggestions"
            )
        return suggestions

    async def _create_playlist(self, name: str, owner_id: str | None) -> str:
        try:
            playlist_id = await self._guard.with_auth(
                lambda token: self._client.create_playlist(name, token, user_id=owner_id)
            )
        except Exception as e:
            raise SetupError(f"Failed to create playlist: {_describe(e)}", cause=e) from e
        logger.info(f"Created playlist '{name}' ({playlist_id})")
        return playlist_id

    # -------------------------------------------------------------------------
    # Phases 3-5
    # -------------------------------------------------------------------------

    async def _acquire_missing(
        self, missing: Sequence[SongSuggestion], result: SynthesisResult
    ) -> list[SongSuggestion]:
        if not missing:
            return []

        download_dir = self._options.download_dir
        reason: str | None = None
        if not download_dir:
            reason = REASON_NO_DOWNLOAD_DIR
        elif not await self._acquisition_available():
            reason = REASON_TOOL_UNAVAILABLE

        if reason is not None or download_dir is None:
            logger.warning(f"Skipping {len(missing)} downloads: {reason}")
            for suggestion in missing:
                self._record(result, f"Cannot download {suggestion.label} - {reason}")
            return []

        width = max(1, self._options.concurrency)
        batches = [missing[i : i + width] for i in range(0, len(missing), width)]
        outcomes: list[AcquireOutcome] = []

        for index, batch in enumerate(batches, start=1):
            await self._progress.emit(
                SynthesisPhase.ACQUIRE,
                f"Downloading batch {index}/{len(batches)} ({len(batch)} songs)",
                batch=index,
                batches=len(batches),
                pending=len(missing) - len(outcomes),
                added=result.added_count,
            )
            outcomes.extend(
                await asyncio.gather(*(self._fetch(s, download_dir) for s in batch))
            )

        downloaded = [o.suggestion for o in outcomes if o.error is None]
        result.downloaded_count = len(downloaded)
        for outcome in outcomes:
            if outcome.error is not None:
                self._record(
                    result,
                    f"Failed to download {outcome.suggestion.label}: "
                    f"{outcome.error.message}",
                )
        logger.info(f"Downloaded {len(downloaded)}/{len(missing)} missing songs")
        return downloaded

    async def _rescan(self, result: SynthesisResult) -> None:
        await self._progress.emit(
            SynthesisPhase.RESCAN,
            "Scanning library for downloaded songs",
            downloaded=result.downloaded_count,
        )
        if await self._trigger_download_scan() is not None:
            self._record(result, SCAN_TRIGGER_FAILED)
            return

        timeout = await self._await_download_scan()
        if timeout is not None:
            self._record(result, timeout.message)

    async def _add_downloaded(
        self,
        playlist_id: str,
        downloaded: Sequence[SongSuggestion],
        result: SynthesisResult,
    ) -> None:
        await self._progress.emit(
            SynthesisPhase.ADD_DOWNLOADED,
            f"Adding {len(downloaded)} downloaded songs to playlist",
            downloaded=len(downloaded),
            added=result.added_count,
        )
        outcomes = await asyncio.gather(
            *(self._search_and_add_downloaded(playlist_id, s) for s in downloaded)
        )
        result.added_count += sum(1 for o in outcomes if o.added)
        for outcome in outcomes:
            if outcome.error is not None:
                self._record(result, outcome.error.message)

    def _record(self, result: SynthesisResult, error: str) -> None:
        logger.warning(error)
        result.errors.append(error)
