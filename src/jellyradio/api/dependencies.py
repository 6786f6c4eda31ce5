"""Dependency injection for API endpoints.

Hey future me - two lifetimes live here:
- SHARED per app (app.state): HTTP clients (Jellyfin, MusicBrainz). They pool
  connections and are closed by the app lifespan.
- PER REQUEST: SessionGuard, poller, progress channel and the use cases. One radio
  run = one Session, so two concurrent runs never share a token refresh.

Progress: every run gets its own ProgressChannel. Whoever embeds the app passes
async listeners to create_app(progress_listeners=[...]) (stored on app.state)
and they are attached to each run's channel here. Without listeners the events
only reach the debug log.
"""

from datetime import timedelta

from fastapi import Depends, Header, Request

from jellyradio.application.services.library_index_poller import LibraryIndexPoller
from jellyradio.application.services.metadata_tagger import MetadataTaggerService
from jellyradio.application.services.progress import ProgressChannel
from jellyradio.application.services.session_guard import SessionGuard
from jellyradio.application.use_cases.acquire_song import AcquireSongUseCase
from jellyradio.application.use_cases.synthesize_playlist import (
    SynthesisOptions,
    SynthesizePlaylistUseCase,
)
from jellyradio.config.settings import Settings, get_settings
from jellyradio.domain.ports import (
    IAcquisitionService,
    ILibraryClient,
    ISuggestionSource,
)
from jellyradio.infrastructure.integrations.jellyfin_client import JellyfinClient
from jellyradio.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from jellyradio.infrastructure.integrations.openai_suggestion_source import (
    OpenAISuggestionSource,
)
from jellyradio.infrastructure.integrations.ytdlp_acquisition import (
    YtDlpAcquisitionService,
)


def get_library_client(
    request: Request, settings: Settings = Depends(get_settings)
) -> ILibraryClient:
    """Shared Jellyfin client, created on first use."""
    client = getattr(request.app.state, "library_client", None)
    if client is None:
        client = JellyfinClient(settings.jellyfin)
        request.app.state.library_client = client
    return client


def get_musicbrainz_client(
    request: Request, settings: Settings = Depends(get_settings)
) -> MusicBrainzClient | None:
    """Shared MusicBrainz client, None when enrichment is disabled."""
    if not settings.musicbrainz.enabled:
        return None
    client = getattr(request.app.state, "musicbrainz_client", None)
    if client is None:
        client = MusicBrainzClient(settings.musicbrainz)
        request.app.state.musicbrainz_client = client
    return client


def get_suggestion_source(
    settings: Settings = Depends(get_settings),
) -> ISuggestionSource:
    return OpenAISuggestionSource(settings.suggestions)


def get_acquisition_service(
    settings: Settings = Depends(get_settings),
    musicbrainz: MusicBrainzClient | None = Depends(get_musicbrainz_client),
) -> IAcquisitionService:
    """yt-dlp service, tagging downloads when acquisition.tag_metadata is on."""
    post_process = None
    if settings.acquisition.tag_metadata:
        post_process = MetadataTaggerService(musicbrainz).enrich_and_tag
    return YtDlpAcquisitionService(settings.acquisition, post_process=post_process)


def get_session_guard(
    client: ILibraryClient = Depends(get_library_client),
    settings: Settings = Depends(get_settings),
) -> SessionGuard:
    """Fresh admin session guard for one request."""
    password = settings.jellyfin.admin_password
    return SessionGuard(
        client,
        username=settings.jellyfin.admin_user,
        password=password.get_secret_value() if password else None,
        session_lifetime=timedelta(hours=settings.jellyfin.session_lifetime_hours),
    )


def get_poller(
    guard: SessionGuard = Depends(get_session_guard),
    client: ILibraryClient = Depends(get_library_client),
    settings: Settings = Depends(get_settings),
) -> LibraryIndexPoller:
    return LibraryIndexPoller(
        guard,
        client,
        keywords=settings.scan.keywords,
        progress_interval=settings.scan.progress_interval_seconds,
    )


def get_progress_channel(request: Request) -> ProgressChannel:
    """Fresh channel for one run, with the app's progress listeners attached."""
    channel = ProgressChannel()
    for listener in getattr(request.app.state, "progress_listeners", ()):
        channel.add_listener(listener)
    return channel


def get_synthesize_playlist_use_case(
    client: ILibraryClient = Depends(get_library_client),
    guard: SessionGuard = Depends(get_session_guard),
    poller: LibraryIndexPoller = Depends(get_poller),
    suggestion_source: ISuggestionSource = Depends(get_suggestion_source),
    acquisition: IAcquisitionService = Depends(get_acquisition_service),
    progress: ProgressChannel = Depends(get_progress_channel),
    settings: Settings = Depends(get_settings),
) -> SynthesizePlaylistUseCase:
    """Wire the radio pipeline for one request."""
    return SynthesizePlaylistUseCase(
        client=client,
        guard=guard,
        poller=poller,
        suggestion_source=suggestion_source,
        acquisition=acquisition,
        options=SynthesisOptions.from_settings(settings),
        progress=progress,
    )


def get_acquire_song_use_case(
    client: ILibraryClient = Depends(get_library_client),
    guard: SessionGuard = Depends(get_session_guard),
    poller: LibraryIndexPoller = Depends(get_poller),
    acquisition: IAcquisitionService = Depends(get_acquisition_service),
    progress: ProgressChannel = Depends(get_progress_channel),
    settings: Settings = Depends(get_settings),
) -> AcquireSongUseCase:
    """Wire the single-song download for one request."""
    return AcquireSongUseCase(
        client=client,
        guard=guard,
        poller=poller,
        acquisition=acquisition,
        options=SynthesisOptions.from_settings(settings),
        progress=progress,
    )


def get_caller_token(
    x_emby_token: str | None = Header(default=None, alias="X-Emby-Token"),
) -> str | None:
    """End-user Jellyfin token, verified by the pipeline before any work."""
    return x_emby_token or None
