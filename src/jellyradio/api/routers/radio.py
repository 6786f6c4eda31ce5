"""Radio playlist endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from jellyradio.api.dependencies import (
    get_acquire_song_use_case,
    get_caller_token,
    get_library_client,
    get_session_guard,
    get_synthesize_playlist_use_case,
)
from jellyradio.api.schemas import (
    DownloadRequest,
    DownloadResponse,
    RadioRequest,
    RadioResponse,
)
from jellyradio.application.services.session_guard import SessionGuard
from jellyradio.application.use_cases.acquire_song import (
    AcquireSongRequest,
    AcquireSongUseCase,
)
from jellyradio.application.use_cases.synthesize_playlist import (
    SynthesizePlaylistRequest,
    SynthesizePlaylistUseCase,
)
from jellyradio.config.settings import Settings, get_settings
from jellyradio.domain.ports import ILibraryClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["radio"])


# Hey future me, this can take MINUTES when songs need downloading (yt-dlp + library
# scan). The response only comes once the whole pipeline finished. Partial failures
# are in "errors" with a 200, only setup failures become 4xx/5xx (see exception_handlers).
@router.post("/radio", response_model=RadioResponse)
async def create_radio_playlist(
    body: RadioRequest,
    caller_token: str | None = Depends(get_caller_token),
    use_case: SynthesizePlaylistUseCase = Depends(get_synthesize_playlist_use_case),
    settings: Settings = Depends(get_settings),
) -> RadioResponse:
    """Create a radio playlist from a seed."""
    count = body.count or settings.radio.default_count
    mode = body.mode or settings.radio.default_mode
    if count > settings.radio.max_count:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"count must be <= {settings.radio.max_count}",
        )

    logger.info(f"Creating {mode} playlist for '{body.seed}' ({count} songs)")
    result = await use_case.execute(
        SynthesizePlaylistRequest(
            seed=body.seed,
            mode=mode,
            count=count,
            caller_token=caller_token,
        )
    )
    return RadioResponse.from_result(result)


@router.delete("/radio/{playlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_radio_playlist(
    playlist_id: str,
    client: ILibraryClient = Depends(get_library_client),
    guard: SessionGuard = Depends(get_session_guard),
) -> Response:
    """Discard a radio playlist."""
    await guard.with_auth(lambda token: client.delete_playlist(playlist_id, token))
    logger.info(f"Deleted radio playlist {playlist_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Same waiting game as /radio: answers once the song is downloaded, indexed and
# (with playlist_id) added. A failed download is a SetupError -> 502.
@router.post("/radio/download", response_model=DownloadResponse)
async def download_song(
    body: DownloadRequest,
    use_case: AcquireSongUseCase = Depends(get_acquire_song_use_case),
) -> DownloadResponse:
    """Download one missing song and add it to a playlist."""
    logger.info(f"Downloading '{body.title}' by {body.artist}")
    result = await use_case.execute(
        AcquireSongRequest(
            title=body.title,
            artist=body.artist,
            album=body.album,
            playlist_id=body.playlist_id,
        )
    )
    return DownloadResponse.from_result(result)
