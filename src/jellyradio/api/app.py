"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jellyradio import __version__
from jellyradio.api.exception_handlers import register_exception_handlers
from jellyradio.api.routers import api_router
from jellyradio.config.settings import Settings, get_settings
from jellyradio.domain.ports import ProgressListener
from jellyradio.infrastructure.observability.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Close the shared HTTP clients on shutdown."""
    settings: Settings = app.state.settings
    logger.info(f"JellyRadio {__version__} starting, library at {settings.jellyfin.url}")
    if not settings.jellyfin.has_admin_credentials:
        logger.warning("Jellyfin admin credentials not configured, radio runs will fail")
    if not settings.acquisition.download_dir:
        logger.warning("ACQUISITION__DOWNLOAD_DIR not configured, downloads will be skipped")

    yield

    for name in ("library_client", "musicbrainz_client"):
        client = getattr(app.state, name, None)
        if client is not None:
            await client.close()
    logger.info("JellyRadio stopped")


# Hey future me - pass settings in tests! create_app(Settings(...)) overrides the
# cached get_settings() dependency for THIS app only, so tests never touch the env.
def create_app(
    settings: Settings | None = None,
    progress_listeners: Sequence[ProgressListener] = (),
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use. Defaults to get_settings() (environment).
        progress_listeners: Async callbacks receiving every ProgressEvent of every
            run (radio and single-song), e.g. to push live progress to a UI.
    """
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )

    app = FastAPI(
        title="JellyRadio",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.progress_listeners = list(progress_listeners)
    app.dependency_overrides[get_settings] = lambda: settings

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app
