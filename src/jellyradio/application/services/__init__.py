"""Application services."""

from jellyradio.application.services.library_index_poller import LibraryIndexPoller
from jellyradio.application.services.metadata_tagger import MetadataTaggerService
from jellyradio.application.services.progress import (
    ProgressChannel,
    ProgressSubscription,
)
from jellyradio.application.services.session_guard import SessionGuard, is_auth_error

__all__ = [
    "LibraryIndexPoller",
    "MetadataTaggerService",
    "ProgressChannel",
    "ProgressSubscription",
    "SessionGuard",
    "is_auth_error",
]
