"""Configuration module for JellyRadio."""

from .settings import (
    AcquisitionSettings,
    JellyfinSettings,
    MusicBrainzSettings,
    ScanSettings,
    Settings,
    SuggestionSettings,
    get_settings,
)

__all__ = [
    "AcquisitionSettings",
    "JellyfinSettings",
    "MusicBrainzSettings",
    "ScanSettings",
    "Settings",
    "SuggestionSettings",
    "get_settings",
]
