"""JellyRadio - turn song suggestions into populated Jellyfin playlists."""

__version__ = "0.1.0"
