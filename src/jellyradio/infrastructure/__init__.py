"""Infrastructure layer - adapters for Jellyfin, yt-dlp, OpenAI, MusicBrainz and logging."""
