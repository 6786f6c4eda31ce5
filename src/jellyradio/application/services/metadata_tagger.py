"""Metadata Tagger Service - tags freshly acquired audio files.

Hey future me - yt-dlp files come with whatever the uploader typed into the video
title. Jellyfin groups by tags, so a file tagged "Official Video (HD)" lands in the
wrong album and our post-scan search may miss it. This service fixes the tags
BEFORE the re-index runs:

1. Look the recording up on MusicBrainz (quoted search, then a broad keyword search)
2. First result wins - title, artist, album, album artist, year, track number, MB ids
3. Nothing on MusicBrainz? Write the suggestion's own title/artist/album instead

TAG MAPPING:

| Field                | ID3 (EasyID3)        | Vorbis               | MP4                                    |
|----------------------|----------------------|----------------------|----------------------------------------|
| title                | title                | TITLE                | ©nam                                   |
| artist               | artist               | ARTIST               | ©ART                                   |
| album                | album                | ALBUM                | ©alb                                   |
| album_artist         | albumartist          | ALBUMARTIST          | aART                                   |
| year                 | date                 | DATE                 | ©day                                   |
| track_number         | tracknumber          | TRACKNUMBER          | trkn                                   |
| musicbrainz_track_id | musicbrainz_trackid  | MUSICBRAINZ_TRACKID  | ----:com.apple.iTunes:MusicBrainz Track Id |

ERROR HANDLING: tagging NEVER fails an acquisition. Every problem is logged and
reported through TaggingResult.success=False.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypedDict

from mutagen.easyid3 import EasyID3
from mutagen.flac import FLAC
from mutagen.id3 import ID3NoHeaderError
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis

from jellyradio.domain.ports import IMusicBrainzClient

logger = logging.getLogger(__name__)


class AudioMetadata(TypedDict, total=False):
    """Metadata fields for audio files. Only provided fields are written."""

    title: str
    artist: str
    album: str
    album_artist: str
    year: str
    track_number: int
    total_tracks: int
    musicbrainz_track_id: str
    musicbrainz_artist_id: str
    musicbrainz_album_id: str


@dataclass
class TaggingResult:
    """Result of a tagging operation."""

    success: bool
    file_path: str
    format: str | None = None
    error: str | None = None
    fields_written: list[str] | None = None
    source: str | None = None  # "musicbrainz" or "basic"


_EASYID3_KEYS = {
    "title": "title",
    "artist": "artist",
    "album": "album",
    "album_artist": "albumartist",
    "year": "date",
    "musicbrainz_track_id": "musicbrainz_trackid",
    "musicbrainz_artist_id": "musicbrainz_artistid",
    "musicbrainz_album_id": "musicbrainz_albumid",
}

_VORBIS_KEYS = {
    "title": "TITLE",
    "artist": "ARTIST",
    "album": "ALBUM",
    "album_artist": "ALBUMARTIST",
    "year": "DATE",
    "musicbrainz_track_id": "MUSICBRAINZ_TRACKID",
    "musicbrainz_artist_id": "MUSICBRAINZ_ARTISTID",
    "musicbrainz_album_id": "MUSICBRAINZ_ALBUMID",
}

_MP4_KEYS = {
    "title": "©nam",
    "artist": "©ART",
    "album": "©alb",
    "album_artist": "aART",
    "year": "©day",
}

_MP4_FREEFORM_KEYS = {
    "musicbrainz_track_id": "----:com.apple.iTunes:MusicBrainz Track Id",
    "musicbrainz_artist_id": "----:com.apple.iTunes:MusicBrainz Artist Id",
    "musicbrainz_album_id": "----:com.apple.iTunes:MusicBrainz Album Id",
}


def metadata_from_recording(recording: dict[str, Any]) -> AudioMetadata:
    """Project a MusicBrainz recording search hit onto AudioMetadata.

    Uses the first artist credit and the first release. The track number is the
    position of this recording on the release's first medium, when present.
    """
    metadata: AudioMetadata = {}
    if recording.get("title"):
        metadata["title"] = recording["title"]
    if recording.get("id"):
        metadata["musicbrainz_track_id"] = recording["id"]

    credits = recording.get("artist-credit") or []
    if credits:
        first = credits[0]
        name = first.get("name") or (first.get("artist") or {}).get("name")
        if name:
            metadata["artist"] = name
        artist_id = (first.get("artist") or {}).get("id")
        if artist_id:
            metadata["musicbrainz_artist_id"] = artist_id

    releases = recording.get("releases") or []
    if releases:
        release = releases[0]
        if release.get("title"):
            metadata["album"] = release["title"]
        if release.get("id"):
            metadata["musicbrainz_album_id"] = release["id"]
        date = release.get("date") or ""
        if date[:4].isdigit():
            metadata["year"] = date[:4]
        release_credits = release.get("artist-credit") or []
        if release_credits and release_credits[0].get("name"):
            metadata["album_artist"] = release_credits[0]["name"]

        # Search hits list only the matching track per medium, offset is 0-based
        media = release.get("media") or []
        if media:
            medium = media[0]
            tracks = medium.get("track") or []
            if medium.get("track-offset") is not None:
                metadata["track_number"] = int(medium["track-offset"]) + 1
            elif tracks and str(tracks[0].get("number", "")).isdigit():
                metadata["track_number"] = int(tracks[0]["number"])
            if "track_number" in metadata and medium.get("track-count"):
                metadata["total_tracks"] = int(medium["track-count"])

    return metadata


class MetadataTaggerService:
    """Writes tags to acquired audio files, enriched from MusicBrainz when possible.

    Usage:
        tagger = MetadataTaggerService(musicbrainz_client)
        result = await tagger.enrich_and_tag(Path("/music/A/A - Song.mp3"), "Song", "A", None)
    """

    def __init__(self, musicbrainz_client: IMusicBrainzClient | None = None) -> None:
        """Initialize the tagger.

        Args:
            musicbrainz_client: Lookup client. None means basic tags only.
        """
        self._musicbrainz = musicbrainz_client

    async def lookup(
        self, title: str, artist: str, album: str | None = None
    ) -> AudioMetadata | None:
        """Find recording metadata on MusicBrainz. None when nothing was found."""
        if self._musicbrainz is None:
            return None

        try:
            recordings = await self._musicbrainz.search_recording(
                artist, title, album=album, limit=5, strict=True
            )
            if not recordings:
                logger.debug(f'No exact MusicBrainz hit for "{title}" by {artist}, trying broad search')
                recordings = await self._musicbrainz.search_recording(
                    artist, title, album=album, limit=5, strict=False
                )
        except Exception as e:
            logger.warning(f'MusicBrainz lookup failed for "{title}" by {artist}: {e}')
            return None

        if not recordings:
            return None
        return metadata_from_recording(recordings[0])

    async def enrich_and_tag(
        self,
        file_path: Path,
        title: str,
        artist: str,
        album: str | None = None,
    ) -> TaggingResult:
        """Look up metadata and write it to file_path. Never raises."""
        metadata = await self.lookup(title, artist, album)
        source = "musicbrainz"
        if not metadata:
            logger.info(f'No MusicBrainz metadata for "{title}" by {artist}, using basic info')
            source = "basic"
            metadata = {"title": title, "artist": artist, "album_artist": artist}
            if album:
                metadata["album"] = album

        result = await self.tag_file(file_path, metadata)
        result.source = source
        return result

    async def tag_file(self, file_path: Path, metadata: AudioMetadata) -> TaggingResult:
        """Write metadata tags to an audio file.

        Detects the format from the extension. Only provided fields are written.
        """
        if not file_path.exists():
            return TaggingResult(
                success=False, file_path=str(file_path), error="File not found"
            )

        ext = file_path.suffix.lower()
        writers = {
            ".mp3": ("mp3", self._tag_mp3),
            ".flac": ("flac", self._tag_vorbis),
            ".ogg": ("ogg", self._tag_vorbis),
            ".oga": ("oga", self._tag_vorbis),
            ".opus": ("opus", self._tag_vorbis),
            ".m4a": ("mp4", self._tag_mp4),
            ".mp4": ("mp4", self._tag_mp4),
            ".aac": ("mp4", self._tag_mp4),
        }
        if ext not in writers:
            return TaggingResult(
                success=False,
                file_path=str(file_path),
                format=ext,
                error=f"Unsupported format: {ext}",
            )

        fmt, writer = writers[ext]
        try:
            # mutagen does blocking file IO
            fields = await asyncio.to_thread(writer, file_path, metadata)
        except Exception as e:
            logger.error(f"Error tagging {file_path}: {e}", exc_info=True)
            return TaggingResult(
                success=False, file_path=str(file_path), format=ext, error=str(e)
            )

        logger.debug(f"Tagged {file_path.name} ({fmt}): {', '.join(fields)}")
        return TaggingResult(
            success=True, file_path=str(file_path), format=fmt, fields_written=fields
        )

    def _tag_mp3(self, file_path: Path, metadata: AudioMetadata) -> list[str]:
        try:
            audio = EasyID3(str(file_path))
        except ID3NoHeaderError:
            # No ID3 header yet, create one
            mp3 = MP3(str(file_path))
            mp3.add_tags()
            mp3.save()
            audio = EasyID3(str(file_path))

        fields: list[str] = []
        for field, key in _EASYID3_KEYS.items():
            value = metadata.get(field)
            if value:
                audio[key] = str(value)
                fields.append(field)

        if "track_number" in metadata:
            total = metadata.get("total_tracks")
            track = metadata["track_number"]
            audio["tracknumber"] = f"{track}/{total}" if total else str(track)
            fields.append("track_number")

        audio.save()
        return fields

    def _tag_vorbis(self, file_path: Path, metadata: AudioMetadata) -> list[str]:
        opener: Any = {".flac": FLAC, ".opus": OggOpus}.get(
            file_path.suffix.lower(), OggVorbis
        )
        audio = opener(str(file_path))

        fields: list[str] = []
        for field, key in _VORBIS_KEYS.items():
            value = metadata.get(field)
            if value:
                audio[key] = str(value)
                fields.append(field)

        if "track_number" in metadata:
            audio["TRACKNUMBER"] = str(metadata["track_number"])
            fields.append("track_number")
            if "total_tracks" in metadata:
                audio["TRACKTOTAL"] = str(metadata["total_tracks"])

        audio.save()
        return fields

    def _tag_mp4(self, file_path: Path, metadata: AudioMetadata) -> list[str]:
        audio = MP4(str(file_path))

        fields: list[str] = []
        for field, key in _MP4_KEYS.items():
            value = metadata.get(field)
            if value:
                audio[key] = [str(value)]
                fields.append(field)

        # Freeform atoms hold raw bytes
        for field, key in _MP4_FREEFORM_KEYS.items():
            value = metadata.get(field)
            if value:
                audio[key] = [str(value).encode("utf-8")]
                fields.append(field)

        if "track_number" in metadata:
            audio["trkn"] = [
                (int(metadata["track_number"]), int(metadata.get("total_tracks", 0)))
            ]
            fields.append("track_number")

        audio.save()
        return fields
