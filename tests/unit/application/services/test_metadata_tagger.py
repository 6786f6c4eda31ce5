"""Tests for MetadataTaggerService."""

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
from pytest_mock import MockerFixture

from jellyradio.application.services.metadata_tagger import (
    MetadataTaggerService,
    TaggingResult,
    metadata_from_recording,
)
from jellyradio.domain.ports import IMusicBrainzClient

RECORDING: dict[str, Any] = {
    "id": "rec-1",
    "title": "Teardrop",
    "artist-credit": [{"name": "Massive Attack", "artist": {"id": "art-1", "name": "Massive Attack"}}],
    "releases": [
        {
            "id": "rel-1",
            "title": "Mezzanine",
            "date": "1998-04-20",
            "artist-credit": [{"name": "Massive Attack"}],
            "media": [{"track-offset": 2, "track-count": 11, "track": [{"number": "3"}]}],
        }
    ],
}


@pytest.fixture
def musicbrainz() -> AsyncMock:
    return AsyncMock(spec=IMusicBrainzClient)


class TestMetadataFromRecording:
    """Test projection of MusicBrainz hits."""

    def test_full_recording(self) -> None:
        assert metadata_from_recording(RECORDING) == {
            "title": "Teardrop",
            "musicbrainz_track_id": "rec-1",
            "artist": "Massive Attack",
            "musicbrainz_artist_id": "art-1",
            "album": "Mezzanine",
            "musicbrainz_album_id": "rel-1",
            "year": "1998",
            "album_artist": "Massive Attack",
            "track_number": 3,
            "total_tracks": 11,
        }

    def test_track_number_from_track_list_without_offset(self) -> None:
        recording = {
            "title": "Song",
            "releases": [{"title": "Album", "media": [{"track": [{"number": "7"}]}]}],
        }

        metadata = metadata_from_recording(recording)

        assert metadata["track_number"] == 7
        assert "total_tracks" not in metadata

    def test_minimal_recording(self) -> None:
        assert metadata_from_recording({"title": "Song"}) == {"title": "Song"}

    def test_partial_date_without_year_skipped(self) -> None:
        recording = {"releases": [{"title": "Album", "date": ""}]}
        assert "year" not in metadata_from_recording(recording)


class TestLookup:
    """Test MusicBrainz lookups."""

    @pytest.mark.asyncio
    async def test_strict_hit(self, musicbrainz: AsyncMock) -> None:
        musicbrainz.search_recording.return_value = [RECORDING]
        tagger = MetadataTaggerService(musicbrainz)

        metadata = await tagger.lookup("Teardrop", "Massive Attack")

        assert metadata is not None
        assert metadata["album"] == "Mezzanine"
        musicbrainz.search_recording.assert_awaited_once_with(
            "Massive Attack", "Teardrop", album=None, limit=5, strict=True
        )

    @pytest.mark.asyncio
    async def test_falls_back_to_broad_search(self, musicbrainz: AsyncMock) -> None:
        musicbrainz.search_recording.side_effect = [[], [RECORDING]]
        tagger = MetadataTaggerService(musicbrainz)

        metadata = await tagger.lookup("Teardrop", "Massive Attack", "Mezzanine")

        assert metadata is not None
        strict_flags = [c.kwargs["strict"] for c in musicbrainz.search_recording.await_args_list]
        assert strict_flags == [True, False]

    @pytest.mark.asyncio
    async def test_nothing_found(self, musicbrainz: AsyncMock) -> None:
        musicbrainz.search_recording.return_value = []
        tagger = MetadataTaggerService(musicbrainz)

        assert await tagger.lookup("Unknown", "Nobody") is None

    @pytest.mark.asyncio
    async def test_lookup_error_returns_none(self, musicbrainz: AsyncMock) -> None:
        musicbrainz.search_recording.side_effect = RuntimeError("503 from MusicBrainz")
        tagger = MetadataTaggerService(musicbrainz)

        assert await tagger.lookup("Teardrop", "Massive Attack") is None

    @pytest.mark.asyncio
    async def test_no_client_returns_none(self) -> None:
        assert await MetadataTaggerService().lookup("Teardrop", "Massive Attack") is None


class TestTagFile:
    """Test file-level tagging guards."""

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        result = await MetadataTaggerService().tag_file(tmp_path / "gone.mp3", {"title": "x"})

        assert result.success is False
        assert result.error == "File not found"

    @pytest.mark.asyncio
    async def test_unsupported_format(self, tmp_path: Path) -> None:
        path = tmp_path / "song.wav"
        path.write_bytes(b"RIFF")

        result = await MetadataTaggerService().tag_file(path, {"title": "x"})

        assert result.success is False
        assert result.error == "Unsupported format: .wav"

    @pytest.mark.asyncio
    async def test_corrupt_mp3_reports_failure(self, tmp_path: Path) -> None:
        path = tmp_path / "song.mp3"
        path.write_bytes(b"definitely not audio")

        result = await MetadataTaggerService().tag_file(path, {"title": "x"})

        assert result.success is False
        assert result.format == ".mp3"


class TestEnrichAndTag:
    """Test enrichment source selection."""

    @pytest.mark.asyncio
    async def test_uses_musicbrainz_metadata(
        self, musicbrainz: AsyncMock, mocker: MockerFixture, tmp_path: Path
    ) -> None:
        musicbrainz.search_recording.return_value = [RECORDING]
        tagger = MetadataTaggerService(musicbrainz)
        tag_file = mocker.patch.object(
            tagger,
            "tag_file",
            AsyncMock(return_value=TaggingResult(success=True, file_path="f")),
        )

        result = await tagger.enrich_and_tag(tmp_path / "f.mp3", "Teardrop", "Massive Attack")

        assert result.source == "musicbrainz"
        assert tag_file.await_args.args[1]["musicbrainz_track_id"] == "rec-1"

    @pytest.mark.asyncio
    async def test_basic_metadata_fallback(
        self, mocker: MockerFixture, tmp_path: Path
    ) -> None:
        tagger = MetadataTaggerService()
        tag_file = mocker.patch.object(
            tagger,
            "tag_file",
            AsyncMock(return_value=TaggingResult(success=True, file_path="f")),
        )

        result = await tagger.enrich_and_tag(
            tmp_path / "f.mp3", "Teardrop", "Massive Attack", "Mezzanine"
        )

        assert result.source == "basic"
        assert tag_file.await_args.args[1] == {
            "title": "Teardrop",
            "artist": "Massive Attack",
            "album_artist": "Massive Attack",
            "album": "Mezzanine",
        }
