"""Pydantic request/response models for the radio API."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from jellyradio.application.use_cases.acquire_song import AcquireSongResult
from jellyradio.domain.entities import SynthesisResult


class RadioRequest(BaseModel):
    """Body of POST /api/radio."""

    seed: str = Field(description="Seed descriptor, e.g. an artist or 'Song by Artist'")
    mode: Literal["radio", "similar"] | None = None
    count: int | None = Field(
        default=None, ge=1, description="Number of suggestions to request"
    )

    @field_validator("seed")
    @classmethod
    def seed_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("seed must not be blank")
        return value


class RadioResponse(BaseModel):
    """Result of a radio run."""

    success: bool = True
    message: str
    playlist_id: str
    playlist_name: str
    total_suggestions: int
    found_count: int
    downloaded_count: int
    added_count: int
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SynthesisResult) -> "RadioResponse":
        return cls(
            message=f'Radio playlist "{result.playlist_name}" created successfully',
            **result.to_dict(),
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class DownloadRequest(BaseModel):
    """Body of POST /api/radio/download."""

    title: str = Field(description="Song title")
    artist: str = Field(description="Song artist")
    album: str | None = None
    playlist_id: str | None = Field(
        default=None, description="Add the song to this playlist once it is indexed"
    )

    @field_validator("title", "artist")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title and artist are required")
        return value


class DownloadResponse(BaseModel):
    """Result of a single-song download."""

    success: bool = True
    message: str
    title: str
    artist: str
    file_path: str | None = None
    scan_triggered: bool
    scan_error: str | None = None
    added_to_playlist: bool
    playlist_error: str | None = None

    @classmethod
    def from_result(cls, result: AcquireSongResult) -> "DownloadResponse":
        return cls(
            message=f'Successfully downloaded "{result.title}" by "{result.artist}"',
            **result.to_dict(),
        )
