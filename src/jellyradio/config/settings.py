"""Application settings.

Hey future me - every knob lives here! Values come from environment variables
(or a .env file) with "__" as the nested delimiter, so JELLYFIN__URL sets
settings.jellyfin.url and ACQUISITION__CONCURRENCY sets the download batch width.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class JellyfinSettings(BaseModel):
    """Remote library (Jellyfin) connection settings."""

    url: str = "http://localhost:8096"
    admin_user: str | None = None
    admin_password: SecretStr | None = None
    client_name: str = "JellyRadio"
    client_version: str = "0.1.0"
    device_name: str = "JellyRadio Server"
    device_id: str = "jellyradio"
    # Jellyfin sessions nominally live 24h - refresh an hour early
    session_lifetime_hours: float = Field(default=23.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    search_limit: int = Field(default=50, ge=1)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def has_admin_credentials(self) -> bool:
        return bool(self.admin_user and self.admin_password)


class AcquisitionSettings(BaseModel):
    """Acquisition tool (yt-dlp) settings."""

    download_dir: str | None = None
    ytdlp_path: str = "yt-dlp"
    cookies_path: str | None = None
    concurrency: int = Field(default=3, ge=1)
    audio_format: str = "mp3"
    audio_quality: str = "192"
    search_results: int = Field(default=5, ge=1)
    timeout_seconds: float = Field(default=300.0, gt=0)
    tag_metadata: bool = True


class SuggestionSettings(BaseModel):
    """Suggestion source (OpenAI-compatible chat API) settings."""

    api_key: SecretStr | None = None
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.8, ge=0, le=2)


class ScanSettings(BaseModel):
    """Library re-index polling settings."""

    collection_type: str = "music"
    max_wait_seconds: float = Field(default=120.0, gt=0)
    poll_interval_seconds: float = Field(default=3.0, gt=0)
    progress_interval_seconds: float = Field(default=10.0, gt=0)
    keywords: list[str] = Field(default_factory=lambda: ["scan", "library", "refresh"])


class MusicBrainzSettings(BaseModel):
    """MusicBrainz metadata lookup settings."""

    enabled: bool = True
    app_name: str = "JellyRadio"
    app_version: str = "0.1.0"
    contact: str = "https://github.com/jellyradio/jellyradio"


class RadioSettings(BaseModel):
    """Defaults for the radio pipeline entry point."""

    default_count: int = Field(default=25, ge=1)
    max_count: int = Field(default=50, ge=1)
    default_mode: Literal["radio", "similar"] = "radio"
    playlist_suffix: str = " Radio"


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "jellyradio"
    debug: bool = False
    host: str = "0.0.0.0"  # nosec B104 - container deployments bind all interfaces
    port: int = Field(default=8000, ge=1, le=65535)

    jellyfin: JellyfinSettings = Field(default_factory=JellyfinSettings)
    acquisition: AcquisitionSettings = Field(default_factory=AcquisitionSettings)
    suggestions: SuggestionSettings = Field(default_factory=SuggestionSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    radio: RadioSettings = Field(default_factory=RadioSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


# Hey future me - cached so every Depends(get_settings) sees the same object.
# Tests that need different values should build Settings(...) directly and
# pass it in instead of mutating this one!
@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
