"""Tests for application settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from jellyradio.application.use_cases.synthesize_playlist import SynthesisOptions
from jellyradio.config.settings import (
    AcquisitionSettings,
    JellyfinSettings,
    Settings,
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's .env and shell variables out of these tests."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "JELLYFIN__URL",
        "JELLYFIN__ADMIN_USER",
        "JELLYFIN__ADMIN_PASSWORD",
        "ACQUISITION__CONCURRENCY",
        "ACQUISITION__DOWNLOAD_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Test default values."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.jellyfin.url == "http://localhost:8096"
        assert settings.jellyfin.session_lifetime_hours == 23.0
        assert settings.acquisition.concurrency == 3
        assert settings.acquisition.download_dir is None
        assert settings.scan.max_wait_seconds == 120.0
        assert settings.scan.keywords == ["scan", "library", "refresh"]
        assert settings.radio.playlist_suffix == " Radio"
        assert settings.port == 8000

    def test_no_admin_credentials_by_default(self) -> None:
        assert Settings().jellyfin.has_admin_credentials is False


class TestEnvironment:
    """Test nested environment variables."""

    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JELLYFIN__URL", "http://media:8096/")
        monkeypatch.setenv("JELLYFIN__ADMIN_USER", "admin")
        monkeypatch.setenv("JELLYFIN__ADMIN_PASSWORD", "secret")
        monkeypatch.setenv("ACQUISITION__CONCURRENCY", "5")

        settings = Settings()

        assert settings.jellyfin.url == "http://media:8096"
        assert settings.jellyfin.has_admin_credentials is True
        assert settings.jellyfin.admin_password is not None
        assert settings.jellyfin.admin_password.get_secret_value() == "secret"
        assert settings.acquisition.concurrency == 5


class TestValidation:
    """Test rejected values."""

    def test_zero_concurrency_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AcquisitionSettings(concurrency=0)

    def test_non_positive_session_lifetime_rejected(self) -> None:
        with pytest.raises(ValidationError):
            JellyfinSettings(session_lifetime_hours=0)

    def test_port_range(self) -> None:
        with pytest.raises(ValidationError):
            Settings(port=70000)


class TestSynthesisOptions:
    """Test pipeline options built from settings."""

    def test_from_settings(self) -> None:
        settings = Settings(
            acquisition=AcquisitionSettings(download_dir="/music/radio", concurrency=4)
        )

        options = SynthesisOptions.from_settings(settings)

        assert options.download_dir == "/music/radio"
        assert options.concurrency == 4
        assert options.search_limit == 50
        assert options.collection_type == "music"
        assert options.scan_poll_interval_seconds == 3.0
