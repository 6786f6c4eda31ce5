"""yt-dlp based acquisition service.

Hey future me - this shells out to the yt-dlp binary, it does NOT import yt_dlp as
a library. Keeps the GPL tool out of our process and lets operators upgrade it
independently (YouTube breaks extractors every few weeks!).

Per fetch:
1. Check the target directory exists (we never create the library root)
2. `ytsearch5:<title> <artist> [album] audio` with --flat-playlist, take the first hit
3. Download + extract to mp3 into <dir>/<Artist>/<Artist> - <Title>.mp3
4. Check the file landed, then run the post-process hook (tagging)

Every failure comes back as AcquisitionResult(success=False, error=...), never as
an exception. A subprocess that runs past timeout_seconds gets killed.
"""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from jellyradio.config.settings import AcquisitionSettings
from jellyradio.domain.entities import AcquisitionResult
from jellyradio.domain.exceptions import AcquisitionError
from jellyradio.domain.ports import IAcquisitionService

logger = logging.getLogger(__name__)

PostProcessHook = Callable[[Path, str, str, str | None], Awaitable[Any]]

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={id}"
HEALTH_CHECK_TIMEOUT = 30.0


def safe_name(text: str) -> str:
    """Filesystem and Jellyfin friendly name: drop non-word chars except space/hyphen."""
    cleaned = re.sub(r"[^\w\s-]", "", text)
    return re.sub(r"\s+", " ", cleaned).strip()


def build_search_query(title: str, artist: str, album: str | None = None) -> str:
    parts = [title, artist]
    if album:
        parts.append(album)
    parts.append("audio")
    return " ".join(parts)


class YtDlpAcquisitionService(IAcquisitionService):
    """Fetches songs from YouTube with the yt-dlp CLI."""

    def __init__(
        self,
        settings: AcquisitionSettings,
        post_process: PostProcessHook | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Acquisition settings (binary path, format, timeouts)
            post_process: Awaited with (file_path, title, artist, album) after a
                successful download. Its failures are logged, never fatal.
        """
        self.settings = settings
        self._post_process = post_process

    async def _run(self, args: list[str], timeout: float) -> str:
        """Run yt-dlp and return stdout.

        Raises:
            AcquisitionError: Binary missing, non-zero exit, or timeout
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.settings.ytdlp_path,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AcquisitionError(
                f"yt-dlp not runnable at {self.settings.ytdlp_path}: {e}"
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise AcquisitionError(f"yt-dlp timed out after {timeout:.0f}s") from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise AcquisitionError(
                f"yt-dlp exited with code {process.returncode}: {message}"
            )
        return stdout.decode("utf-8", errors="replace").strip()

    def _cookie_args(self) -> list[str]:
        cookies = self.settings.cookies_path
        if cookies and Path(cookies).is_file():
            return ["--cookies", cookies]
        return []

    async def health_check(self) -> bool:
        try:
            version = await self._run(["--version"], HEALTH_CHECK_TIMEOUT)
        except AcquisitionError as e:
            logger.error(f"yt-dlp verification failed: {e.message}")
            return False
        logger.info(f"yt-dlp available, version {version}")
        return True

    async def _search(self, query: str) -> str | None:
        args = [
            f"ytsearch{self.settings.search_results}:{query}",
            "--dump-single-json",
            "--flat-playlist",
            "--no-warnings",
            *self._cookie_args(),
        ]
        output = await self._run(args, self.settings.timeout_seconds)
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise AcquisitionError("yt-dlp search returned invalid JSON") from e

        entries = data.get("entries") or [] if isinstance(data, dict) else []
        if not entries or not entries[0].get("id"):
            return None
        return YOUTUBE_WATCH_URL.format(id=entries[0]["id"])

    async def fetch(
        self,
        title: str,
        artist: str,
        album: str | None,
        target_dir: str,
    ) -> AcquisitionResult:
        try:
            return await self._fetch(title, artist, album, target_dir)
        except AcquisitionError as e:
            logger.warning(f'Download failed for "{title}" by {artist}: {e.message}')
            return AcquisitionResult(success=False, error=e.message)
        except Exception as e:
            logger.error(f'Download error for "{title}" by {artist}: {e}', exc_info=True)
            return AcquisitionResult(success=False, error=str(e) or type(e).__name__)

    async def _fetch(
        self,
        title: str,
        artist: str,
        album: str | None,
        target_dir: str,
    ) -> AcquisitionResult:
        root = Path(target_dir)
        if not root.is_dir():
            return AcquisitionResult(
                success=False, error=f"Download directory does not exist: {target_dir}"
            )

        query = build_search_query(title, artist, album)
        logger.info(f"Searching YouTube for: {query}")
        video_url = await self._search(query)
        if video_url is None:
            return AcquisitionResult(
                success=False, error="No matching videos found on YouTube"
            )

        artist_name = safe_name(artist) or "Unknown Artist"
        title_name = safe_name(title) or "Unknown Title"
        artist_dir = root / artist_name
        artist_dir.mkdir(parents=True, exist_ok=True)
        stem = f"{artist_name} - {title_name}"

        args = [
            video_url,
            "--extract-audio",
            "--audio-format",
            self.settings.audio_format,
            "--audio-quality",
            self.settings.audio_quality,
            "--output",
            str(artist_dir / f"{stem}.%(ext)s"),
            "--add-metadata",
            "--no-warnings",
            "--extractor-retries",
            "3",
            "--fragment-retries",
            "3",
            *self._cookie_args(),
        ]
        logger.info(f"Downloading {video_url} to {artist_dir}")
        await self._run(args, self.settings.timeout_seconds)

        file_path = artist_dir / f"{stem}.{self.settings.audio_format}"
        if not file_path.is_file():
            return AcquisitionResult(
                success=False,
                error="Download completed but file not found at expected location",
            )

        logger.info(f"Download completed: {file_path}")
        await self._run_post_process(file_path, title, artist, album)
        return AcquisitionResult(success=True, file_path=str(file_path))

    async def _run_post_process(
        self, file_path: Path, title: str, artist: str, album: str | None
    ) -> None:
        if self._post_process is None:
            return
        try:
            await self._post_process(file_path, title, artist, album)
        except Exception as e:
            # The file is there, a tagging problem must not turn this into a failure
            logger.warning(f"Post-processing {file_path.name} failed: {e}")
