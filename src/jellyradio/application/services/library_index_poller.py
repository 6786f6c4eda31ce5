"""Library index poller - trigger ONE scoped re-index and wait for it to settle.

Hey future me - Jellyfin re-indexes asynchronously. POST /Items/{id}/Refresh returns
at once and the real work happens in a scheduled task we can only OBSERVE by polling
/ScheduledTasks. This service never creates tasks, it only reads them.

Polling rules:
- Only tasks whose name/key contains a re-index keyword ("scan", "library", "refresh")
  are considered. Everything else on the server (backups, chapter images...) is noise.
- Running and Cancelling mean "still busy", anything else means "settled".
- Query errors while polling are logged and swallowed, the next tick retries. The wait
  ends ONLY on success (True) or when the deadline passes (False).
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from jellyradio.application.services.session_guard import SessionGuard
from jellyradio.domain.entities import ScanTask
from jellyradio.domain.ports import ILibraryClient

logger = logging.getLogger(__name__)

DEFAULT_SCAN_KEYWORDS = ("scan", "library", "refresh")

ScanProgressCallback = Callable[[list[ScanTask], float], Awaitable[None]]


class LibraryIndexPoller:
    """Triggers collection re-indexes and polls scheduled tasks until they settle."""

    def __init__(
        self,
        guard: SessionGuard,
        client: ILibraryClient,
        keywords: Sequence[str] = DEFAULT_SCAN_KEYWORDS,
        progress_interval: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the poller.

        Args:
            guard: Session guard every remote call goes through
            client: Remote library client
            keywords: Task name/key fragments that mark a re-index task
            progress_interval: Minimum seconds between two progress reports
            sleep: Awaitable sleep, injectable for tests
            clock: Monotonic clock in seconds, injectable for tests
        """
        self._guard = guard
        self._client = client
        self._keywords = tuple(keywords)
        self._progress_interval = progress_interval
        self._sleep = sleep
        self._clock = clock

    async def trigger_scan(self, collection_id: str) -> None:
        """Start a re-index of ONE collection and return without waiting.

        Raises:
            AuthenticationError: If auth still fails after the guard's retry
            ExternalServiceError: If the server rejects the request
        """
        logger.info(f"Triggering library scan for collection {collection_id}")
        await self._guard.with_auth(
            lambda token: self._client.trigger_scan(collection_id, token)
        )

    async def find_collection_id(self, content_type: str) -> str | None:
        """Return the id of the first collection with this content type, or None."""
        collections = await self._guard.with_auth(self._client.list_collections)
        wanted = content_type.lower()
        for collection in collections:
            if (collection.content_type or "").lower() == wanted:
                logger.debug(
                    f"Found {content_type} collection '{collection.name}' ({collection.id})"
                )
                return collection.id

        logger.warning(
            f"No {content_type} collection among {len(collections)} library collections"
        )
        return None

    def _active_scan_tasks(self, tasks: list[ScanTask]) -> list[ScanTask]:
        return [
            task
            for task in tasks
            if task.matches_any(self._keywords) and task.state.is_active
        ]

    async def await_scan_completion(
        self,
        max_wait_seconds: float = 120.0,
        poll_interval_seconds: float = 3.0,
        on_progress: ScanProgressCallback | None = None,
    ) -> bool:
        """Poll scheduled tasks until no re-index task is active.

        Args:
            max_wait_seconds: Give up after this long
            poll_interval_seconds: Sleep between two polls
            on_progress: Optional callback receiving (active tasks, elapsed seconds),
                called at most once per progress_interval. Its failures are logged.

        Returns:
            True as soon as no matching task is Running/Cancelling,
            False once max_wait_seconds elapsed with a task still active
        """
        started = self._clock()
        deadline = started + max_wait_seconds
        last_report: float | None = None

        while True:
            try:
                tasks = await self._guard.with_auth(self._client.list_active_tasks)
            except Exception as e:
                # Transient - the next tick tries again
                logger.warning(f"Scan status query failed, retrying next tick: {e}")
            else:
                active = self._active_scan_tasks(tasks)
                if not active:
                    logger.info(
                        f"Library scan settled after {self._clock() - started:.1f}s"
                    )
                    return True

                now = self._clock()
                if on_progress is not None and (
                    last_report is None or now - last_report >= self._progress_interval
                ):
                    last_report = now
                    await self._report(on_progress, active, now - started)

            if self._clock() >= deadline:
                logger.warning(
                    f"Library scan still running after {max_wait_seconds:.0f}s, giving up"
                )
                return False

            await self._sleep(poll_interval_seconds)

    async def _report(
        self,
        on_progress: ScanProgressCallback,
        active: list[ScanTask],
        elapsed: float,
    ) -> None:
        for task in active:
            percent = (
                f"{task.progress_percent:.0f}%"
                if task.progress_percent is not None
                else "unknown"
            )
            logger.debug(f"Scan task '{task.name}' {task.state.value} ({percent})")
        try:
            await on_progress(active, elapsed)
        except Exception as e:
            logger.warning(f"Scan progress callback failed: {e}")
