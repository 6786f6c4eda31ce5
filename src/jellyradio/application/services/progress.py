"""Progress channel - explicit phase/counter updates of a radio run.

Hey future me - the pipeline PUBLISHES ProgressEvents here and whoever wants live
progress (a websocket, a CLI spinner, a test) either registers a listener or
subscribes. Two consumer styles:

1. add_listener(async_fn) - called inline for every event, failures are logged
2. subscribe() - own bounded queue, iterate with `async for`. A slow subscriber
   loses its OLDEST events, it never blocks the pipeline.

Nothing a consumer does can fail or slow down a run.
"""

import asyncio
import logging
from typing import Any

from jellyradio.domain.entities import ProgressEvent, SynthesisPhase
from jellyradio.domain.ports import ProgressListener

logger = logging.getLogger(__name__)

_CLOSED = object()


class ProgressSubscription:
    """Bounded queue of progress events, consumed with `async for`."""

    def __init__(self, channel: "ProgressChannel", max_size: int) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_size)
        self._closed = False
        self.dropped = 0

    def _offer(self, item: Any) -> None:
        # Drop oldest when full so the newest state is always visible
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel._unsubscribe(self)
        self._offer(_CLOSED)

    def __aiter__(self) -> "ProgressSubscription":
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[no-any-return]


class ProgressChannel:
    """Fans ProgressEvents out to listeners and subscriptions."""

    def __init__(self, subscription_queue_size: int = 100) -> None:
        self._listeners: list[ProgressListener] = []
        self._subscriptions: list[ProgressSubscription] = []
        self._queue_size = subscription_queue_size

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe(self) -> ProgressSubscription:
        """Open a subscription. Events published from now on are queued for it."""
        subscription = ProgressSubscription(self, self._queue_size)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: ProgressSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, event: ProgressEvent) -> None:
        """Deliver event to every subscription and listener."""
        logger.debug(f"[{event.phase.value}] {event.message}")

        for subscription in list(self._subscriptions):
            subscription._offer(event)

        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed on {event.phase.value}: {e}")

    async def emit(
        self,
        phase: SynthesisPhase,
        message: str,
        **counters: int,
    ) -> None:
        """Shortcut building and publishing a ProgressEvent."""
        await self.publish(ProgressEvent(phase=phase, message=message, counters=counters))

    def close(self) -> None:
        """End every open subscription (their `async for` loops finish)."""
        for subscription in list(self._subscriptions):
            subscription.close()
