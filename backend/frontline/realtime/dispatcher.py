"""
Realtime channel dispatcher.

Multiplexes one underlying channel per (user, resource) over any number of
subscribers. Delivery is at-least-once and ordered per resource; consumers
merge rows by id. Transient channel failures are retried with exponential
backoff, after which subscribers are asked to resynchronize. A terminal failure
is reported to every subscriber exactly once through ``on_closed``.
"""
import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

from frontline.realtime.changefeed import RESOURCES, ChangeEvent, ChannelClosed, ChannelInterrupted

logger = logging.getLogger(__name__)

InsertCallback = Callable[[dict[str, Any]], Awaitable[None] | None]
ClosedCallback = Callable[[str], Awaitable[None] | None]
ResyncCallback = Callable[[], Awaitable[None] | None]


class Channel(Protocol):
    """An open push channel: an async stream of change events that can be closed."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        ...

    async def close(self) -> None:
        ...


class ChannelSource(Protocol):
    """Where underlying channels come from (the change feed, or a remote socket)."""

    async def connect(self, resource: str, user_id: str) -> Channel:
        ...


class Subscription:
    """Handle returned by ``subscribe``. ``unsubscribe`` may be called any number of times."""

    def __init__(
        self,
        dispatcher: "RealtimeDispatcher",
        key: tuple[str, str],
        on_insert: InsertCallback,
        on_closed: ClosedCallback | None,
        on_resync: ResyncCallback | None,
    ):
        self.key = key
        self.on_insert = on_insert
        self.on_closed = on_closed
        self.on_resync = on_resync
        self.active = True
        self._dispatcher = dispatcher

    @property
    def user_id(self) -> str:
        return self.key[0]

    @property
    def resource(self) -> str:
        return self.key[1]

    def unsubscribe(self) -> None:
        """Detach this handler. No callback runs for it after this returns."""
        if not self.active:
            return
        self.active = False
        self._dispatcher._detach(self)

    def __call__(self) -> None:
        self.unsubscribe()


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        # A failing subscriber must not stall delivery to the others
        logger.exception("Realtime subscriber callback failed")


class RealtimeDispatcher:
    """Fan committed inserts out to in-process subscribers."""

    def __init__(
        self,
        source: ChannelSource,
        initial_backoff: float = 0.5,
        max_backoff: float = 30.0,
        max_retries: int = 8,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.max_retries = max_retries
        self._sleep = sleep
        self._subscribers: dict[tuple[str, str], list[Subscription]] = {}
        self._pumps: dict[tuple[str, str], asyncio.Task] = {}

    def subscribe(
        self,
        user_id: str,
        resource: str,
        on_insert: InsertCallback,
        on_closed: ClosedCallback | None = None,
        on_resync: ResyncCallback | None = None,
    ) -> Subscription:
        """Register a handler for inserts on ``resource`` addressed to ``user_id``.

        Must be called from a running event loop. The first subscriber for a
        (user, resource) pair opens the underlying channel; later ones share it.
        """
        if resource not in RESOURCES:
            raise ValueError(f"Unknown realtime resource: {resource}")
        key = (user_id, resource)
        subscription = Subscription(self, key, on_insert, on_closed, on_resync)
        self._subscribers.setdefault(key, []).append(subscription)
        if key not in self._pumps:
            self._pumps[key] = asyncio.get_running_loop().create_task(
                self._pump(key), name=f"realtime:{resource}:{user_id}"
            )
        return subscription

    def subscriber_count(self, user_id: str, resource: str) -> int:
        return len(self._subscribers.get((user_id, resource), ()))

    def channel_count(self) -> int:
        return len(self._pumps)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (1-based)."""
        return min(self.max_backoff, self.initial_backoff * (2 ** (attempt - 1)))

    async def close(self, reason: str = "dispatcher closed") -> None:
        """Stop every channel and tell remaining subscribers once."""
        pumps = list(self._pumps.values())
        for task in pumps:
            task.cancel()
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)
        for key in list(self._subscribers):
            await self._close_key(key, reason)

    def _detach(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.key)
        if subscribers is None:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._subscribers[subscription.key]
            task = self._pumps.pop(subscription.key, None)
            if task is not None and task is not asyncio.current_task():
                task.cancel()

    def _active(self, key: tuple[str, str]) -> list[Subscription]:
        return list(self._subscribers.get(key, ()))

    async def _deliver(self, key: tuple[str, str], change: ChangeEvent) -> None:
        for subscription in self._active(key):
            # Re-checked per handler: an earlier callback may have unsubscribed it
            if subscription.active:
                await _invoke(subscription.on_insert, change.row)

    async def _resync(self, key: tuple[str, str]) -> None:
        for subscription in self._active(key):
            if subscription.active:
                await _invoke(subscription.on_resync)

    async def _close_key(self, key: tuple[str, str], reason: str) -> None:
        self._pumps.pop(key, None)
        subscribers = self._subscribers.pop(key, [])
        for subscription in subscribers:
            if subscription.active:
                subscription.active = False
                await _invoke(subscription.on_closed, reason)

    async def _pump(self, key: tuple[str, str]) -> None:
        user_id, resource = key
        failures = 0
        connected_before = False
        while True:
            channel = None
            try:
                channel = await self.source.connect(resource, user_id)
                if connected_before:
                    logger.info("Realtime channel %s/%s reconnected", resource, user_id)
                    await self._resync(key)
                connected_before = True
                async for change in channel:
                    failures = 0
                    await self._deliver(key, change)
                    if self._pumps.get(key) is not asyncio.current_task():
                        # Last subscriber left from inside a callback
                        return
                reason = "channel ended"
                break
            except ChannelInterrupted as exc:
                failures += 1
                if failures > self.max_retries:
                    reason = f"gave up after {self.max_retries} retries: {exc}"
                    break
                delay = self.backoff_delay(failures)
                logger.warning(
                    "Realtime channel %s/%s interrupted (%s); retry %d in %.2fs",
                    resource,
                    user_id,
                    exc,
                    failures,
                    delay,
                )
            except ChannelClosed as exc:
                reason = str(exc) or "channel closed"
                break
            finally:
                if channel is not None:
                    await channel.close()
            await self._sleep(delay)

        logger.info("Realtime channel %s/%s closed: %s", resource, user_id, reason)
        await self._close_key(key, reason)
