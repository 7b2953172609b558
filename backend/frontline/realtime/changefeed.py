"""
In-process change feed for the event log.

SQLAlchemy session hooks collect rows inserted into the watched tables at flush
time and publish them once the transaction commits. Rolled back inserts are
never published. Each FeedChannel receives only the rows whose recipient column
matches the user it was opened for.

Rows from one commit go out in id order. Commits made on different threads are
published in the order their after_commit hooks run, which can trail the
database's own commit order, so a channel may see a higher id before a lower
one. Consumers merge by row id (BadgeProjection.apply_insert does) rather than
relying on arrival order.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any

from pydantic import BaseModel
from sqlalchemy import event, inspect

from frontline.models.message import Message
from frontline.models.notification import Notification

logger = logging.getLogger(__name__)

# resource -> (model, recipient column)
RESOURCES: dict[str, tuple[type, str]] = {
    "messages": (Message, "recipient_id"),
    "notifications": (Notification, "user_id"),
}

_PENDING_KEY = "frontline.changefeed.pending"


class ChannelInterrupted(Exception):
    """Transient channel failure. Reconnect, then resynchronize."""


class ChannelClosed(Exception):
    """Terminal channel failure, e.g. a revoked session."""


class ChangeEvent(BaseModel):
    """A committed insert: ``{table, row}``."""

    table: str
    row: dict[str, Any]


class _Failure:
    def __init__(self, exc: Exception):
        self.exc = exc


_END = object()


def _row_to_dict(obj: Any) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def _within(scope: Any, boundary: Any) -> bool:
    while scope is not None:
        if scope is boundary:
            return True
        scope = scope.parent
    return False


def _resource_for(obj: Any) -> str | None:
    for resource, (model, _column) in RESOURCES.items():
        if isinstance(obj, model):
            return resource
    return None


class FeedChannel:
    """One filtered stream of change events, consumed with ``async for``."""

    def __init__(
        self,
        feed: "ChangeFeed",
        resource: str,
        user_id: str,
        loop: asyncio.AbstractEventLoop,
        max_buffer: int,
    ):
        self.resource = resource
        self.user_id = user_id
        self._feed = feed
        self._loop = loop
        self._max_buffer = max_buffer
        self._queue: asyncio.Queue = asyncio.Queue()
        self._buffered = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer_threadsafe(self, item: Any) -> bool:
        """Hand an item to the channel from any thread. False if the loop is gone."""
        try:
            self._loop.call_soon_threadsafe(self._offer, item)
        except RuntimeError:
            return False
        return True

    def _offer(self, item: Any) -> None:
        if self._closed:
            return
        if isinstance(item, ChangeEvent):
            if self._buffered >= self._max_buffer:
                logger.warning(
                    "Realtime buffer overflow for %s/%s; interrupting channel",
                    self.resource,
                    self.user_id,
                )
                self._feed._detach(self)
                self._terminate(_Failure(ChannelInterrupted("buffer overflow")))
                return
            self._buffered += 1
        self._queue.put_nowait(item)

    def _terminate(self, item: Any) -> None:
        self._closed = True
        self._queue.put_nowait(item)

    def __aiter__(self) -> "FeedChannel":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if isinstance(item, ChangeEvent):
            self._buffered -= 1
            return item
        if isinstance(item, _Failure):
            raise item.exc
        raise StopAsyncIteration

    async def close(self) -> None:
        """Stop the stream. Safe to call more than once."""
        self._feed._detach(self)
        if not self._closed:
            self._terminate(_END)


class ChangeFeed:
    """Publishes committed inserts on messages/notifications to open channels."""

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._channels: dict[tuple[str, str], set[FeedChannel]] = defaultdict(set)
        self._targets: list[Any] = []

    def install(self, target: Any) -> None:
        """Attach to a ``sessionmaker`` (or Session class) whose commits should be published."""
        event.listen(target, "after_flush", self._collect)
        event.listen(target, "after_commit", self._publish)
        event.listen(target, "after_soft_rollback", self._discard)
        self._targets.append(target)

    def uninstall(self) -> None:
        for target in self._targets:
            event.remove(target, "after_flush", self._collect)
            event.remove(target, "after_commit", self._publish)
            event.remove(target, "after_soft_rollback", self._discard)
        self._targets.clear()

    async def connect(self, resource: str, user_id: str) -> FeedChannel:
        if resource not in RESOURCES:
            raise ValueError(f"Unknown realtime resource: {resource}")
        channel = FeedChannel(self, resource, user_id, asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._channels[(resource, user_id)].add(channel)
        return channel

    def revoke(self, user_id: str, reason: str = "session revoked") -> int:
        """Terminally close every channel open for ``user_id``."""
        with self._lock:
            doomed = [
                channel
                for (_resource, owner), channels in self._channels.items()
                if owner == user_id
                for channel in channels
            ]
            for channel in doomed:
                self._channels[(channel.resource, user_id)].discard(channel)
        for channel in doomed:
            channel.offer_threadsafe(_Failure(ChannelClosed(reason)))
        return len(doomed)

    def open_channel_count(self) -> int:
        with self._lock:
            return sum(len(channels) for channels in self._channels.values())

    def _detach(self, channel: FeedChannel) -> None:
        with self._lock:
            key = (channel.resource, channel.user_id)
            channels = self._channels.get(key)
            if channels is None:
                return
            channels.discard(channel)
            if not channels:
                del self._channels[key]

    # -- session hooks ------------------------------------------------------

    def _collect(self, session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        # Rows flushed inside a SAVEPOINT go away if that SAVEPOINT rolls back
        scope = session.get_nested_transaction()
        for obj in session.new:
            resource = _resource_for(obj)
            if resource is not None:
                pending.append((scope, resource, _row_to_dict(obj)))

    def _publish(self, session) -> None:
        pending = session.info.pop(_PENDING_KEY, None)
        if not pending:
            return
        with self._lock:
            for _scope, resource, row in sorted(pending, key=lambda item: (item[1], item[2]["id"])):
                recipient = row[RESOURCES[resource][1]]
                change = ChangeEvent(table=resource, row=row)
                for channel in list(self._channels.get((resource, recipient), ())):
                    if not channel.offer_threadsafe(change):
                        self._channels[(resource, recipient)].discard(channel)

    def _discard(self, session, previous_transaction) -> None:
        pending = session.info.get(_PENDING_KEY)
        if not pending:
            return
        boundary = previous_transaction
        while not boundary.nested and boundary.parent is not None:
            boundary = boundary.parent
        if boundary.parent is None:
            session.info.pop(_PENDING_KEY, None)
            return
        session.info[_PENDING_KEY] = [entry for entry in pending if not _within(entry[0], boundary)]
