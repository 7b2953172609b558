"""
Live badge counts for one user, kept current from realtime inserts.

The projection starts from a snapshot (counts plus the newest message and
notification ids they include). Inserts above those watermarks bump the counts;
anything at or below them, or already seen, is a redelivery and is ignored.
A resync throws the local state away and loads a fresh snapshot.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable

from frontline.services.badges import BadgeCounts, BadgeSnapshot

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Awaitable[BadgeSnapshot]]
ChangeListener = Callable[[BadgeCounts], None]

# resource -> (recipient column, badge field, snapshot watermark)
_TRACKED = {
    "messages": ("recipient_id", "unread_messages", "last_message_id"),
    "notifications": ("user_id", "unread_notifications", "last_notification_id"),
}


class BadgeProjection:
    def __init__(self, user_id: str, load: SnapshotLoader, on_change: ChangeListener | None = None):
        self.user_id = user_id
        self.counts = BadgeCounts()
        self._load = load
        self._on_change = on_change
        self._watermarks = {resource: 0 for resource in _TRACKED}
        self._seen: dict[str, set[int]] = {resource: set() for resource in _TRACKED}
        self._subscriptions: list[Any] = []

    @classmethod
    def for_engine(cls, engine, user_id: str, on_change: ChangeListener | None = None) -> "BadgeProjection":
        return cls(user_id, lambda: engine.get_badge_snapshot(user_id), on_change=on_change)

    async def refresh(self) -> BadgeCounts:
        snapshot = await self._load()
        self.counts = BadgeCounts(**snapshot.model_dump(include=set(BadgeCounts.model_fields)))
        for resource, (_column, _field, watermark) in _TRACKED.items():
            self._watermarks[resource] = getattr(snapshot, watermark)
            self._seen[resource].clear()
        self._changed()
        return self.counts

    def attach(self, engine) -> None:
        """Follow the user's messages and notifications through ``engine``."""
        self._subscriptions = [
            engine.subscribe_to_messages(
                self.user_id,
                lambda row: self.apply_insert("messages", row),
                on_resync=self.refresh,
            ),
            engine.subscribe_to_notifications(
                self.user_id,
                lambda row: self.apply_insert("notifications", row),
                on_resync=self.refresh,
            ),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def apply_insert(self, resource: str, row: dict) -> bool:
        """Count an inserted row once. Returns True if the counts changed."""
        column, field, _watermark = _TRACKED[resource]
        row_id = row.get("id")
        if row_id is None or row.get(column) != self.user_id:
            return False
        if row_id <= self._watermarks[resource] or row_id in self._seen[resource]:
            return False
        self._seen[resource].add(row_id)

        if row.get("read") or row.get("dismissed"):
            return False
        setattr(self.counts, field, getattr(self.counts, field) + 1)
        self._changed()
        return True

    async def apply_optimistic(self, field: str, value: int, action: Callable[[], Any]) -> Any:
        """Show ``value`` for ``field`` while ``action`` runs; undo it if the action fails.

        Only the optimistic delta is undone, so rows counted by apply_insert
        while the action was pending survive the rollback.
        """
        if field not in BadgeCounts.model_fields:
            raise ValueError(f"Unknown badge field: {field}")
        previous = getattr(self.counts, field)
        setattr(self.counts, field, value)
        self._changed()
        try:
            result = action()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            restored = getattr(self.counts, field) - (value - previous)
            setattr(self.counts, field, max(restored, 0))
            self._changed()
            raise
        return result

    def _changed(self) -> None:
        if self._on_change is not None:
            try:
                self._on_change(self.counts)
            except Exception:
                logger.exception("Badge change listener failed")
