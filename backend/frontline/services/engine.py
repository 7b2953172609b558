"""
Async facade over the activity services.

Every method takes the caller's identity explicitly. Synchronous service work
runs in Starlette's threadpool with its own session. Reads that hit a transient
store failure return their empty result and report the failure through
``on_transient``; writes raise it.
"""
import logging
from datetime import datetime
from typing import Any, Callable

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import sessionmaker

from frontline.clock import utcnow
from frontline.errors import TransientError, require_user
from frontline.realtime.dispatcher import (
    ClosedCallback,
    InsertCallback,
    RealtimeDispatcher,
    ResyncCallback,
    Subscription,
)
from frontline.schemas.credential import CredentialResponse
from frontline.services import badges, conversations, credentials, notifications
from frontline.services.badges import BadgeCounts, BadgeSnapshot

logger = logging.getLogger(__name__)

TransientHook = Callable[[str, TransientError], None]

_RAISE = object()


class ActivityEngine:
    def __init__(
        self,
        session_factory: sessionmaker,
        dispatcher: RealtimeDispatcher | None = None,
        notification_limit: int = 50,
        on_transient: TransientHook | None = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.notification_limit = notification_limit
        self.on_transient = on_transient

    async def _run(self, operation: Callable[..., Any], *args: Any, empty: Any = _RAISE, **kwargs: Any) -> Any:
        def call():
            with self.session_factory() as db:
                return operation(db, *args, **kwargs)

        try:
            return await run_in_threadpool(call)
        except TransientError as exc:
            if empty is _RAISE:
                raise
            logger.warning("%s degraded: %s", operation.__name__, exc.message)
            if self.on_transient is not None:
                self.on_transient(operation.__name__, exc)
            return empty() if callable(empty) else empty

    # -- conversations ------------------------------------------------------

    async def list_conversations(self, user_id: str) -> list[dict]:
        require_user(user_id)
        return await self._run(conversations.list_conversations, user_id, empty=list)

    async def get_thread(self, user_id: str, counterpart_id: str, limit: int | None = None) -> list[dict]:
        require_user(user_id)

        def thread(db, *args):
            return [conversations.serialize_message(m) for m in conversations.get_thread(db, *args)]

        return await self._run(thread, user_id, counterpart_id, limit, empty=list)

    async def send_message(self, sender_id: str, recipient_id: str, content: str) -> dict:
        require_user(sender_id)

        def send(db, *args):
            return conversations.serialize_message(conversations.send_message(db, *args))

        return await self._run(send, sender_id, recipient_id, content)

    async def mark_thread_read(self, user_id: str, counterpart_id: str) -> int:
        require_user(user_id)
        return await self._run(conversations.mark_thread_read, user_id, counterpart_id)

    async def count_unread_messages(self, user_id: str) -> int:
        require_user(user_id)
        return await self._run(conversations.count_unread_messages, user_id, empty=0)

    # -- notifications ------------------------------------------------------

    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int | None = None) -> list[dict]:
        require_user(user_id)
        return await self._run(
            notifications.list_notifications,
            user_id,
            unread_only=unread_only,
            limit=limit or self.notification_limit,
            empty=list,
        )

    async def mark_notification_read(self, user_id: str, notification_id: int) -> bool:
        require_user(user_id)
        return await self._run(notifications.mark_notification_read, user_id, notification_id)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        require_user(user_id)
        return await self._run(notifications.mark_all_read, user_id)

    async def clear_all_notifications(self, user_id: str) -> int:
        require_user(user_id)
        return await self._run(notifications.clear_all, user_id)

    async def delete_notification(self, user_id: str, notification_id: int) -> None:
        require_user(user_id)
        await self._run(notifications.delete_notification, user_id, notification_id)

    async def count_unread_notifications(self, user_id: str) -> int:
        require_user(user_id)
        return await self._run(notifications.count_unread_notifications, user_id, empty=0)

    # -- credentials and badges ---------------------------------------------

    async def count_expiring_credentials(self, user_id: str, now: datetime | None = None) -> int:
        require_user(user_id)
        return await self._run(credentials.count_expiring_or_expired, user_id, now, empty=0)

    async def list_expiring_credentials(self, user_id: str, now: datetime | None = None) -> list[dict]:
        require_user(user_id)

        def list_expiring_credentials(db, user_id, now):
            now = now or utcnow()
            return [
                {**CredentialResponse.model_validate(c).model_dump(), "status": c.status_at(now)}
                for c in credentials.list_expiring_credentials(db, user_id, now)
            ]

        return await self._run(list_expiring_credentials, user_id, now, empty=list)

    async def sweep_credentials(self, user_id: str | None = None, now: datetime | None = None) -> int:
        return await self._run(credentials.sweep_credentials, now, user_id)

    async def get_badge_counts(self, user_id: str, now: datetime | None = None) -> BadgeCounts:
        require_user(user_id)
        return await self._run(badges.get_badge_counts, user_id, now, empty=BadgeCounts)

    async def get_badge_snapshot(self, user_id: str, now: datetime | None = None) -> BadgeSnapshot:
        """Badge counts with the id watermarks a live projection merges inserts against."""
        require_user(user_id)
        return await self._run(badges.get_badge_snapshot, user_id, now)

    # -- realtime -----------------------------------------------------------

    def _subscribe(
        self,
        user_id: str,
        resource: str,
        on_insert: InsertCallback,
        on_closed: ClosedCallback | None,
        on_resync: ResyncCallback | None,
    ) -> Subscription:
        require_user(user_id)
        if self.dispatcher is None:
            raise RuntimeError("ActivityEngine was built without a realtime dispatcher")
        return self.dispatcher.subscribe(user_id, resource, on_insert, on_closed=on_closed, on_resync=on_resync)

    def subscribe_to_messages(
        self,
        user_id: str,
        on_insert: InsertCallback,
        on_closed: ClosedCallback | None = None,
        on_resync: ResyncCallback | None = None,
    ) -> Subscription:
        """Inserted messages addressed to user_id. Call the returned handle to stop."""
        return self._subscribe(user_id, "messages", on_insert, on_closed, on_resync)

    def subscribe_to_notifications(
        self,
        user_id: str,
        on_insert: InsertCallback,
        on_closed: ClosedCallback | None = None,
        on_resync: ResyncCallback | None = None,
    ) -> Subscription:
        return self._subscribe(user_id, "notifications", on_insert, on_closed, on_resync)
