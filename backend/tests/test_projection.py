import asyncio

import pytest

from frontline.realtime.changefeed import ChangeFeed
from frontline.realtime.dispatcher import RealtimeDispatcher
from frontline.realtime.projection import BadgeProjection
from frontline.services import conversations
from frontline.services.badges import BadgeSnapshot, get_badge_snapshot
from frontline.services.engine import ActivityEngine


def _loader(*snapshots):
    remaining = list(snapshots)

    async def load():
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return load


async def _fail():
    raise RuntimeError("store unavailable")


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def test_inserts_above_the_watermark_count_once():
    snapshot = BadgeSnapshot(unread_messages=2, unread_notifications=1, last_message_id=10, last_notification_id=4)
    projection = BadgeProjection("bob", _loader(snapshot))
    asyncio.run(projection.refresh())

    assert not projection.apply_insert("messages", {"id": 9, "recipient_id": "bob", "read": 0})
    assert not projection.apply_insert("messages", {"id": 10, "recipient_id": "bob", "read": 0})
    assert projection.apply_insert("messages", {"id": 11, "recipient_id": "bob", "read": 0})
    assert not projection.apply_insert("messages", {"id": 11, "recipient_id": "bob", "read": 0})
    assert not projection.apply_insert("messages", {"id": 12, "recipient_id": "carol", "read": 0})
    assert projection.apply_insert("notifications", {"id": 5, "user_id": "bob", "read": 0, "dismissed": 0})

    assert projection.counts.unread_messages == 3
    assert projection.counts.unread_notifications == 2


def test_out_of_order_delivery_counts_each_row_once():
    projection = BadgeProjection("bob", _loader(BadgeSnapshot(unread_messages=1, last_message_id=10)))
    asyncio.run(projection.refresh())

    assert projection.apply_insert("messages", {"id": 12, "recipient_id": "bob", "read": 0})
    assert projection.apply_insert("messages", {"id": 11, "recipient_id": "bob", "read": 0})
    assert not projection.apply_insert("messages", {"id": 12, "recipient_id": "bob", "read": 0})

    assert projection.counts.unread_messages == 3


def test_read_rows_do_not_raise_the_badge():
    projection = BadgeProjection("bob", _loader(BadgeSnapshot()))
    asyncio.run(projection.refresh())

    assert not projection.apply_insert("notifications", {"id": 1, "user_id": "bob", "read": 1, "dismissed": 0})
    assert projection.counts.unread_notifications == 0


def test_refresh_replaces_local_state():
    first = BadgeSnapshot(unread_messages=1, last_message_id=3)
    second = BadgeSnapshot(unread_messages=5, last_message_id=20, expiring_credentials=2)
    changes = []
    projection = BadgeProjection("bob", _loader(first, second), on_change=lambda c: changes.append(c.model_copy()))

    asyncio.run(projection.refresh())
    projection.apply_insert("messages", {"id": 4, "recipient_id": "bob", "read": 0})
    counts = asyncio.run(projection.refresh())

    assert (counts.unread_messages, counts.expiring_credentials) == (5, 2)
    assert not projection.apply_insert("messages", {"id": 20, "recipient_id": "bob", "read": 0})
    assert [c.unread_messages for c in changes] == [1, 2, 5]


def test_failed_optimistic_update_restores_the_prior_count():
    projection = BadgeProjection("bob", _loader(BadgeSnapshot(unread_notifications=4)))
    asyncio.run(projection.refresh())

    with pytest.raises(RuntimeError):
        asyncio.run(projection.apply_optimistic("unread_notifications", 0, _fail))
    assert projection.counts.unread_notifications == 4


def test_rollback_keeps_inserts_that_arrived_meanwhile():
    projection = BadgeProjection("bob", _loader(BadgeSnapshot(unread_notifications=3, last_notification_id=10)))
    asyncio.run(projection.refresh())

    async def failing():
        projection.apply_insert("notifications", {"id": 11, "user_id": "bob", "read": 0, "dismissed": 0})
        assert projection.counts.unread_notifications == 1
        raise RuntimeError("store unavailable")

    with pytest.raises(RuntimeError):
        asyncio.run(projection.apply_optimistic("unread_notifications", 0, failing))
    assert projection.counts.unread_notifications == 4


def test_optimistic_update_keeps_the_result():
    projection = BadgeProjection("bob", _loader(BadgeSnapshot(unread_notifications=4)))
    asyncio.run(projection.refresh())

    result = asyncio.run(projection.apply_optimistic("unread_notifications", 0, lambda: "ok"))
    assert result == "ok"
    assert projection.counts.unread_notifications == 0

    with pytest.raises(ValueError):
        asyncio.run(projection.apply_optimistic("unread_widgets", 0, lambda: None))


def test_snapshot_watermarks_match_the_counted_rows(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    first = conversations.send_message(db, alice.id, bob.id, "one")
    second = conversations.send_message(db, alice.id, bob.id, "two")
    conversations.send_message(db, bob.id, alice.id, "reply")

    snapshot = get_badge_snapshot(db, bob.id)

    assert snapshot.unread_messages == 2
    assert snapshot.unread_notifications == 1
    assert snapshot.last_message_id == max(first.id, second.id)
    assert snapshot.last_notification_id > 0


def test_live_projection_follows_committed_inserts(session_factory, db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    carol = make_user("Carol")
    conversations.send_message(db, alice.id, bob.id, "Are you on shift tonight?")
    db.close()

    feed = ChangeFeed()
    feed.install(session_factory)

    async def scenario():
        dispatcher = RealtimeDispatcher(feed)
        engine = ActivityEngine(session_factory, dispatcher=dispatcher)
        projection = BadgeProjection.for_engine(engine, bob.id)

        counts = await projection.refresh()
        assert (counts.unread_messages, counts.unread_notifications) == (1, 1)

        projection.attach(engine)
        await wait_until(lambda: feed.open_channel_count() == 2)

        await engine.send_message(carol.id, bob.id, "Swap Friday?")
        await wait_until(
            lambda: projection.counts.unread_messages == 2 and projection.counts.unread_notifications == 2
        )

        await projection.apply_optimistic(
            "unread_messages", 1, lambda: engine.mark_thread_read(bob.id, carol.id)
        )
        assert await engine.count_unread_messages(bob.id) == 1

        projection.detach()
        await wait_until(lambda: feed.open_channel_count() == 0)
        await dispatcher.close()

    try:
        asyncio.run(scenario())
    finally:
        feed.uninstall()
