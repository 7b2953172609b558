import asyncio

import pytest

from frontline.models.message import Message
from frontline.realtime.changefeed import ChangeFeed, ChannelClosed, ChannelInterrupted


async def _next(channel, timeout=1.0):
    return await asyncio.wait_for(channel.__anext__(), timeout)


def _message(sender, recipient, content):
    return Message(sender_id=sender.id, recipient_id=recipient.id, content=content)


@pytest.fixture
def feed(session_factory):
    feed = ChangeFeed(queue_size=8)
    feed.install(session_factory)
    yield feed
    feed.uninstall()


def test_commit_publishes_to_the_recipient_only(feed, db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    async def scenario():
        bob_channel = await feed.connect("messages", bob.id)
        alice_channel = await feed.connect("messages", alice.id)

        db.add(_message(alice, bob, "Rig 12 back in service"))
        db.commit()

        change = await _next(bob_channel)
        assert change.table == "messages"
        assert change.row["content"] == "Rig 12 back in service"
        assert change.row["recipient_id"] == bob.id
        assert isinstance(change.row["id"], int)

        with pytest.raises(asyncio.TimeoutError):
            await _next(alice_channel, timeout=0.05)

        await bob_channel.close()
        await alice_channel.close()
        assert feed.open_channel_count() == 0

    asyncio.run(scenario())


def test_commits_arrive_in_commit_order(feed, db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    async def scenario():
        channel = await feed.connect("messages", bob.id)
        for content in ("one", "two", "three"):
            db.add(_message(alice, bob, content))
            db.commit()

        assert [(await _next(channel)).row["content"] for _ in range(3)] == ["one", "two", "three"]
        await channel.close()

    asyncio.run(scenario())


def test_rows_of_one_commit_arrive_in_id_order(feed, db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    async def scenario():
        channel = await feed.connect("messages", bob.id)
        for row_id, content in ((50, "flushed first"), (40, "flushed second")):
            message = _message(alice, bob, content)
            message.id = row_id
            db.add(message)
            db.flush()
        db.commit()

        assert [(await _next(channel)).row["id"] for _ in range(2)] == [40, 50]
        await channel.close()

    asyncio.run(scenario())


def test_rolled_back_insert_is_never_published(feed, db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    async def scenario():
        channel = await feed.connect("messages", bob.id)

        db.add(_message(alice, bob, "draft"))
        db.flush()
        db.rollback()
        db.add(_message(alice, bob, "sent"))
        db.commit()

        assert (await _next(channel)).row["content"] == "sent"
        with pytest.raises(asyncio.TimeoutError):
            await _next(channel, timeout=0.05)
        await channel.close()

    asyncio.run(scenario())


def test_savepoint_rollback_keeps_earlier_rows(feed, db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    async def scenario():
        channel = await feed.connect("messages", bob.id)

        db.add(_message(alice, bob, "kept"))
        db.flush()
        savepoint = db.begin_nested()
        db.add(_message(alice, bob, "undone"))
        db.flush()
        savepoint.rollback()
        db.commit()

        assert (await _next(channel)).row["content"] == "kept"
        with pytest.raises(asyncio.TimeoutError):
            await _next(channel, timeout=0.05)
        await channel.close()

    asyncio.run(scenario())


def test_revoke_closes_channels_terminally(feed, make_user):
    bob = make_user("Bob")

    async def scenario():
        messages = await feed.connect("messages", bob.id)
        inbox = await feed.connect("notifications", bob.id)

        assert feed.revoke(bob.id) == 2

        for channel in (messages, inbox):
            with pytest.raises(ChannelClosed):
                await _next(channel)
        assert feed.open_channel_count() == 0

    asyncio.run(scenario())


def test_overflow_interrupts_the_slow_channel(session_factory, db, make_user):
    feed = ChangeFeed(queue_size=1)
    feed.install(session_factory)
    alice = make_user("Alice")
    bob = make_user("Bob")

    async def scenario():
        channel = await feed.connect("messages", bob.id)
        db.add(_message(alice, bob, "first"))
        db.commit()
        db.add(_message(alice, bob, "second"))
        db.commit()

        assert (await _next(channel)).row["content"] == "first"
        with pytest.raises(ChannelInterrupted):
            await _next(channel)
        assert channel.closed
        assert feed.open_channel_count() == 0

    try:
        asyncio.run(scenario())
    finally:
        feed.uninstall()


def test_close_ends_iteration(feed, make_user):
    bob = make_user("Bob")

    async def scenario():
        channel = await feed.connect("notifications", bob.id)
        await channel.close()
        await channel.close()
        return [change async for change in channel]

    assert asyncio.run(scenario()) == []


def test_unknown_resource(feed):
    with pytest.raises(ValueError):
        asyncio.run(feed.connect("posts", "someone"))
