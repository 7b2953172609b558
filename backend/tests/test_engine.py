import asyncio
from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker

from frontline.database import build_engine
from frontline.errors import NotAuthenticated, TransientError
from frontline.jobs import run_credential_sweep
from frontline.models.credential import Credential
from frontline.services.badges import BadgeCounts
from frontline.services.engine import ActivityEngine


@pytest.fixture
def unreachable_store(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'missing' / 'nested' / 'frontline.db'}")
    yield sessionmaker(bind=engine)
    engine.dispose()


def test_reads_degrade_and_report_transient_failures(unreachable_store):
    reported = []
    engine = ActivityEngine(unreachable_store, on_transient=lambda op, exc: reported.append((op, exc.retryable)))

    async def scenario():
        return (
            await engine.list_conversations("bob"),
            await engine.count_unread_messages("bob"),
            await engine.list_notifications("bob"),
            await engine.get_badge_counts("bob"),
            await engine.list_expiring_credentials("bob"),
        )

    conversations, unread, notifications, badges, expiring = asyncio.run(scenario())

    assert conversations == []
    assert unread == 0
    assert notifications == []
    assert badges == BadgeCounts()
    assert expiring == []
    assert [op for op, _ in reported] == [
        "list_conversations",
        "count_unread_messages",
        "list_notifications",
        "get_badge_counts",
        "list_expiring_credentials",
    ]
    assert all(retryable for _, retryable in reported)


def test_writes_surface_transient_failures(unreachable_store):
    engine = ActivityEngine(unreachable_store)

    with pytest.raises(TransientError):
        asyncio.run(engine.send_message("alice", "bob", "hello"))
    with pytest.raises(TransientError):
        asyncio.run(engine.mark_all_notifications_read("bob"))


def test_every_operation_needs_a_caller(session_factory):
    engine = ActivityEngine(session_factory)

    with pytest.raises(NotAuthenticated):
        asyncio.run(engine.list_conversations(None))
    with pytest.raises(NotAuthenticated):
        asyncio.run(engine.get_badge_counts(""))


def test_subscribing_needs_a_dispatcher(session_factory):
    engine = ActivityEngine(session_factory)

    with pytest.raises(RuntimeError):
        engine.subscribe_to_messages("bob", lambda row: None)


def test_engine_round_trip(session_factory, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    engine = ActivityEngine(session_factory)

    async def scenario():
        sent = await engine.send_message(alice.id, bob.id, "Meet at station 4")
        thread = await engine.get_thread(bob.id, alice.id)
        inbox = await engine.list_notifications(bob.id)
        badges_before = await engine.get_badge_counts(bob.id)
        await engine.mark_thread_read(bob.id, alice.id)
        await engine.mark_all_notifications_read(bob.id)
        badges_after = await engine.get_badge_counts(bob.id)
        return sent, thread, inbox, badges_before, badges_after

    sent, thread, inbox, before, after = asyncio.run(scenario())

    assert [m["id"] for m in thread] == [sent["id"]]
    assert inbox[0]["title"] == "New message from Alice"
    assert (before.unread_messages, before.unread_notifications) == (1, 1)
    assert (after.unread_messages, after.unread_notifications) == (0, 0)


def test_scheduled_sweep(session_factory, db, make_user):
    owner = make_user("Olivia")
    db.add(Credential(user_id=owner.id, credential_type="CPR", credential_name="BLS", expiration_date="2020-01-01"))
    db.commit()

    assert run_credential_sweep(session_factory) == 1
    assert run_credential_sweep(session_factory) == 0


def test_scheduled_sweep_skips_when_store_is_down(unreachable_store):
    assert run_credential_sweep(unreachable_store) == 0


def test_engine_sweep_for_one_user(session_factory, db, make_user):
    owner = make_user("Olivia")
    db.add(Credential(user_id=owner.id, credential_type="CPR", credential_name="BLS", expiration_date="2027-02-01"))
    db.commit()
    engine = ActivityEngine(session_factory)

    created = asyncio.run(engine.sweep_credentials(owner.id, now=datetime(2027, 1, 15)))

    assert created == 1
    assert asyncio.run(engine.count_expiring_credentials(owner.id, now=datetime(2027, 1, 15))) == 1
    [expiring] = asyncio.run(engine.list_expiring_credentials(owner.id, now=datetime(2027, 1, 15)))
    assert (expiring["credential_name"], expiring["status"]) == ("BLS", "expiring_soon")
