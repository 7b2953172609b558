import pytest

from frontline.errors import NotAuthenticated, NotFound, ValidationFailed
from frontline.models.message import Message
from frontline.models.notification import Notification
from frontline.services import conversations


def test_unread_conversation_and_newest_preview(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    conversations.send_message(db, alice.id, bob.id, "hi")
    inbox = conversations.list_conversations(db, bob.id)

    assert len(inbox) == 1
    assert inbox[0]["user"]["id"] == alice.id
    assert inbox[0]["unread_count"] == 1
    assert inbox[0]["last_message"]["content"] == "hi"

    conversations.send_message(db, alice.id, bob.id, "are you there?")
    inbox = conversations.list_conversations(db, bob.id)

    assert inbox[0]["last_message"]["content"] == "are you there?"
    assert inbox[0]["unread_count"] == 2


def test_mark_thread_read_clears_unread_and_is_idempotent(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    conversations.send_message(db, alice.id, bob.id, "hi")
    conversations.send_message(db, alice.id, bob.id, "are you there?")
    before = conversations.count_unread_messages(db, bob.id)

    assert conversations.mark_thread_read(db, bob.id, alice.id) == 2
    assert conversations.list_conversations(db, bob.id)[0]["unread_count"] == 0
    assert conversations.count_unread_messages(db, bob.id) == before - 2

    assert conversations.mark_thread_read(db, bob.id, alice.id) == 0
    assert conversations.count_unread_messages(db, bob.id) == before - 2


def test_mark_thread_read_leaves_own_outgoing_messages_alone(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    conversations.send_message(db, bob.id, alice.id, "outgoing")
    conversations.send_message(db, alice.id, bob.id, "incoming")

    conversations.mark_thread_read(db, bob.id, alice.id)

    outgoing = db.query(Message).filter(Message.sender_id == bob.id).one()
    assert outgoing.read == 0
    assert conversations.count_unread_messages(db, alice.id) == 1


def test_unread_count_equals_sum_over_conversations(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    carol = make_user("Carol")
    conversations.send_message(db, alice.id, bob.id, "one")
    conversations.send_message(db, carol.id, bob.id, "two")
    conversations.send_message(db, carol.id, bob.id, "three")
    conversations.send_message(db, bob.id, carol.id, "reply")

    inbox = conversations.list_conversations(db, bob.id)

    assert sum(c["unread_count"] for c in inbox) == conversations.count_unread_messages(db, bob.id) == 3
    # Bob's reply to Carol is the newest message anywhere in his inbox
    assert [c["user"]["id"] for c in inbox] == [carol.id, alice.id]
    assert inbox[0]["last_message"]["content"] == "reply"


def test_same_timestamp_preview_falls_back_to_insertion_order(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    stamp = "2026-01-01T12:00:00.000000"
    db.add_all([
        Message(sender_id=alice.id, recipient_id=bob.id, content="first", created_at=stamp),
        Message(sender_id=alice.id, recipient_id=bob.id, content="second", created_at=stamp),
    ])
    db.commit()

    inbox = conversations.list_conversations(db, bob.id)

    assert inbox[0]["last_message"]["content"] == "second"


def test_empty_inbox_is_not_an_error(db, make_user):
    loner = make_user("Loner")

    assert conversations.list_conversations(db, loner.id) == []
    assert conversations.count_unread_messages(db, loner.id) == 0


def test_missing_identity_is_rejected(db):
    with pytest.raises(NotAuthenticated):
        conversations.list_conversations(db, "")
    with pytest.raises(NotAuthenticated):
        conversations.mark_thread_read(db, None, "someone")


def test_get_thread_is_ascending_and_limit_keeps_newest(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    for text in ("a", "b", "c", "d"):
        conversations.send_message(db, alice.id, bob.id, text)
    conversations.send_message(db, bob.id, alice.id, "e")

    thread = conversations.get_thread(db, bob.id, alice.id)
    assert [m.content for m in thread] == ["a", "b", "c", "d", "e"]

    tail = conversations.get_thread(db, bob.id, alice.id, limit=2)
    assert [m.content for m in tail] == ["d", "e"]


def test_send_message_validates_and_trims(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    with pytest.raises(ValidationFailed):
        conversations.send_message(db, alice.id, bob.id, "   ")
    with pytest.raises(ValidationFailed):
        conversations.send_message(db, alice.id, alice.id, "note to self")
    with pytest.raises(NotFound):
        conversations.send_message(db, alice.id, "no-such-user", "hello")

    message = conversations.send_message(db, alice.id, bob.id, "  padded  ")
    assert message.content == "padded"


def test_send_message_notifies_recipient_once_per_unread_sender(db, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    conversations.send_message(db, alice.id, bob.id, "hi")
    conversations.send_message(db, alice.id, bob.id, "hello again")

    rows = db.query(Notification).filter(Notification.user_id == bob.id, Notification.type == "message").all()
    assert len(rows) == 1
    assert rows[0].related_user_id == alice.id
    assert rows[0].title == "New message from Alice"
    assert db.query(Notification).filter(Notification.user_id == alice.id).count() == 0
