import pytest

from frontline.errors import Conflict, NotFound, ValidationFailed
from frontline.models.notification import Notification
from frontline.services import connections


def _connection_notifications(db, user_id):
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.type == "connection")
        .order_by(Notification.id)
        .all()
    )


def test_request_and_accept(db, make_user):
    carol = make_user("Carol")
    dave = make_user("Dave")

    request = connections.send_connection_request(db, carol.id, dave.id)

    assert request.status == "pending"
    assert connections.check_connection(db, carol.id, dave.id) == connections.PENDING
    assert connections.check_connection(db, dave.id, carol.id) == connections.PENDING
    [incoming] = connections.list_pending_requests(db, dave.id)
    assert incoming["user"]["full_name"] == "Carol"
    assert connections.list_pending_requests(db, carol.id) == []

    accepted = connections.accept_connection(db, dave.id, request.id)

    assert accepted.status == "accepted"
    assert connections.check_connection(db, carol.id, dave.id) == connections.CONNECTED
    assert [p["id"] for p in connections.list_connections(db, carol.id)] == [dave.id]
    assert [p["id"] for p in connections.list_connections(db, dave.id)] == [carol.id]
    assert connections.count_connections(db, carol.id) == 1

    assert [n.title for n in _connection_notifications(db, dave.id)] == ["Carol wants to connect"]
    assert [n.title for n in _connection_notifications(db, carol.id)] == [
        "Dave accepted your connection request"
    ]


def test_duplicate_request_conflicts_in_either_direction(db, make_user):
    carol = make_user("Carol")
    dave = make_user("Dave")
    connections.send_connection_request(db, carol.id, dave.id)

    with pytest.raises(Conflict):
        connections.send_connection_request(db, carol.id, dave.id)
    with pytest.raises(Conflict):
        connections.send_connection_request(db, dave.id, carol.id)

    assert len(_connection_notifications(db, dave.id)) == 1
    assert _connection_notifications(db, carol.id) == []


def test_request_to_self_or_unknown_user(db, make_user):
    carol = make_user("Carol")

    with pytest.raises(ValidationFailed):
        connections.send_connection_request(db, carol.id, carol.id)
    with pytest.raises(NotFound):
        connections.send_connection_request(db, carol.id, "no-such-user")


def test_only_the_addressee_can_accept(db, make_user):
    carol = make_user("Carol")
    dave = make_user("Dave")
    erin = make_user("Erin")
    request = connections.send_connection_request(db, carol.id, dave.id)

    with pytest.raises(NotFound):
        connections.accept_connection(db, carol.id, request.id)
    with pytest.raises(NotFound):
        connections.accept_connection(db, erin.id, request.id)

    connections.accept_connection(db, dave.id, request.id)
    with pytest.raises(Conflict):
        connections.accept_connection(db, dave.id, request.id)


def test_decline_removes_the_request(db, make_user):
    carol = make_user("Carol")
    dave = make_user("Dave")
    request_id = connections.send_connection_request(db, carol.id, dave.id).id

    connections.decline_connection(db, dave.id, request_id)

    assert connections.check_connection(db, carol.id, dave.id) == connections.NONE
    with pytest.raises(NotFound):
        connections.decline_connection(db, dave.id, request_id)
    # A fresh request is allowed once the old one is gone
    assert connections.send_connection_request(db, dave.id, carol.id).status == "pending"


def test_accepted_connection_cannot_be_declined(db, make_user):
    carol = make_user("Carol")
    dave = make_user("Dave")
    request = connections.send_connection_request(db, carol.id, dave.id)
    connections.accept_connection(db, dave.id, request.id)

    with pytest.raises(NotFound):
        connections.decline_connection(db, dave.id, request.id)
