import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from frontline.database import get_db
from frontline.errors import TransientError
from frontline.main import app
from frontline.realtime.changefeed import ChangeFeed
from frontline.realtime.dispatcher import RealtimeDispatcher
from frontline.security import create_access_token
from frontline.services import conversations
from frontline.services.blob_store import LocalBlobStore
from frontline.services.engine import ActivityEngine


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def client(session_factory, tmp_path):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    feed = ChangeFeed()
    feed.install(session_factory)
    app.dependency_overrides[get_db] = override_get_db
    app.state.engine = ActivityEngine(session_factory, dispatcher=RealtimeDispatcher(feed))
    app.state.blob_store = LocalBlobStore(tmp_path / "blobs")
    yield TestClient(app)
    app.dependency_overrides.clear()
    feed.uninstall()


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_requests_without_a_token_are_rejected(client):
    response = client.get("/api/messages/conversations")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json()["retryable"] is False


def test_token_for_unknown_user_is_rejected(client):
    response = client.get("/api/badges", headers={"Authorization": f"Bearer {create_access_token('ghost')}"})

    assert response.status_code == 401


def test_message_flow(client, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    sent = client.post("/api/messages", json={"recipient_id": bob.id, "content": "  Engine 7 at the scene  "}, headers=auth(alice))
    assert sent.status_code == 201
    assert sent.json()["content"] == "Engine 7 at the scene"

    inbox = client.get("/api/messages/conversations", headers=auth(bob)).json()
    assert inbox["degraded"] is False
    [conversation] = inbox["conversations"]
    assert conversation["user"]["full_name"] == "Alice"
    assert conversation["unread_count"] == 1

    badges = client.get("/api/badges", headers=auth(bob)).json()
    assert badges == {
        "unread_messages": 1,
        "unread_notifications": 1,
        "expiring_credentials": 0,
        "degraded": False,
    }

    assert client.post(f"/api/messages/{alice.id}/read", headers=auth(bob)).json() == {"updated": 1}
    assert client.get("/api/messages/unread-count", headers=auth(bob)).json()["count"] == 0
    thread = client.get(f"/api/messages/{alice.id}", headers=auth(bob)).json()
    assert [m["read"] for m in thread["messages"]] == [True]


def test_validation_failures_map_to_422(client, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")

    response = client.post("/api/messages", json={"recipient_id": bob.id, "content": "   "}, headers=auth(alice))

    assert response.status_code == 422
    assert response.json()["detail"] == "Message content must not be empty"


def test_notification_endpoints(client, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    client.post("/api/messages", json={"recipient_id": bob.id, "content": "hi"}, headers=auth(alice))

    listed = client.get("/api/notifications", headers=auth(bob)).json()["notifications"]
    assert [n["type"] for n in listed] == ["message"]
    notification_id = listed[0]["id"]

    assert client.post(f"/api/notifications/{notification_id}/read", headers=auth(alice)).status_code == 404
    assert client.post(f"/api/notifications/{notification_id}/read", headers=auth(bob)).json() == {
        "success": True,
        "changed": True,
    }
    assert client.get("/api/notifications/unread-count", headers=auth(bob)).json()["count"] == 0
    assert client.delete(f"/api/notifications/{notification_id}", headers=auth(bob)).status_code == 204
    assert client.get("/api/notifications", headers=auth(bob)).json()["notifications"] == []
    assert client.delete("/api/notifications", headers=auth(bob)).json() == {"updated": 0}


def test_transient_reads_degrade_and_writes_ask_for_retry(client, make_user, monkeypatch):
    alice = make_user("Alice")
    bob = make_user("Bob")

    def unavailable(*args, **kwargs):
        raise TransientError("Event log unavailable: OperationalError")

    monkeypatch.setattr(conversations, "list_conversations", unavailable)
    monkeypatch.setattr(conversations, "send_message", unavailable)

    read = client.get("/api/messages/conversations", headers=auth(bob))
    assert read.status_code == 200
    assert read.json() == {"conversations": [], "degraded": True}

    write = client.post("/api/messages", json={"recipient_id": bob.id, "content": "hi"}, headers=auth(alice))
    assert write.status_code == 503
    assert write.headers["retry-after"] == "1"
    assert write.json()["retryable"] is True


def test_connection_conflict_maps_to_409(client, make_user):
    carol = make_user("Carol")
    dave = make_user("Dave")

    created = client.post("/api/connections", json={"target_id": dave.id}, headers=auth(carol))
    assert created.status_code == 201
    assert client.post("/api/connections", json={"target_id": carol.id}, headers=auth(dave)).status_code == 409

    status = client.get(f"/api/connections/status/{carol.id}", headers=auth(dave)).json()
    assert status == {"status": "pending"}
    accepted = client.post(f"/api/connections/{created.json()['id']}/accept", headers=auth(dave))
    assert accepted.json()["status"] == "accepted"


def test_credential_endpoints(client, make_user):
    owner = make_user("Olivia")

    created = client.post(
        "/api/credentials",
        json={"credential_type": "ACLS", "credential_name": "ACLS Provider", "expiration_date": "2020-06-30"},
        headers=auth(owner),
    )
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "expired"
    assert body["expiration_date"] == "2020-06-30"

    counts = client.get("/api/credentials/counts", headers=auth(owner)).json()
    assert counts == {"valid": 0, "expiring_soon": 0, "expired": 1, "total": 1}
    assert client.get("/api/badges", headers=auth(owner)).json()["expiring_credentials"] == 1
    assert client.post("/api/credentials/sweep", headers=auth(owner)).json() == {"created": 0}
    expiring = client.get("/api/credentials/expiring", headers=auth(owner)).json()
    assert [c["id"] for c in expiring] == [body["id"]]

    [alert] = client.get("/api/notifications", headers=auth(owner)).json()["notifications"]
    assert alert["type"] == "credential_expired"
    assert alert["related_credential_id"] == body["id"]

    assert client.delete(f"/api/credentials/{body['id']}", headers=auth(owner)).status_code == 204
    assert client.get(f"/api/credentials/{body['id']}", headers=auth(owner)).status_code == 404


def test_moderation_is_admin_only(client, make_user):
    author = make_user("Olivia")
    reporter = make_user("Frank")
    admin = make_user("Ada", is_admin=True)
    post = client.post("/api/posts", json={"content": "Selling used turnout gear"}, headers=auth(author)).json()
    report = client.post(
        "/api/reports", json={"post_id": post["id"], "reason": "Spam"}, headers=auth(reporter)
    ).json()

    assert client.get("/api/reports", headers=auth(reporter)).status_code == 403
    pending = client.get("/api/reports", params={"status": "pending"}, headers=auth(admin)).json()
    assert [r["id"] for r in pending] == [report["id"]]

    reviewed = client.patch(f"/api/reports/{report['id']}", json={"status": "dismissed"}, headers=auth(admin))
    assert reviewed.json()["status"] == "dismissed"
    again = client.patch(f"/api/reports/{report['id']}", json={"status": "reviewed"}, headers=auth(admin))
    assert again.status_code == 409


def test_realtime_socket_rejects_bad_tokens(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/realtime/ws?token=not-a-token"):
            pass

    assert exc_info.value.code == 4401


def test_realtime_socket_pushes_inserts(client, make_user):
    alice = make_user("Alice")
    bob = make_user("Bob")
    token = create_access_token(bob.id)

    with client.websocket_connect(f"/api/realtime/ws?token={token}") as socket:
        assert socket.receive_json() == {"type": "connected", "user_id": bob.id}

        client.post("/api/messages", json={"recipient_id": bob.id, "content": "Copy that"}, headers=auth(alice))
        frames = [socket.receive_json(), socket.receive_json()]

    by_resource = {frame["resource"]: frame for frame in frames}
    assert set(by_resource) == {"messages", "notifications"}
    assert by_resource["messages"]["type"] == "insert"
    assert by_resource["messages"]["row"]["content"] == "Copy that"
    assert by_resource["notifications"]["row"]["title"] == "New message from Alice"
