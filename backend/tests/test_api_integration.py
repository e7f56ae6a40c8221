"""Integration tests exercising API endpoints via FastAPI's TestClient."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient


def register_user(
    client: TestClient,
    login: str,
    password: str,
    display_name: str = "Test",
) -> dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={"login": login, "password": password, "display_name": display_name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def login_user(client: TestClient, login: str, password: str) -> str:
    response = client.post(
        "/api/auth/login",
        json={"login": login, "password": password},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return body["access_token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def send(client: TestClient, token: str, to: int, content: str):
    return client.post("/api/messages", json={"to": to, "content": content}, headers=auth_headers(token))


def test_register_and_login_flow(client: TestClient):
    """End-to-end flow for registering and logging in a user."""

    payload = {"login": "alice", "password": "wonderland", "display_name": "Alice"}
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    data = response.json()
    assert data["login"] == "alice"
    assert data["plan"] == "free"
    assert data["verified"] is False

    duplicate = client.post("/api/auth/register", json=payload)
    assert duplicate.status_code == 400

    token = login_user(client, "alice", "wonderland")
    me = client.get("/api/auth/me", headers=auth_headers(token))
    assert me.status_code == 200
    assert me.json()["id"] == data["id"]


def test_protected_routes_require_a_token(client: TestClient):
    assert client.get("/api/unread/messages").status_code == 401
    response = client.get("/api/unread/messages", headers=auth_headers("invalid"))
    assert response.status_code == 401


def test_like_back_creates_a_match_for_both(client: TestClient, make_user):
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")

    first = client.post(f"/api/likes/{bob}", headers=auth_headers(alice_token))
    assert first.json() == {"ok": True, "status": "liked", "created": True}
    repeat = client.post(f"/api/likes/{bob}", headers=auth_headers(alice_token))
    assert repeat.json()["created"] is False

    second = client.post(f"/api/likes/{alice}", headers=auth_headers(bob_token))
    assert second.json()["status"] == "match"

    bob_feed = client.get("/api/notifications", headers=auth_headers(bob_token)).json()["items"]
    assert [item["type"] for item in bob_feed] == ["match", "like"]
    alice_feed = client.get("/api/notifications", headers=auth_headers(alice_token)).json()["items"]
    assert [item["type"] for item in alice_feed] == ["match"]
    assert alice_feed[0]["sender_id"] == bob

    assert client.post(f"/api/likes/{alice}", headers=auth_headers(alice_token)).status_code == 400
    assert client.post("/api/likes/999", headers=auth_headers(alice_token)).status_code == 404


def test_messages_require_a_mutual_match(client: TestClient, make_user):
    _, alice_token = make_user("alice")
    bob, _ = make_user("bob")

    response = send(client, alice_token, bob, "hello")

    assert response.status_code == 403
    assert response.json() == {"ok": False, "code": "not_matched", "message": "Chat requires a mutual match."}


def test_message_validation(client: TestClient, make_user, make_match):
    alice, alice_token = make_user("alice")
    bob, _ = make_user("bob")
    make_match(alice, bob)

    assert send(client, alice_token, alice, "me").status_code == 400
    assert send(client, alice_token, bob, "   ").status_code == 400
    assert send(client, alice_token, 999, "ghost").status_code == 404


def test_message_thread_unread_and_read_receipt(client: TestClient, make_user, make_match):
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")
    make_match(alice, bob)

    first = send(client, alice_token, bob, "  hi bob  ")
    assert first.status_code == 200, first.text
    message = first.json()["message"]
    assert message["content"] == "hi bob"
    assert message["read"] is False
    send(client, alice_token, bob, "are you there?")

    unread = client.get("/api/unread/messages", headers=auth_headers(bob_token)).json()
    assert unread == {"ok": True, "count": 2}
    threads = client.get("/api/unread/threads", headers=auth_headers(bob_token)).json()
    assert threads == {"ok": True, "by": {str(alice): 2}, "total": 2}
    assert client.get("/api/unread/threads", headers=auth_headers(alice_token)).json()["by"] == {}

    thread = client.get(f"/api/messages/{alice}", headers=auth_headers(bob_token)).json()["items"]
    assert [item["content"] for item in thread] == ["are you there?", "hi bob"]
    # Opening the thread reads it.
    assert client.get("/api/unread/messages", headers=auth_headers(bob_token)).json()["count"] == 0

    receipt = client.post(f"/api/messages/{alice}/read", headers=auth_headers(bob_token))
    assert receipt.status_code == 200
    body = receipt.json()
    assert body["unread"] == 0
    assert body["until"] is not None
    assert client.get("/api/unread/messages", headers=auth_headers(bob_token)).json()["count"] == 0


def test_thread_history_is_paginated(client: TestClient, make_user, make_match):
    alice, alice_token = make_user("alice")
    bob, _ = make_user("bob")
    make_match(alice, bob)
    for index in range(5):
        send(client, alice_token, bob, f"message {index}")

    page = client.get(f"/api/messages/{bob}?limit=2", headers=auth_headers(alice_token)).json()["items"]

    assert [item["content"] for item in page] == ["message 4", "message 3"]


def test_soft_deleted_messages_are_hidden_from_one_side(client: TestClient, make_user, make_match):
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")
    make_match(alice, bob)
    first = send(client, alice_token, bob, "one").json()["message"]
    send(client, alice_token, bob, "two")

    response = client.post(
        "/api/messages/bulk",
        json={"action": "deleteMessages", "messageIds": [first["id"]]},
        headers=auth_headers(bob_token),
    )
    assert response.json() == {"ok": True, "modified": 1}
    assert client.get("/api/unread/messages", headers=auth_headers(bob_token)).json()["count"] == 1
    bob_thread = client.get(f"/api/messages/{alice}", headers=auth_headers(bob_token)).json()["items"]
    assert [item["content"] for item in bob_thread] == ["two"]
    alice_thread = client.get(f"/api/messages/{bob}", headers=auth_headers(alice_token)).json()["items"]
    assert len(alice_thread) == 2

    response = client.post(
        "/api/messages/bulk",
        json={"action": "deleteThreads", "threadUserIds": [alice]},
        headers=auth_headers(bob_token),
    )
    assert response.json()["modified"] == 1
    assert client.get("/api/unread/messages", headers=auth_headers(bob_token)).json()["count"] == 0
    assert client.get(f"/api/messages/{alice}", headers=auth_headers(bob_token)).json()["items"] == []

    # Reading a fully hidden thread produces no receipt timestamp.
    receipt = client.post(f"/api/messages/{alice}/read", headers=auth_headers(bob_token)).json()
    assert receipt["until"] is None


def test_notification_feed_actions(client: TestClient, make_user):
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")
    carol, carol_token = make_user("carol")
    client.post(f"/api/likes/{alice}", headers=auth_headers(bob_token))
    client.post(f"/api/likes/{alice}", headers=auth_headers(carol_token))

    headers = auth_headers(alice_token)
    assert client.get("/api/unread/notifications", headers=headers).json()["count"] == 2
    items = client.get("/api/notifications", headers=headers).json()["items"]
    newest, oldest = items

    read = client.post(f"/api/notifications/{oldest['id']}/read", headers=headers)
    assert read.json() == {"ok": True, "unread": 1}

    dismissed = client.delete(f"/api/notifications/{newest['id']}", headers=headers)
    assert dismissed.json() == {"ok": True, "unread": 0}
    assert [item["id"] for item in client.get("/api/notifications", headers=headers).json()["items"]] == [
        oldest["id"]
    ]

    assert client.post(f"/api/notifications/{newest['id']}/read", headers=headers).status_code == 404
    other = client.post(f"/api/notifications/{oldest['id']}/read", headers=auth_headers(bob_token))
    assert other.status_code == 404

    # A repeated like is not announced again; liking back notifies both sides.
    client.post(f"/api/likes/{alice}", headers=auth_headers(carol_token))
    assert client.get("/api/unread/notifications", headers=headers).json()["count"] == 0
    client.post(f"/api/likes/{carol}", headers=auth_headers(alice_token))
    assert client.get("/api/unread/notifications", headers=headers).json()["count"] == 1
    assert client.post("/api/notifications/read-all", headers=headers).json() == {"ok": True, "unread": 0}
    assert client.get("/api/unread/notifications", headers=auth_headers(carol_token)).json()["count"] == 1


def test_call_request_rules(client: TestClient, make_user):
    caller, caller_token = make_user("caller", plan="elite", verified=True)
    callee, _ = make_user("callee", video_chat=True, verified=True)
    shy, _ = make_user("shy", verified=True)
    _, premium_token = make_user("premium", plan="premium", video_chat=True, verified=True)
    _, fresh_token = make_user("fresh", plan="elite", verified=True, age_hours=1)

    response = client.post(f"/api/calls/{callee}/request", headers=auth_headers(premium_token))
    assert response.status_code == 402
    assert response.json() == {"ok": False, "error": "elite_required"}

    for token, target in ((caller_token, shy), (fresh_token, callee)):
        response = client.post(f"/api/calls/{target}/request", headers=auth_headers(token))
        assert response.status_code == 400
        assert response.json()["error"] == "not_allowed"

    assert client.post(f"/api/calls/{caller}/request", headers=auth_headers(caller_token)).status_code == 400

    response = client.post(f"/api/calls/{callee}/request", headers=auth_headers(caller_token))
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    again = client.post(f"/api/calls/{callee}/request", headers=auth_headers(caller_token))
    assert again.status_code == 429
    assert again.json()["error"] == "cooldown"
    assert int(again.headers["Retry-After"]) > 0


def test_call_request_creates_a_notification(client: TestClient, make_user):
    caller, caller_token = make_user("caller", plan="elite", verified=True)
    callee, callee_token = make_user("callee", video_chat=True, verified=True)

    client.post(f"/api/calls/{callee}/request", headers=auth_headers(caller_token))

    items = client.get("/api/notifications", headers=auth_headers(callee_token)).json()["items"]
    assert items[0]["type"] == "system"
    assert items[0]["extra"] == {"kind": "call_request", "with": caller}


def test_health_and_metrics(client: TestClient):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["connections"] == 0

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert metrics.headers["content-type"].startswith("text/plain")
    assert "# TYPE realtime_events_total counter" in metrics.text
