"""End-to-end tests of the ``/ws`` realtime channel."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession
from starlette.websockets import WebSocketDisconnect

from amora.realtime.gate import UPGRADE_MESSAGE

from app.core.security import create_access_token


def _open(client: TestClient, token: str):
    return client.websocket_connect(f"/ws?token={token}")


def _skip_initial_badges(ws: WebSocketTestSession) -> None:
    assert ws.receive_json() == {"type": "unread_update", "unread": 0}
    assert ws.receive_json() == {"type": "notif_update", "unread": 0}


@pytest.mark.parametrize("query", ["", "?token=garbage", "?token=" + create_access_token({"sub": "999"})])
def test_handshake_without_valid_session_is_rejected(client: TestClient, query: str) -> None:
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws{query}"):
            pass

    assert exc.value.code == 1008


def test_bearer_header_is_accepted(client: TestClient, make_user) -> None:
    _, token = make_user("alice")

    with client.websocket_connect("/ws", headers={"Authorization": f"Bearer {token}"}) as ws:
        _skip_initial_badges(ws)
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_invalid_frames_keep_the_connection_open(client: TestClient, make_user) -> None:
    _, token = make_user("alice")

    with _open(client, token) as ws:
        _skip_initial_badges(ws)
        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "detail": "Invalid JSON payload"}

        ws.send_json({"type": "pong"})
        ws.send_json({"type": "nonsense"})
        assert ws.receive_json() == {"type": "error", "detail": "Unsupported event"}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_health_counts_live_connections(client: TestClient, make_user) -> None:
    _, token = make_user("alice")

    with _open(client, token) as ws:
        _skip_initial_badges(ws)
        assert client.get("/health").json()["connections"] == 1


def test_video_call_between_entitled_users(client: TestClient, make_user) -> None:
    alice, alice_token = make_user("alice", plan="premium", video_chat=True)
    bob, bob_token = make_user("bob", plan="elite")

    with _open(client, alice_token) as alice_ws, _open(client, bob_token) as bob_ws:
        _skip_initial_badges(alice_ws)
        _skip_initial_badges(bob_ws)

        alice_ws.send_json({"type": "rtc:call", "to": bob, "meta": {"video": True}, "ack": 1})
        assert alice_ws.receive_json() == {"type": "ack", "ack": 1, "ok": True}
        assert bob_ws.receive_json() == {"type": "rtc:incoming", "from": alice, "meta": {"video": True}}

        alice_ws.send_json({"type": "rtc:offer", "to": bob, "sdp": {"type": "offer", "sdp": "v=0"}})
        assert bob_ws.receive_json() == {"type": "rtc:offer", "from": alice, "sdp": {"type": "offer", "sdp": "v=0"}}

        bob_ws.send_json({"type": "rtc:answer", "to": alice, "sdp": {"type": "answer", "sdp": "v=0"}})
        assert alice_ws.receive_json() == {
            "type": "rtc:answer",
            "from": bob,
            "sdp": {"type": "answer", "sdp": "v=0"},
        }

        bob_ws.send_json({"type": "rtc:end", "to": alice, "reason": "declined"})
        assert alice_ws.receive_json() == {"type": "rtc:end", "from": bob, "reason": "declined"}


def test_call_from_free_user_is_refused(client: TestClient, make_user) -> None:
    _, carol_token = make_user("carol")
    dave, dave_token = make_user("dave", plan="elite")

    with _open(client, carol_token) as carol_ws, _open(client, dave_token) as dave_ws:
        _skip_initial_badges(carol_ws)
        _skip_initial_badges(dave_ws)

        carol_ws.send_json({"type": "rtc:call", "to": dave, "ack": 1})
        assert carol_ws.receive_json() == {
            "type": "rtc:error",
            "code": "upgrade-required",
            "message": UPGRADE_MESSAGE,
        }

        # The refusal is not acknowledged and nothing reached the callee.
        dave_ws.send_json({"type": "ping"})
        assert dave_ws.receive_json() == {"type": "pong"}
        carol_ws.send_json({"type": "ping"})
        assert carol_ws.receive_json() == {"type": "pong"}


def test_disconnect_ends_the_call(client: TestClient, make_user) -> None:
    alice, alice_token = make_user("alice", plan="elite")
    bob, bob_token = make_user("bob", plan="elite")

    with _open(client, alice_token) as alice_ws:
        _skip_initial_badges(alice_ws)
        with _open(client, bob_token) as bob_ws:
            _skip_initial_badges(bob_ws)
            alice_ws.send_json({"type": "rtc:call", "to": bob, "ack": 1})
            assert alice_ws.receive_json()["ok"] is True
            assert bob_ws.receive_json()["type"] == "rtc:incoming"

        assert alice_ws.receive_json() == {"type": "rtc:end", "from": bob, "reason": "disconnected"}


def test_http_message_reaches_both_rooms_and_read_receipt(client: TestClient, make_user, make_match) -> None:
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")
    make_match(alice, bob)

    with _open(client, alice_token) as alice_ws, _open(client, bob_token) as bob_ws:
        _skip_initial_badges(alice_ws)
        _skip_initial_badges(bob_ws)

        response = client.post(
            "/api/messages",
            json={"to": bob, "content": "hello"},
            headers={"Authorization": f"Bearer {alice_token}"},
        )
        assert response.status_code == 200, response.text

        incoming = bob_ws.receive_json()
        assert incoming["type"] == "chat:incoming"
        assert incoming["message"]["content"] == "hello"
        assert bob_ws.receive_json() == {"type": "unread_update", "unread": 1}
        sent = alice_ws.receive_json()
        assert sent == {"type": "chat:sent", "message": incoming["message"]}

        client.post(f"/api/messages/{alice}/read", headers={"Authorization": f"Bearer {bob_token}"})

        assert alice_ws.receive_json() == {
            "type": "chat:read",
            "with": bob,
            "until": incoming["message"]["created_at"],
        }
        assert bob_ws.receive_json() == {"type": "unread_update", "unread": 0}


def test_realtime_send_and_typing(client: TestClient, make_user, make_match) -> None:
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")
    make_match(alice, bob)

    with _open(client, alice_token) as alice_ws, _open(client, bob_token) as bob_ws:
        _skip_initial_badges(alice_ws)
        _skip_initial_badges(bob_ws)

        alice_ws.send_json({"type": "chat:typing", "to": bob})
        assert bob_ws.receive_json() == {"type": "chat:typing", "from": alice}

        alice_ws.send_json({"type": "chat:send", "to": bob, "content": "hi", "ack": "c1"})
        sent = alice_ws.receive_json()
        assert sent["type"] == "chat:sent"
        ack = alice_ws.receive_json()
        assert ack == {"type": "ack", "ack": "c1", "ok": True, "item": sent["message"]}

        assert bob_ws.receive_json()["type"] == "chat:incoming"
        assert bob_ws.receive_json() == {"type": "unread_update", "unread": 1}


def test_like_pushes_notification_and_badge(client: TestClient, make_user) -> None:
    alice, alice_token = make_user("alice")
    _, bob_token = make_user("bob")

    with _open(client, alice_token) as alice_ws:
        _skip_initial_badges(alice_ws)
        client.post(f"/api/likes/{alice}", headers={"Authorization": f"Bearer {bob_token}"})

        pushed = alice_ws.receive_json()
        assert pushed["type"] == "new_notification"
        assert pushed["notification"]["type"] == "like"
        assert alice_ws.receive_json() == {"type": "notif_update", "unread": 1}


def test_call_request_rings_the_callee(client: TestClient, make_user) -> None:
    caller, caller_token = make_user("caller", plan="elite", verified=True)
    callee, callee_token = make_user("callee", video_chat=True, verified=True)

    with _open(client, callee_token) as callee_ws:
        _skip_initial_badges(callee_ws)
        client.post(f"/api/calls/{callee}/request", headers={"Authorization": f"Bearer {caller_token}"})

        assert callee_ws.receive_json()["type"] == "new_notification"
        assert callee_ws.receive_json() == {"type": "notif_update", "unread": 1}
        assert callee_ws.receive_json() == {"type": "rtc:ring", "from": {"id": caller, "name": "Caller"}}


def test_opening_a_thread_sends_the_read_receipt(client: TestClient, make_user, make_match) -> None:
    alice, alice_token = make_user("alice")
    bob, bob_token = make_user("bob")
    make_match(alice, bob)

    with _open(client, alice_token) as alice_ws, _open(client, bob_token) as bob_ws:
        _skip_initial_badges(alice_ws)
        _skip_initial_badges(bob_ws)
        client.post(
            "/api/messages",
            json={"to": bob, "content": "hello"},
            headers={"Authorization": f"Bearer {alice_token}"},
        )
        incoming = bob_ws.receive_json()
        assert bob_ws.receive_json() == {"type": "unread_update", "unread": 1}
        alice_ws.receive_json()

        thread = client.get(f"/api/messages/{alice}", headers={"Authorization": f"Bearer {bob_token}"}).json()

        assert [item["read"] for item in thread["items"]] == [False]
        assert bob_ws.receive_json() == {"type": "unread_update", "unread": 0}
        assert alice_ws.receive_json() == {
            "type": "chat:read",
            "with": bob,
            "until": incoming["message"]["created_at"],
        }
