from __future__ import annotations

import time

from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession

from app.config import Settings
from app.main import create_app


def test_realtime_connection_survives_keepalive_timeout(session_factory, make_user) -> None:
    """Ensure that the server side keepalive pings keep the socket open."""

    _, token = make_user("keepalive-user")
    settings = Settings(
        websocket_receive_timeout_seconds=0.1,
        websocket_ping_interval_seconds=0.05,
    )

    with TestClient(create_app(session_factory, settings)) as client:
        with client.websocket_connect(f"/ws?token={token}") as connection:
            _assert_keepalive_sequence(connection)


def _assert_keepalive_sequence(connection: WebSocketTestSession) -> None:
    """Observe two keepalive pings with client responses to keep the connection active."""

    assert connection.receive_json()["type"] == "unread_update"
    assert connection.receive_json()["type"] == "notif_update"

    time.sleep(0.15)
    ping = connection.receive_json()
    assert ping["type"] == "ping"
    connection.send_json({"type": "pong"})

    time.sleep(0.12)
    ping_again = connection.receive_json()
    assert ping_again["type"] == "ping"
    connection.send_json({"type": "pong"})

    connection.send_json({"type": "ping"})
    pong = connection.receive_json()
    assert pong["type"] == "pong"
