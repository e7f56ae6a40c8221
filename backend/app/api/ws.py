"""WebSocket endpoint carrying chat and call signaling events."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from amora.realtime import Connection, RealtimeServices, Unauthorized
from amora.realtime.connection import safe_send_json
from amora.realtime.events import ERROR, frame

from app.api.deps import get_app_settings

router = APIRouter(tags=["ws"])

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sender = Callable[[Dict[str, Any]], Awaitable[bool]]

# How long a closing socket may take to flush its outbound queue.
WRITER_DRAIN_SECONDS = 1.0


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
    send: Sender | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    send = send or (lambda payload: safe_send_json(websocket, payload))
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = False
            if interval <= 0:
                should_ping = True
            elif now - last_activity >= interval and (
                last_ping_sent is None or now - last_ping_sent >= interval
            ):
                should_ping = True

            if should_ping:
                if not await send(ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token or None


async def _stop_writer(writer: asyncio.Task[None]) -> None:
    try:
        await asyncio.wait_for(writer, timeout=WRITER_DRAIN_SECONDS)
    except asyncio.TimeoutError:
        writer.cancel()
    except Exception:
        logger.debug("Websocket writer ended with an error", exc_info=True)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    """Single realtime channel per client tab.

    The handshake is authenticated before it is accepted. Afterwards every
    text frame is a JSON event routed through the realtime gateway.
    """

    realtime: RealtimeServices = websocket.app.state.realtime
    settings = get_app_settings(websocket)

    try:
        user_id, entitlements = await realtime.gate.admit(_extract_token(websocket))
    except Unauthorized as exc:
        logger.info("Rejecting websocket handshake: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=Unauthorized.code)
        return

    await websocket.accept()
    connection: Connection = realtime.new_connection(user_id, entitlements, websocket=websocket)
    realtime.gateway.attach(connection)
    writer = asyncio.create_task(connection.pump())

    async def queue(payload: Dict[str, Any]) -> bool:
        return connection.push(payload) and not connection.closed

    try:
        await realtime.unread.refresh_messages(user_id)
        await realtime.unread.refresh_notifications(user_id)

        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_receive_timeout_seconds,
            ping_interval_seconds=settings.websocket_ping_interval_seconds,
            send=queue,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                connection.push(frame(ERROR, {"detail": "Invalid JSON payload"}))
                continue

            # Replies to our keepalive pings carry no work.
            if isinstance(payload, dict) and payload.get("type") == "pong":
                continue

            await realtime.gateway.handle(connection, payload)
            if connection.closed:
                break
    except WebSocketDisconnect:
        pass
    finally:
        realtime.gateway.detach(connection)
        await _stop_writer(writer)
