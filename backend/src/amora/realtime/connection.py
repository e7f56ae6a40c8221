"""Per-socket connection state."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, TYPE_CHECKING

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from .ratelimit import WindowState

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from .gate import Entitlements


logger = logging.getLogger(__name__)

_CLOSE = object()


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class Connection:
    """A live realtime session owned by the transport.

    Outbound frames are queued with :meth:`push`, which never suspends, and
    written to the socket by :meth:`pump` running as a separate task. This
    keeps fan-out synchronous while preserving per-connection frame order.
    """

    def __init__(
        self,
        user_id: int,
        entitlements: "Entitlements",
        send_window: WindowState,
        *,
        websocket: WebSocket | None = None,
        connection_id: str | None = None,
        outbox_size: int = 256,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.user_id = user_id
        self.entitlements = entitlements
        self.send_window = send_window
        self.websocket = websocket
        self._outbox: asyncio.Queue[Any] = asyncio.Queue(maxsize=outbox_size)
        self._closed = False

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, payload: dict[str, Any]) -> bool:
        if self._closed:
            return False
        try:
            self._outbox.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full; dropping %s frame", payload.get("type"),
                extra={"connection": self.id, "user": self.user_id},
            )
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._outbox.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # The pump is still draining; it stops once it observes the flag.
            pass

    def drain(self) -> list[dict[str, Any]]:
        """Return and clear every queued frame without touching the socket."""

        frames: list[dict[str, Any]] = []
        while True:
            try:
                item = self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                return frames
            if item is not _CLOSE:
                frames.append(item)

    async def pump(self) -> None:
        if self.websocket is None:
            raise RuntimeError("Connection has no websocket to write to")
        while True:
            item = await self._outbox.get()
            if item is _CLOSE:
                return
            if not await safe_send_json(self.websocket, item):
                self._closed = True
                return
            if self._closed and self._outbox.empty():
                return


__all__ = ["Connection", "safe_send_json"]
