"""Asynchronous websocket client for the realtime channel."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, Dict
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed

from .state import CallState, InvalidTransition, ReadWatermark, TypingThrottle

logger = logging.getLogger(__name__)


class AckError(RuntimeError):
    """Raised when the server acknowledges a request with ``ok: false``."""

    def __init__(self, code: str, payload: Dict[str, Any]) -> None:
        super().__init__(code)
        self.code = code
        self.payload = payload


class RealtimeClient:
    """Connects to ``/ws``, correlates acknowledgements and tracks local state.

    Every inbound frame other than ``ack`` and keepalive pings is queued for
    :meth:`next_event` after the local state has been updated.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        open_timeout: float = 10.0,
        typing_interval: float = 1.2,
    ) -> None:
        self.url = url
        self.token = token
        self.open_timeout = open_timeout
        self.call = CallState()
        self.watermarks = ReadWatermark()
        self.typing_throttle = TypingThrottle(typing_interval)
        self.unread_messages: int | None = None
        self.unread_notifications: int | None = None
        self._ws: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._events: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self._pending: Dict[int, asyncio.Future[Dict[str, Any]]] = {}
        self._pending_events: Dict[int, str] = {}
        self._ack_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def connect(self) -> "RealtimeClient":
        separator = "&" if "?" in self.url else "?"
        target = f"{self.url}{separator}{urlencode({'token': self.token})}"
        self._ws = await websockets.connect(target, open_timeout=self.open_timeout)
        self._reader = asyncio.create_task(self._read_loop(), name="amora-client-reader")
        return self

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        self._pending_events.clear()

    async def __aenter__(self) -> "RealtimeClient":
        return await self.connect()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    payload = json.loads(raw)
                except (TypeError, json.JSONDecodeError):
                    logger.warning("Ignoring non-JSON frame from server")
                    continue
                await self.handle_frame(payload)
        except ConnectionClosed as exc:
            logger.info("Realtime connection closed: %s", exc)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_frame(self, payload: Dict[str, Any]) -> None:
        event = payload.get("type")
        if event == "ack":
            future = self._pending.pop(payload.get("ack"), None)
            self._pending_events.pop(payload.get("ack"), None)
            if future is not None and not future.done():
                future.set_result(payload)
            return
        if event == "ping":
            await self.send("pong")
            return

        if event == "rtc:error":
            self._fail_pending(payload)
        try:
            self._apply(event, payload)
        except InvalidTransition as exc:
            logger.warning("Ignoring %s in the current call state: %s", event, exc)
        await self._events.put(payload)

    def _fail_pending(self, payload: Dict[str, Any]) -> None:
        # Refused signaling is reported with rtc:error and never acked.
        error = AckError(str(payload.get("code") or "error"), payload)
        for ack_id, future in self._pending.items():
            if not self._pending_events.get(ack_id, "").startswith("rtc:"):
                continue
            if not future.done():
                future.set_exception(error)

    def _apply(self, event: str | None, payload: Dict[str, Any]) -> None:
        if event == "chat:read":
            self.watermarks.advance(int(payload["with"]), payload["until"])
        elif event == "unread_update":
            self.unread_messages = payload.get("unread")
        elif event == "notif_update":
            self.unread_notifications = payload.get("unread")
        elif event == "rtc:incoming":
            self.call.incoming(int(payload["from"]))
        elif event == "rtc:offer":
            self.call.offer(int(payload["from"]))
        elif event == "rtc:answer" and self.call.active:
            self.call.answered(int(payload["from"]))
        elif event == "rtc:end" and self.call.active:
            if int(payload["from"]) != self.call.peer:
                raise InvalidTransition("end from a different peer")
            self.call.end(payload.get("reason") or "hangup")

    async def next_event(self, event_type: str | None = None, *, timeout: float = 5.0) -> Dict[str, Any]:
        """Return the next queued frame, skipping frames of other types when *event_type* is given."""

        async def _next() -> Dict[str, Any]:
            while True:
                payload = await self._events.get()
                if event_type is None or payload.get("type") == event_type:
                    return payload

        return await asyncio.wait_for(_next(), timeout=timeout)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, event_type: str, payload: Dict[str, Any] | None = None) -> None:
        if self._ws is None:
            raise RuntimeError("Client is not connected")
        await self._ws.send(json.dumps({"type": event_type, **(payload or {})}))

    def _expect_ack(self, event_type: str) -> tuple[int, asyncio.Future[Dict[str, Any]]]:
        ack_id = next(self._ack_ids)
        future: asyncio.Future[Dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[ack_id] = future
        self._pending_events[ack_id] = event_type
        return ack_id, future

    async def request(
        self,
        event_type: str,
        payload: Dict[str, Any] | None = None,
        *,
        timeout: float = 5.0,
    ) -> Dict[str, Any]:
        ack_id, future = self._expect_ack(event_type)
        try:
            await self.send(event_type, {**(payload or {}), "ack": ack_id})
            reply = await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(ack_id, None)
            self._pending_events.pop(ack_id, None)
        if not reply.get("ok"):
            raise AckError(str(reply.get("error") or "error"), reply)
        return reply

    async def typing(self, to: int) -> bool:
        if not self.typing_throttle.should_send(to):
            return False
        await self.send("chat:typing", {"to": to})
        return True

    async def send_message(self, to: int, content: str) -> Dict[str, Any]:
        reply = await self.request("chat:send", {"to": to, "content": content})
        return reply["item"]

    async def start_call(self, to: int, meta: Dict[str, Any] | None = None) -> None:
        await self.request("rtc:call", {"to": to, "meta": meta or {}})
        self.call.dial(to)

    async def send_offer(self, to: int, sdp: Any) -> None:
        self.call.offer(to)
        await self.send("rtc:offer", {"to": to, "sdp": sdp})

    async def send_answer(self, to: int, sdp: Any) -> None:
        await self.request("rtc:answer", {"to": to, "sdp": sdp})
        if self.call.phase.value != "connected":
            self.call.answered(to)

    async def send_candidate(self, to: int, candidate: Any) -> None:
        await self.send("rtc:candidate", {"to": to, "candidate": candidate})

    async def hang_up(self, to: int, reason: str = "hangup") -> None:
        await self.send("rtc:end", {"to": to, "reason": reason})
        self.call.end(reason)


__all__ = ["AckError", "RealtimeClient"]
