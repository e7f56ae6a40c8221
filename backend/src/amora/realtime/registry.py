"""User-keyed rooms for realtime fan-out."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Set

from app.monitoring.metrics import (
    realtime_connections,
    realtime_dropped_events_total,
    realtime_events_total,
)

from .connection import Connection
from .events import frame, parse_user_id

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Track which live connections belong to which user.

    Every method is synchronous. Within one event loop that makes each call
    atomic with respect to other handlers, so no lock is taken.
    """

    def __init__(self) -> None:
        self._rooms: Dict[int, Set[str]] = defaultdict(set)
        self._connections: Dict[str, Connection] = {}
        self._memberships: Dict[str, Set[int]] = defaultdict(set)

    def connect(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        self.join(connection, connection.user_id)
        realtime_connections.labels("user").inc()

    def join(self, connection: Connection, user_id: Any) -> bool:
        """Add *connection* to the room of *user_id*.

        Ill-formed ids are ignored since they come straight from clients.
        Returns ``True`` only when a new membership was created.
        """

        room = parse_user_id(user_id)
        if room is None:
            return False
        if room != connection.user_id:
            logger.warning(
                "Ignoring registration for a foreign room",
                extra={"connection": connection.id, "user": connection.user_id, "room": room},
            )
            return False
        if connection.id not in self._connections:
            self._connections[connection.id] = connection
        members = self._rooms[room]
        if connection.id in members:
            return False
        members.add(connection.id)
        self._memberships[connection.id].add(room)
        return True

    def leave(self, connection: Connection) -> bool:
        """Drop *connection* from every room.

        Returns ``True`` when the owning user has no connection left.
        """

        if self._connections.pop(connection.id, None) is not None:
            realtime_connections.labels("user").dec()
        for room in self._memberships.pop(connection.id, set()):
            members = self._rooms.get(room)
            if not members:
                continue
            members.discard(connection.id)
            if not members:
                self._rooms.pop(room, None)
        return not self.is_online(connection.user_id)

    def deliver(self, user_id: int, event: str, payload: dict[str, Any] | None = None) -> int:
        """Queue *event* on every connection of *user_id*; returns how many were reached."""

        members = self._rooms.get(user_id)
        if not members:
            realtime_dropped_events_total.labels(event).inc()
            return 0
        message = frame(event, payload)
        delivered = 0
        for connection_id in list(members):
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            if connection.push(message):
                delivered += 1
        if delivered:
            realtime_events_total.labels(event, "out").inc(delivered)
        return delivered

    def connections_for(self, user_id: int) -> list[Connection]:
        members = self._rooms.get(user_id, set())
        return [self._connections[cid] for cid in members if cid in self._connections]

    def is_online(self, user_id: int) -> bool:
        return bool(self._rooms.get(user_id))

    def connection_count(self) -> int:
        return len(self._connections)


__all__ = ["PresenceRegistry"]
