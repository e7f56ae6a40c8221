"""Contracts the realtime core expects from the persistence layer.

The realtime managers never talk to the database directly. The FastAPI
application wires SQLAlchemy-backed implementations of these protocols and
tests substitute in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


def isoformat(value: datetime) -> str:
    return value.isoformat()


@dataclass(slots=True, frozen=True)
class MessageRecord:
    """Persisted direct message as seen by the realtime layer."""

    id: int
    sender_id: int
    recipient_id: int
    content: str
    created_at: datetime
    read: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "content": self.content,
            "read": self.read,
            "created_at": isoformat(self.created_at),
        }


@dataclass(slots=True, frozen=True)
class NotificationRecord:
    """Persisted notification as pushed to clients."""

    id: int
    recipient_id: int
    sender_id: int | None
    type: str
    message: str
    created_at: datetime
    read: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "sender_id": self.sender_id,
            "read": self.read,
            "created_at": isoformat(self.created_at),
            "extra": dict(self.extra),
        }


class MessageStore(Protocol):
    async def create(self, sender_id: int, recipient_id: int, content: str) -> MessageRecord:
        """Persist a new unread message."""

    async def count_unread(self, user_id: int) -> int:
        """Count unread messages addressed to *user_id* that are still visible to them."""

    async def mark_read(self, reader_id: int, peer_id: int) -> datetime | None:
        """Mark the peer's visible messages as read.

        Returns the creation time of the latest visible message from
        *peer_id* to *reader_id*, or ``None`` when the thread is empty.
        """


class NotificationStore(Protocol):
    async def count_unread(self, user_id: int) -> int:
        """Count unread notifications still visible to *user_id*."""


class MatchPredicate(Protocol):
    async def is_mutual_match(self, user_a: int, user_b: int) -> bool:
        """Return ``True`` when both users liked each other."""


__all__ = [
    "MessageRecord",
    "NotificationRecord",
    "MessageStore",
    "NotificationStore",
    "MatchPredicate",
]
