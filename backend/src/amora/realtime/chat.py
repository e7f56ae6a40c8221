"""Typing indicators, delivery fan-out and read receipts for direct chat."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from .connection import Connection
from .errors import InvalidEvent, NotMatched, RateLimited, SendDisabled
from .events import CHAT_INCOMING, CHAT_READ, CHAT_SENT, TYPING, parse_user_id
from .ports import MatchPredicate, MessageRecord, MessageStore, isoformat
from .ratelimit import SlidingWindowLimiter
from .registry import PresenceRegistry
from .unread import UnreadCounterService

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000


def normalize_content(content: Any, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Trim surrounding whitespace and cut the text to *max_length* characters."""

    if not isinstance(content, str):
        return ""
    return content.strip()[:max_length]


class ChatProtocol:
    def __init__(
        self,
        registry: PresenceRegistry,
        unread: UnreadCounterService,
        messages: MessageStore,
        matches: MatchPredicate,
        limiter: SlidingWindowLimiter,
        *,
        send_enabled: bool = False,
        max_length: int = MAX_MESSAGE_LENGTH,
    ) -> None:
        self._registry = registry
        self._unread = unread
        self._messages = messages
        self._matches = matches
        self._limiter = limiter
        self.send_enabled = send_enabled
        self.max_length = max_length

    def typing(self, connection: Connection, to: Any) -> bool:
        target = parse_user_id(to)
        if target is None or target == connection.user_id:
            return False
        self._registry.deliver(target, TYPING, {"from": connection.user_id})
        return True

    async def message_created(self, message: MessageRecord) -> None:
        """Fan a freshly persisted message out to both parties."""

        payload = message.to_payload()
        self._registry.deliver(message.recipient_id, CHAT_INCOMING, {"message": payload})
        self._registry.deliver(message.sender_id, CHAT_SENT, {"message": payload})
        await self._unread.refresh_messages(message.recipient_id)

    async def mark_read(self, by_user: int, peer: int, until: datetime | None) -> None:
        """Publish a read receipt and refresh the reader's badge.

        ``until`` is the creation time of the newest message the reader can
        see from *peer*. No receipt is sent for an empty thread.
        """

        if until is not None:
            self._registry.deliver(peer, CHAT_READ, {"with": by_user, "until": isoformat(until)})
        await self._unread.refresh_messages(by_user)

    async def read_thread(self, by_user: int, peer: int) -> datetime | None:
        until = await self._messages.mark_read(by_user, peer)
        await self.mark_read(by_user, peer, until)
        return until

    async def send(self, connection: Connection, to: Any, content: Any) -> MessageRecord:
        """Persist and deliver a message sent over the realtime channel."""

        if not self.send_enabled:
            raise SendDisabled("Realtime sending is disabled")
        if not self._limiter.hit(connection.send_window):
            raise RateLimited("Too many messages, slow down")
        target = parse_user_id(to)
        if target is None or target == connection.user_id:
            raise InvalidEvent("Invalid recipient")
        text = normalize_content(content, self.max_length)
        if not text:
            raise InvalidEvent("Message content is required")
        if not await self._matches.is_mutual_match(connection.user_id, target):
            raise NotMatched("You can only message mutual matches")
        message = await self._messages.create(connection.user_id, target, text)
        await self.message_created(message)
        return message


__all__ = ["ChatProtocol", "normalize_content", "MAX_MESSAGE_LENGTH"]
