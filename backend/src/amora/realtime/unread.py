"""Unread badge recomputation."""

from __future__ import annotations

import logging
from enum import Enum

from .events import NOTIF_UPDATE, UNREAD_UPDATE
from .ports import MessageStore, NotificationStore
from .registry import PresenceRegistry

logger = logging.getLogger(__name__)


class UnreadKind(str, Enum):
    MESSAGES = "messages"
    NOTIFICATIONS = "notifications"


class UnreadCounterService:
    """Recounts unread items from the store and pushes the total to the owner.

    Counts are never incremented in memory. Every push carries the full
    value so a later push always supersedes an earlier one.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        messages: MessageStore,
        notifications: NotificationStore,
    ) -> None:
        self._registry = registry
        self._messages = messages
        self._notifications = notifications

    async def recompute_and_broadcast(self, user_id: int, kind: UnreadKind | str) -> int | None:
        kind = UnreadKind(kind)
        if kind is UnreadKind.MESSAGES:
            store, event = self._messages, UNREAD_UPDATE
        else:
            store, event = self._notifications, NOTIF_UPDATE
        try:
            unread = await store.count_unread(user_id)
        except Exception:  # noqa: BLE001 - badge refresh is best effort
            logger.exception("Failed to recount unread %s", kind.value, extra={"user": user_id})
            return None
        self._registry.deliver(user_id, event, {"unread": unread})
        return unread

    async def refresh_messages(self, user_id: int) -> int | None:
        return await self.recompute_and_broadcast(user_id, UnreadKind.MESSAGES)

    async def refresh_notifications(self, user_id: int) -> int | None:
        return await self.recompute_and_broadcast(user_id, UnreadKind.NOTIFICATIONS)


__all__ = ["UnreadKind", "UnreadCounterService"]
