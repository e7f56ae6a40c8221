"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, Token, UserCreate, UserRead
from .messages import (
    BulkMessageAction,
    BulkResult,
    MessageCreate,
    MessageList,
    MessageRead,
    MessageSendResult,
    ReadReceiptResult,
    ThreadUnread,
    UnreadCount,
)
from .notifications import NotificationList, NotificationRead, NotificationUpdate

__all__ = [
    "BulkMessageAction",
    "BulkResult",
    "LoginRequest",
    "MessageCreate",
    "MessageList",
    "MessageRead",
    "MessageSendResult",
    "NotificationList",
    "NotificationRead",
    "NotificationUpdate",
    "ReadReceiptResult",
    "ThreadUnread",
    "Token",
    "UnreadCount",
    "UserCreate",
    "UserRead",
]
