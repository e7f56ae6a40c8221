"""Database models package."""

from .base import Base
from .enums import NotificationType
from .social import Like, Message, MessageDeletion, Notification, NotificationDeletion, User

__all__ = [
    "Base",
    "User",
    "Like",
    "Message",
    "MessageDeletion",
    "Notification",
    "NotificationDeletion",
    "NotificationType",
]
