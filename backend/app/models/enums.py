from __future__ import annotations

from enum import Enum


class NotificationType(str, Enum):
    """Kinds of notifications shown in the activity feed."""

    LIKE = "like"
    MATCH = "match"
    MESSAGE = "message"
    FAVORITE = "favorite"
    WAVE = "wave"
    SYSTEM = "system"
    SUPERLIKE = "superlike"
