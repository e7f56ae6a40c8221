"""Schemas for the notification feed."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enums import NotificationType
from app.models.social import as_utc


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    message: str
    sender_id: int | None = None
    read: bool
    extra: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class NotificationList(BaseModel):
    ok: bool = True
    items: list[NotificationRead]


class NotificationUpdate(BaseModel):
    ok: bool = True
    unread: int
