"""Schemas related to direct messages."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.social import as_utc


class MessageCreate(BaseModel):
    to: int = Field(..., gt=0, description="Recipient user id")
    content: str = Field(..., max_length=20000)


class MessageRead(BaseModel):
    """Serialized representation of a direct message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    content: str
    read: bool
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class MessageSendResult(BaseModel):
    ok: bool = True
    message: MessageRead


class MessageList(BaseModel):
    items: list[MessageRead]


class ReadReceiptResult(BaseModel):
    ok: bool = True
    unread: int
    until: datetime | None = None


class BulkMessageAction(BaseModel):
    """Soft-delete whole threads or individual messages for the caller."""

    model_config = ConfigDict(populate_by_name=True)

    action: Literal["deleteThreads", "deleteMessages"]
    thread_user_ids: list[int] = Field(default_factory=list, alias="threadUserIds")
    message_ids: list[int] = Field(default_factory=list, alias="messageIds")


class BulkResult(BaseModel):
    ok: bool = True
    modified: int


class UnreadCount(BaseModel):
    ok: bool = True
    count: int


class ThreadUnread(BaseModel):
    ok: bool = True
    by: dict[str, int]
    total: int
