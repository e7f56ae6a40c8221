"""Direct message endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from amora.realtime import RealtimeServices, normalize_content

from app.api.deps import get_app_settings, get_current_user, get_peer
from app.config import Settings
from app.database import get_db
from app.models import User
from app.schemas import (
    BulkMessageAction,
    BulkResult,
    MessageCreate,
    MessageList,
    MessageRead,
    MessageSendResult,
    ReadReceiptResult,
)
from app.services import messages as message_service
from app.services.matches import is_mutual_match
from app.services.realtime import get_realtime

router = APIRouter(prefix="/messages", tags=["messages"])


def _store_message(db: Session, sender_id: int, recipient_id: int, content: str):
    message = message_service.create_message(db, sender_id, recipient_id, content)
    db.commit()
    return message_service.to_record(message)


@router.post("", response_model=MessageSendResult)
async def send_message(
    payload: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    realtime: RealtimeServices = Depends(get_realtime),
):
    me = current_user.id
    if payload.to == me:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot message yourself")
    content = normalize_content(payload.content, settings.message_max_length)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is required")
    await run_in_threadpool(get_peer, payload.to, db)
    if not await run_in_threadpool(is_mutual_match, db, me, payload.to):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"ok": False, "code": "not_matched", "message": "Chat requires a mutual match."},
        )

    record = await run_in_threadpool(_store_message, db, me, payload.to, content)
    await realtime.chat.message_created(record)
    return MessageSendResult(message=MessageRead.model_validate(record))


@router.post("/bulk", response_model=BulkResult)
async def bulk_update(
    payload: BulkMessageAction,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
) -> BulkResult:
    """Hide threads or single messages for the caller only."""

    me = current_user.id

    def apply() -> int:
        if payload.action == "deleteThreads":
            modified = message_service.soft_delete_threads(db, me, payload.thread_user_ids)
        else:
            modified = message_service.soft_delete_messages(db, me, payload.message_ids)
        db.commit()
        return modified

    modified = await run_in_threadpool(apply)
    if modified:
        await realtime.unread.refresh_messages(me)
    return BulkResult(modified=modified)


@router.post("/{peer_id}/read", response_model=ReadReceiptResult)
async def mark_thread_read(
    peer_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    realtime: RealtimeServices = Depends(get_realtime),
) -> ReadReceiptResult:
    """Mark every visible message from *peer_id* as read and notify the peer."""

    me = current_user.id
    await run_in_threadpool(get_peer, peer_id, db)

    def apply() -> tuple[datetime | None, int]:
        until = message_service.mark_thread_read(db, me, peer_id)
        db.commit()
        return until, message_service.count_unread(db, me)

    until, unread = await run_in_threadpool(apply)
    await realtime.chat.mark_read(me, peer_id, until)
    return ReadReceiptResult(unread=unread, until=until)


@router.get("/{peer_id}", response_model=MessageList)
async def read_thread(
    peer_id: int,
    before: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    realtime: RealtimeServices = Depends(get_realtime),
) -> MessageList:
    """Return the visible thread with *peer_id*, newest first.

    Opening a thread reads it: unread messages from the peer are marked read,
    the caller's badge is refreshed and the peer gets a read receipt.
    """

    me = current_user.id
    await run_in_threadpool(get_peer, peer_id, db)
    resolved_limit = min(limit or settings.message_history_default_limit, settings.message_history_max_limit)

    def load() -> tuple[list[MessageRead], datetime | None]:
        items = message_service.list_thread(db, me, peer_id, before=before, limit=resolved_limit)
        page = [MessageRead.model_validate(item) for item in items]
        until = message_service.mark_thread_read(db, me, peer_id)
        db.commit()
        return page, until

    page, until = await run_in_threadpool(load)
    await realtime.chat.mark_read(me, peer_id, until)
    return MessageList(items=page)
