"""SQLAlchemy-backed message store used by the HTTP API and the realtime core."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from amora.realtime.ports import MessageRecord

from app.database import session_scope
from app.models import Message, MessageDeletion
from app.models.social import as_utc, utcnow


def visible_to(user_id: int):
    """Filter clause selecting messages the user has not soft-deleted."""

    return ~exists().where(
        MessageDeletion.message_id == Message.id,
        MessageDeletion.user_id == user_id,
    )


def between(user_a: int, user_b: int):
    return or_(
        and_(Message.sender_id == user_a, Message.recipient_id == user_b),
        and_(Message.sender_id == user_b, Message.recipient_id == user_a),
    )


def to_record(message: Message) -> MessageRecord:
    return MessageRecord(
        id=message.id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        content=message.content,
        created_at=as_utc(message.created_at),
        read=message.read,
    )


# ---------------------------------------------------------------------------
# Synchronous queries
# ---------------------------------------------------------------------------


def create_message(db: Session, sender_id: int, recipient_id: int, content: str) -> Message:
    message = Message(sender_id=sender_id, recipient_id=recipient_id, content=content, read=False)
    db.add(message)
    db.flush()
    return message


def count_unread(db: Session, user_id: int) -> int:
    stmt = select(func.count(Message.id)).where(
        Message.recipient_id == user_id,
        Message.read.is_(False),
        visible_to(user_id),
    )
    return int(db.execute(stmt).scalar_one())


def mark_thread_read(db: Session, reader_id: int, peer_id: int) -> datetime | None:
    db.execute(
        update(Message)
        .where(
            Message.sender_id == peer_id,
            Message.recipient_id == reader_id,
            Message.read.is_(False),
            visible_to(reader_id),
        )
        .values(read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    latest = db.execute(
        select(func.max(Message.created_at)).where(
            Message.sender_id == peer_id,
            Message.recipient_id == reader_id,
            visible_to(reader_id),
        )
    ).scalar_one_or_none()
    return as_utc(latest) if latest is not None else None


def list_thread(
    db: Session,
    user_id: int,
    peer_id: int,
    *,
    before: datetime | None = None,
    limit: int = 30,
) -> list[Message]:
    stmt = select(Message).where(between(user_id, peer_id), visible_to(user_id))
    if before is not None:
        stmt = stmt.where(Message.created_at < before)
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())


def unread_by_peer(db: Session, user_id: int, peer_ids: Iterable[int]) -> dict[int, int]:
    peers = list(peer_ids)
    if not peers:
        return {}
    stmt = (
        select(Message.sender_id, func.count(Message.id))
        .where(
            Message.recipient_id == user_id,
            Message.sender_id.in_(peers),
            Message.read.is_(False),
            visible_to(user_id),
        )
        .group_by(Message.sender_id)
    )
    counts = {peer: 0 for peer in peers}
    for sender_id, count in db.execute(stmt):
        counts[sender_id] = int(count)
    return counts


def _hide(db: Session, user_id: int, message_ids: Sequence[int]) -> int:
    for message_id in message_ids:
        db.add(MessageDeletion(message_id=message_id, user_id=user_id))
    db.flush()
    return len(message_ids)


def soft_delete_threads(db: Session, user_id: int, peer_ids: Iterable[int]) -> int:
    peers = [peer for peer in peer_ids if peer != user_id]
    if not peers:
        return 0
    conditions = [between(user_id, peer) for peer in peers]
    stmt = select(Message.id).where(or_(*conditions), visible_to(user_id))
    return _hide(db, user_id, list(db.execute(stmt).scalars()))


def soft_delete_messages(db: Session, user_id: int, message_ids: Iterable[int]) -> int:
    ids = list(dict.fromkeys(message_ids))
    if not ids:
        return 0
    stmt = select(Message.id).where(
        Message.id.in_(ids),
        or_(Message.sender_id == user_id, Message.recipient_id == user_id),
        visible_to(user_id),
    )
    return _hide(db, user_id, list(db.execute(stmt).scalars()))


# ---------------------------------------------------------------------------
# Async store
# ---------------------------------------------------------------------------


class SqlMessageStore:
    """Runs the queries above on the thread pool with a short-lived session each."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _create(self, sender_id: int, recipient_id: int, content: str) -> MessageRecord:
        with session_scope(self._session_factory) as db:
            return to_record(create_message(db, sender_id, recipient_id, content))

    def _count_unread(self, user_id: int) -> int:
        with session_scope(self._session_factory) as db:
            return count_unread(db, user_id)

    def _mark_read(self, reader_id: int, peer_id: int) -> datetime | None:
        with session_scope(self._session_factory) as db:
            return mark_thread_read(db, reader_id, peer_id)

    async def create(self, sender_id: int, recipient_id: int, content: str) -> MessageRecord:
        return await run_in_threadpool(self._create, sender_id, recipient_id, content)

    async def count_unread(self, user_id: int) -> int:
        return await run_in_threadpool(self._count_unread, user_id)

    async def mark_read(self, reader_id: int, peer_id: int) -> datetime | None:
        return await run_in_threadpool(self._mark_read, reader_id, peer_id)


__all__ = [
    "SqlMessageStore",
    "count_unread",
    "create_message",
    "list_thread",
    "mark_thread_read",
    "soft_delete_messages",
    "soft_delete_threads",
    "to_record",
    "unread_by_peer",
    "visible_to",
]
