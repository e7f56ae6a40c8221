"""Likes and mutual match lookups."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from app.models import Like


def has_liked(db: Session, liker_id: int, liked_id: int) -> bool:
    stmt = select(Like.id).where(Like.liker_id == liker_id, Like.liked_id == liked_id)
    return db.execute(stmt).first() is not None


def is_mutual_match(db: Session, user_a: int, user_b: int) -> bool:
    if user_a == user_b:
        return False
    return has_liked(db, user_a, user_b) and has_liked(db, user_b, user_a)


def mutual_match_ids(db: Session, user_id: int) -> list[int]:
    liked = select(Like.liked_id).where(Like.liker_id == user_id)
    stmt = (
        select(Like.liker_id)
        .where(Like.liked_id == user_id, Like.liker_id.in_(liked))
        .order_by(Like.liker_id)
    )
    return list(db.execute(stmt).scalars())


def record_like(db: Session, liker_id: int, liked_id: int) -> tuple[bool, bool]:
    """Store a like if it is new.

    Returns ``(created, mutual)``.
    """

    created = False
    if not has_liked(db, liker_id, liked_id):
        db.add(Like(liker_id=liker_id, liked_id=liked_id))
        try:
            db.commit()
            created = True
        except IntegrityError:
            db.rollback()
    return created, has_liked(db, liked_id, liker_id)


class SqlMatchPredicate:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _check(self, user_a: int, user_b: int) -> bool:
        with self._session_factory() as db:
            return is_mutual_match(db, user_a, user_b)

    async def is_mutual_match(self, user_a: int, user_b: int) -> bool:
        return await run_in_threadpool(self._check, user_a, user_b)


__all__ = ["SqlMatchPredicate", "has_liked", "is_mutual_match", "mutual_match_ids", "record_like"]
