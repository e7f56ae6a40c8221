from contextlib import contextmanager
from typing import Iterator

from fastapi.requests import HTTPConnection
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings

settings = get_settings()

engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_session_factory(connection: HTTPConnection) -> sessionmaker[Session]:
    """Return the session factory bound to the running application.

    Works for both HTTP requests and websocket handshakes.
    """
    return getattr(connection.app.state, "session_factory", SessionLocal)


def get_db(connection: HTTPConnection) -> Iterator[Session]:
    db = get_session_factory(connection)()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Context manager for short-lived sessions used outside request scope.

    Commits on success and rolls back on error.
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
