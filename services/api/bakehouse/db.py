"""Engine and session plumbing.

The engine is built lazily so tests (and scripts) can point the app at another
database through ``init_engine`` before the first request.
"""

from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase

from .settings import settings


class Base(DeclarativeBase):
    pass


_engine = None
_SessionLocal = None


def init_engine(database_url: str | None = None):
    global _engine, _SessionLocal
    url = database_url or settings.database_url
    _engine = create_engine(url, pool_pre_ping=True)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_engine():
    if _engine is None:
        init_engine()
    return _engine


def session_factory() -> sessionmaker:
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db():
    db: Session = session_factory()()
    try:
        yield db
    except Exception:
        # Leave nothing half-written behind a failed request
        db.rollback()
        raise
    finally:
        db.close()


def ping(db: Session) -> None:
    db.execute(text("SELECT 1"))
