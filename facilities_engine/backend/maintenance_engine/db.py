# backend/maintenance_engine/db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings


class Base(DeclarativeBase):
    pass


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    future=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def init_db(bind=None) -> None:
    # models must be imported so the tables are registered on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One session for a unit of work: a CLI command or a request.

    A failed statement leaves the transaction aborted on Postgres, so roll
    back on any exception before the session is closed.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db():
    with session_scope() as db:
        yield db
