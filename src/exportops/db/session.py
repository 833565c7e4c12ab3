"""Engine and session factory.

The engine is created on first use from ``Settings.database_url`` so that
importing the package never needs a database driver.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from exportops.config import get_settings


def create_store_engine(url: str) -> Engine:
    """Build an engine; SQLite file URLs get their parent directory created."""

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        database = parsed.database
        if database and database != ":memory:":
            parent = os.path.dirname(os.path.abspath(database))
            os.makedirs(parent, exist_ok=True)
        return create_engine(url, future=True)
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,
        future=True,
    )


@lru_cache(maxsize=None)
def get_engine(url: Optional[str] = None) -> Engine:
    return create_store_engine(url or get_settings().database_url)


def get_sessionmaker(url: Optional[str] = None) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(url))


@contextmanager
def get_standalone_session(url: Optional[str] = None) -> Generator[Session, None, None]:
    """Context manager for scripts and tests.

    Usage:
        with get_standalone_session() as session:
            session.add(VatRateRow(territory_code="GP", rate_percent=8.5))
    """
    session = get_sessionmaker(url)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(url: Optional[str] = None) -> None:
    """Create the modelled tables (no migrations are shipped)."""
    from exportops.db.models import Base

    Base.metadata.create_all(bind=get_engine(url))


def drop_all(url: Optional[str] = None) -> None:
    from exportops.db.models import Base

    Base.metadata.drop_all(bind=get_engine(url))
