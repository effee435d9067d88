"""Database configuration for the commission desk."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = Path("data/commission.db")
DEFAULT_SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)
SQLITE_FALLBACK_URL = f"sqlite:///{DEFAULT_SQLITE_PATH}"

DATABASE_URL = os.getenv("COMMISSION_DATABASE_URL", SQLITE_FALLBACK_URL)


def _create_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


def _connect_or_fallback(url: str) -> tuple[str, Engine]:
    """Engine for ``url``; in development an unreachable server drops back to the SQLite file."""

    candidate = _create_engine(url)
    try:
        with candidate.connect():
            return url, candidate
    except OperationalError as exc:  # pragma: no cover - environment dependent
        if os.getenv("ENVIRONMENT", "development").lower() != "development":
            raise
        logger.warning("Commission database %r unreachable (%s); using %s", url, exc.orig, SQLITE_FALLBACK_URL)
        return SQLITE_FALLBACK_URL, _create_engine(SQLITE_FALLBACK_URL)


DATABASE_URL, engine = _connect_or_fallback(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a database session."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Create any missing commission tables."""

    from commissiondesk import models  # noqa: F401  (registers the mapped tables)

    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Commission schema ready (%d tables)", len(Base.metadata.tables))
