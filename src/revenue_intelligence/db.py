"""SQLite reference store connection.

The store holds the two datasets a scan reads: provider billing rows
(imported from CSV) and specialty benchmark rows (seeded from the built-in
defaults, then reloaded into the in-memory registry on every refresh). It
lives in ~/.revenue-mcp/reference.db by default (override with DATA_DIR).
WAL mode lets concurrent batch scans read while an import or benchmark
refresh writes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.expanduser("~/.revenue-mcp")
DB_FILENAME = "reference.db"


def get_data_dir() -> Path:
    """Directory holding the reference store, created on demand."""
    data_dir = Path(os.environ.get("DATA_DIR", DEFAULT_DATA_DIR))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_url() -> str:
    return f"sqlite+aiosqlite:///{get_data_dir() / DB_FILENAME}"


def _configure_sqlite(dbapi_connection, connection_record):
    # busy_timeout covers an import holding the write lock during a scan.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine(url: Optional[str] = None) -> AsyncEngine:
    """Return the process-wide engine, creating it on first use.

    ``url`` only applies on the first call (tests pass an in-memory URL).
    """
    global _engine
    if _engine is None:
        _engine = create_async_engine(url or get_db_url(), echo=False)
        event.listen(_engine.sync_engine, "connect", _configure_sqlite)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions for ingestors and the provider scanner. Objects stay readable after commit."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def init_db(url: Optional[str] = None):
    """Create the provider, benchmark and ingestion-meta tables if missing."""
    from .sqlmodels import Base

    engine = get_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Reference store initialized at %s", engine.url)


async def close_db():
    """Dispose of the engine so the next call reconnects (DATA_DIR may have changed)."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
