"""
Engine, sessions and chunked writes for the account linking tables.

One engine per process (the pool is shared); one session per request via
the get_db_session dependency.

Usage:
    from adlink.database.session import get_db_session

    @router.get("/api/meta/ad-accounts")
    async def list_accounts(db: Session = Depends(get_db_session)):
        ...
"""

import logging
import os
from typing import Any, Dict, Generator, List, Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

logger = logging.getLogger(__name__)

# Platform ceiling on mutations per commit; larger sets are chunked.
MAX_BATCH_WRITES = 500

POSTGRES_POOL_OPTIONS: Dict[str, Any] = {
    "poolclass": QueuePool,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def database_url_from_env() -> str:
    """
    DATABASE_URL with the legacy postgres:// scheme rewritten.

    Raises:
        ValueError: DATABASE_URL is not set
    """
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        raise ValueError("DATABASE_URL is not configured")
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = database_url_from_env()
        if url.startswith("sqlite"):
            _engine = create_engine(url, connect_args={"check_same_thread": False})
        else:
            _engine = create_engine(url, **POSTGRES_POOL_OPTIONS)
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False)
    return _session_factory


def get_db_session() -> Generator[Session, None, None]:
    """Per-request session; 503 when no database is configured."""
    try:
        factory = get_session_factory()
    except ValueError:
        logger.error("Database requested but DATABASE_URL is not set")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    with factory() as session:
        yield session


def write_in_batches(db: Session, rows: Sequence, batch_size: int = MAX_BATCH_WRITES) -> int:
    """
    Merge rows into the session and commit in chunks.

    Each commit carries at most batch_size mutations.

    Returns:
        Number of commits issued
    """
    if batch_size < 1 or batch_size > MAX_BATCH_WRITES:
        raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_WRITES}")

    commits = 0
    for chunk in _chunks(rows, batch_size):
        for row in chunk:
            db.merge(row)
        db.commit()
        commits += 1
    return commits


def _chunks(rows: Sequence, size: int) -> List[Sequence]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]
