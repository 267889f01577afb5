from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

# Bound by init_engine() at process startup; nothing connects at import time.
SessionLocal = sessionmaker(
    autoflush=False,
    autocommit=False,
    future=True,
)

_engine: Optional[Engine] = None


def init_engine(database_url: str, *, check: bool = False, **kwargs) -> Engine:
    """
    Create the process-wide engine and bind SessionLocal to it.

    check=True runs a round-trip query so one-shot scripts abort before doing
    any work when the database is unreachable.
    """
    global _engine
    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        future=True,
        **kwargs,
    )
    if check:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    SessionLocal.configure(bind=engine)
    _engine = engine
    logger.info("[db] engine initialised dialect=%s", engine.dialect.name)
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database engine not initialised; call init_engine() at startup.")
    return _engine


def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
