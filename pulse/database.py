"""
Database engine and session configuration.

Provides factory functions for the SQLAlchemy engine and sessions backing
the pulse document store.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def _database_url() -> Optional[str]:
    return os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL")


def build_engine_from_env() -> Engine:
    """
    Build SQLAlchemy engine from DATABASE_URL / POSTGRES_URL.

    Returns:
        Configured SQLAlchemy Engine with connection pooling
    """
    url = _database_url()
    if not url:
        raise ValueError("DATABASE_URL or POSTGRES_URL environment variable not set")

    create_kwargs = dict(
        echo=False,
        future=True,
        pool_pre_ping=True,
    )

    # Optional pool tuning via env
    for env_name, kwarg in (
        ("SQLALCHEMY_POOL_SIZE", "pool_size"),
        ("SQLALCHEMY_MAX_OVERFLOW", "max_overflow"),
        ("SQLALCHEMY_POOL_RECYCLE", "pool_recycle"),
        ("SQLALCHEMY_POOL_TIMEOUT", "pool_timeout"),
    ):
        raw = os.getenv(env_name)
        if raw is None:
            continue
        try:
            create_kwargs[kwarg] = int(raw)
        except ValueError:
            pass

    # Per-connection statement timeout (psycopg2)
    stmt_timeout_ms = os.getenv("PG_STATEMENT_TIMEOUT_MS")
    if stmt_timeout_ms and url.startswith("postgresql"):
        try:
            create_kwargs["connect_args"] = {
                "options": f"-c statement_timeout={int(stmt_timeout_ms)}"
            }
        except ValueError:
            pass

    return create_engine(url, **create_kwargs)


def get_sessionmaker(engine: Engine) -> sessionmaker:
    """
    Create sessionmaker bound to the given engine.

    Objects are not expired on commit so callers can keep reading documents
    after the write transaction closes.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_session_local() -> sessionmaker:
    """Process-wide sessionmaker, built lazily from the environment."""
    global _engine, _SessionLocal

    if _SessionLocal is not None:
        return _SessionLocal

    _engine = build_engine_from_env()
    _SessionLocal = get_sessionmaker(_engine)
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency injection DB session generator.
    Usage: Depends(get_db)
    """
    SessionLocal = get_session_local()
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def with_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.
    Usage: with with_db() as db: ...
    """
    SessionLocal = get_session_local()
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
