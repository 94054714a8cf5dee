# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: One synchronous engine for everything.
# The pipeline runs inside Celery workers, which are synchronous, and the
# API endpoints are plain `def` handlers that FastAPI runs in its threadpool.
# Both use the same psycopg2 engine and the same session lifecycle:
#
#   create → yield → commit (or rollback on error) → close
#
# Two entry points expose that lifecycle:
#   - get_sync_session(): context manager for workers and repositories
#   - get_session():      FastAPI dependency (one session per request)
#
# The engine is created lazily from settings on first use. Tests swap it for
# a SQLite engine with configure_engine().
# =============================================================================

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cv_evaluator.config import get_settings
from cv_evaluator.db.models import Base

logger = logging.getLogger(__name__)

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker | None = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL gets a small connection pool. SQLite connections are shared
    across threads, and an in-memory database is pinned to one connection
    so every session sees the same data.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def configure_engine(engine: Engine | None) -> None:
    """Replace the process-wide engine (None resets to lazy creation)."""
    global _sync_engine, _sync_session_factory
    if _sync_engine is not None and _sync_engine is not engine:
        _sync_engine.dispose()
    _sync_engine = engine
    _sync_session_factory = None


def _get_sync_engine() -> Engine:
    """Lazily create and cache the SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        settings = get_settings()
        _sync_engine = build_engine(settings.database_url, echo=settings.debug)
    return _sync_engine


def _get_sync_session_factory() -> sessionmaker:
    """Lazily create and cache the session factory."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=_get_sync_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a database session.

    Usage:
        with get_sync_session() as session:
            job = session.get(Job, job_id)
            # Auto-commits on exit, auto-rollbacks on exception
    """
    factory = _get_sync_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session per request.

    Usage in route handlers:
        @router.get("/result/{job_id}")
        def get_result(job_id: str, session: Session = Depends(get_session)):
            ...
    """
    with get_sync_session() as session:
        yield session


def init_db() -> None:
    """Create missing tables. Existing tables are left untouched."""
    engine = _get_sync_engine()
    Base.metadata.create_all(engine)
    logger.info("Database schema ensured (%s)", engine.url.render_as_string(hide_password=True))
