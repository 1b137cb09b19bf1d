"""
SQLAlchemy engine and session management.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.shared.config import PipelineConfig

logger = logging.getLogger("epatrack.db")


def build_engine(config: PipelineConfig) -> Engine:
    """Create the engine for a run. One engine per run, shared by its workers."""
    # Connection arguments for SQLite (not needed for Postgres/MySQL)
    connect_args = {}
    if config.is_sqlite:
        connect_args = {"check_same_thread": False}
    return create_engine(
        config.database_url,
        echo=config.echo_sql,
        connect_args=connect_args,
        pool_pre_ping=not config.is_sqlite,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables (idempotent). Local development and tests only."""
    from packages.db.models import Base  # noqa: F811
    Base.metadata.create_all(bind=engine)
    logger.info("Created tables on %s", engine.url.render_as_string(hide_password=True))


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Context manager that yields a DB session and handles commit/rollback."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
