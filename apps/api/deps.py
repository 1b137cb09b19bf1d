"""
Request dependencies backed by `app.state`.
"""
from __future__ import annotations

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker

from packages.shared.config import PipelineConfig


def get_config(request: Request) -> PipelineConfig:
    return request.app.state.config


def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    db = request.app.state.session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
