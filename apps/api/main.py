"""
EPA Track API - FastAPI application entry point.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

# Add project root to path
sys.path.append(os.getcwd())

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from packages.db.database import build_engine, build_session_factory, init_db
from packages.shared.config import PipelineConfig

logger = logging.getLogger("epatrack.api")


def _parse_csv_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return [value.strip() for value in raw.split(",") if value.strip()]


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def create_app(config: Optional[PipelineConfig] = None) -> FastAPI:
    """Build the app around one config; routes read it from `app.state`."""
    config = config or PipelineConfig.from_env()
    engine = build_engine(config)

    app = FastAPI(
        title="EPA Track API",
        description="Trainee EPA score extraction and assignment for radiology reports",
        version="0.1.0",
    )
    app.state.config = config
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_parse_csv_env("CORS_ALLOW_ORIGINS", ["http://localhost:3000"]),
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    if _parse_bool_env("EPA_INIT_DB", config.is_sqlite):
        logger.info("Initializing database...")
        init_db(engine)

    from apps.api.routes.assignments import router as assignments_router
    from apps.api.routes.reports import router as reports_router

    app.include_router(reports_router)
    app.include_router(assignments_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": "0.1.0"}

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
