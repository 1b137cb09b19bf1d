"""
API route: EPA assignment runs
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from apps.api.deps import get_config, get_session_factory
from apps.worker.pipeline import EpaAssignmentPipeline
from apps.worker.review_sink import JsonFileReviewSink
from packages.shared.config import MAX_REPORT_LIMIT, PipelineConfig
from packages.shared.models import RunSummary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["epa-assignments"])


class CreateAssignmentRunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=MAX_REPORT_LIMIT)
    write: bool = False


@router.post("/epa-assignments/runs", response_model=RunSummary)
def start_assignment_run(
    req: CreateAssignmentRunRequest = CreateAssignmentRunRequest(),
    config: PipelineConfig = Depends(get_config),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Run one assignment batch synchronously and return its summary."""
    run_config = config.model_copy(update={"write": req.write})
    logger.info(f"Assignment run requested (limit={req.limit}, write={req.write})")
    pipeline = EpaAssignmentPipeline(
        run_config,
        session_factory=session_factory,
        review_sink=JsonFileReviewSink(run_config.review_output_path),
    )
    return pipeline.run(limit=req.limit)
