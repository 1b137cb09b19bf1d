"""
API route: Reports
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from apps.api.deps import get_db
from apps.worker.enrich import extract_report
from apps.worker.stores import SqlReportSource
from packages.shared.models import ReportExtraction

router = APIRouter(tags=["reports"])


@router.get("/reports/{report_id}/extraction", response_model=ReportExtraction)
def get_report_extraction(report_id: int, db: Session = Depends(get_db)):
    """Run every extractor over a stored report's narrative. Read-only."""
    report = SqlReportSource().get(db, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return extract_report(report)
