"""
Report enrichment: derive scan type, EPA ids, attending and trainee for each
report and (optionally) store them in the report's enrichment columns.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from packages.db.database import build_engine, build_session_factory, session_scope
from packages.db.models import Report as ReportORM
from packages.shared.config import PipelineConfig, clamp_limit
from packages.shared.models import EnrichmentSummary, Report, ReportExtraction
from apps.worker.steps.step01_scan_type import classify_scan
from apps.worker.steps.step02_personnel import extract_attending, extract_trainee
from apps.worker.steps.step03_epa_pairs import extract_epa_pairs
from apps.worker.steps.step04_epa_ids import extract_epa_ids
from apps.worker.stores import SqlReportSource

logger = logging.getLogger(__name__)

_ATTENDING_MAX_CHARS = 128  # VARCHAR(128) column
_SAMPLE_SIZE = 50


def extract_report(report: Report) -> ReportExtraction:
    """Run every extractor once over a report's narrative."""
    text = report.narrative_text
    return ReportExtraction(
        report_id=report.id,
        scan_type=classify_scan(text),
        epa_pairs=extract_epa_pairs(text),
        epa_ids=extract_epa_ids(text),
        attending=extract_attending(text),
        trainee=extract_trainee(text),
    )


def summarize_enrichments(rows: list[ReportExtraction]) -> EnrichmentSummary:
    return EnrichmentSummary(
        total=len(rows),
        with_epa=sum(1 for r in rows if r.epa),
        with_attending=sum(1 for r in rows if r.attending),
        with_trainee=sum(1 for r in rows if r.trainee),
        with_scan_type=sum(1 for r in rows if r.scan_type),
    )


def _column_values(row: ReportExtraction) -> dict[str, Optional[str]]:
    attending = row.attending[:_ATTENDING_MAX_CHARS] if row.attending else None
    return {
        "epa": row.epa,
        "attending": attending,
        "trainee": row.trainee,
        "scan_type": row.scan_type.value if row.scan_type else None,
    }


def write_enrichments(session: Session, rows: list[ReportExtraction], force: bool = False) -> int:
    """
    Store enrichment columns. With `force` every column is overwritten (None
    included); otherwise a None result keeps whatever the column already holds.
    Returns the number of reports written.
    """
    written = 0
    for row in rows:
        report = session.get(ReportORM, row.report_id)
        if report is None:
            logger.warning(f"report {row.report_id} vanished before enrichment write; skipped")
            continue
        for column, value in _column_values(row).items():
            if force or value is not None:
                setattr(report, column, value)
        written += 1
    session.flush()
    return written


def _log_samples(rows: list[ReportExtraction]) -> None:
    with_epa = [r for r in rows if r.epa][:_SAMPLE_SIZE]
    if with_epa:
        logger.info(f"[SAMPLE] Extracted EPA values (first {_SAMPLE_SIZE}):")
        for r in with_epa:
            logger.info(f" - ReportID={r.report_id}: EPA={r.epa}")
    with_attending = [r for r in rows if r.attending][:_SAMPLE_SIZE]
    if with_attending:
        logger.info(f"[SAMPLE] Extracted attending values (first {_SAMPLE_SIZE}):")
        for r in with_attending:
            logger.info(f" - ReportID={r.report_id}: attending={r.attending}")


def run_enrichment(
    config: PipelineConfig,
    limit: Optional[int] = None,
    force: bool = False,
    session_factory: Optional[sessionmaker] = None,
) -> EnrichmentSummary:
    """Enrich up to `limit` reports; writes only when `config.write` is set."""
    factory = session_factory or build_session_factory(build_engine(config))
    limit = clamp_limit(limit or config.report_limit)

    try:
        with session_scope(factory) as session:
            reports = SqlReportSource().reports_with_text(session, limit)
    except SQLAlchemyError:
        logger.exception("Failed to fetch reports")
        return EnrichmentSummary()
    if not reports:
        logger.info("No rows fetched.")
        return EnrichmentSummary()

    rows = [extract_report(r) for r in reports]
    summary = summarize_enrichments(rows)
    logger.info(
        f"Processed {summary.total} reports: EPA extracted in {summary.with_epa}; "
        f"attending parsed in {summary.with_attending}; trainee parsed in {summary.with_trainee}."
    )
    _log_samples(rows)

    if not config.write:
        logger.info("[DRY-RUN] Done (no DB writes).")
        return summary

    # One transaction for the whole batch: all rows or none
    try:
        with session_scope(factory) as session:
            summary.written = write_enrichments(session, rows, force=force)
    except SQLAlchemyError:
        logger.exception("Writing enrichment columns failed; rolled back")
        summary.written = 0
    logger.info(f"[COMPLETE] Wrote {summary.written} rows.")
    return summary
