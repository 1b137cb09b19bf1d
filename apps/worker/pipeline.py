"""
EPA assignment orchestrator.

For each candidate report: extract name/score pairs, load the report's
participants once, resolve every pair and either assign the score or queue a
review case. Each report is its own unit of work (one session, one commit),
so an aborted batch keeps every report finished before it and a rerun over
the same reports converges to the same state.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from packages.db.database import build_engine, build_session_factory, session_scope
from packages.shared.config import PipelineConfig, clamp_limit
from packages.shared.models import (
    AssignmentOutcome,
    CandidateSnapshot,
    ExtractedAssertion,
    MatchMethod,
    ParticipantCandidate,
    ParticipantRole,
    Report,
    ResolutionKind,
    ReviewCase,
    ReviewReason,
    RunSummary,
)
from apps.worker.review_sink import JsonFileReviewSink, ReviewSink
from apps.worker.steps.step02_personnel import extract_personnel_block
from apps.worker.steps.step03_epa_pairs import extract_epa_pairs
from apps.worker.steps.step05_resolve import resolve
from apps.worker.stores import SqlParticipantSource, SqlReportSource, SqlScoreSink

logger = logging.getLogger(__name__)

_MAX_REPORT_ATTEMPTS = 2


def _snapshot(candidate: ParticipantCandidate, with_source: bool = True) -> CandidateSnapshot:
    return CandidateSnapshot(
        id=candidate.id,
        user_id=candidate.linked_user_id,
        names=list(candidate.names),
        source_text=candidate.source_label if with_source else "",
    )


class EpaAssignmentPipeline:
    """Runs extraction, resolution and assignment over a batch of reports."""

    def __init__(
        self,
        config: PipelineConfig,
        session_factory: Optional[sessionmaker] = None,
        report_source: Optional[SqlReportSource] = None,
        participant_source: Optional[SqlParticipantSource] = None,
        score_sink: Optional[SqlScoreSink] = None,
        review_sink: Optional[ReviewSink] = None,
    ):
        self.config = config
        self.session_factory = session_factory or build_session_factory(build_engine(config))
        self.reports = report_source or SqlReportSource()
        self.participants = participant_source or SqlParticipantSource()
        self.scores = score_sink or SqlScoreSink()
        self.review_sink = review_sink or JsonFileReviewSink(config.review_output_path)

    # ── batch ──────────────────────────────────────────────────────────

    def run(self, limit: Optional[int] = None) -> RunSummary:
        started = time.monotonic()
        limit = clamp_limit(limit or self.config.report_limit)
        summary = RunSummary(write=self.config.write)
        review_cases: list[ReviewCase] = []

        logger.info(
            f"Prefiltering reports that contain \"Trainee EPA\" with score 1-5 "
            f"(limit={limit}, write={self.config.write})"
        )
        try:
            with session_scope(self.session_factory) as session:
                reports = self.reports.candidate_reports(session, limit)
        except SQLAlchemyError:
            logger.exception("Failed to list candidate reports; nothing to process")
            reports = []
        logger.info(f"Found {len(reports)} candidate reports")

        try:
            for delta, cases in self._process_all(reports):
                summary.merge(delta)
                review_cases.extend(cases)
        finally:
            self._flush_review(summary, review_cases)

        logger.info(
            "Done in %.1fs: reports=%d pairs=%d inserted=%d updated=%d unchanged=%d "
            "ambiguous=%d unmatched=%d sole_candidate=%d failed=%d%s",
            time.monotonic() - started,
            summary.reports_scanned, summary.pairs_found, summary.inserted,
            summary.updated, summary.unchanged, summary.ambiguous, summary.unmatched,
            summary.sole_candidate_matches, summary.reports_failed,
            "" if summary.write else " (preview, no writes)",
        )
        return summary

    def _process_all(self, reports: list[Report]):
        if self.config.workers <= 1 or len(reports) <= 1:
            for report in reports:
                yield self.process_report(report)
            return
        # Reports are independent; map() keeps results in report order
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            yield from executor.map(self.process_report, reports)

    def _flush_review(self, summary: RunSummary, cases: list[ReviewCase]) -> None:
        summary.review_cases = len(cases)
        try:
            summary.review_artifact = self.review_sink.write_batch(cases)
        except OSError:
            summary.review_write_failed = True
            logger.exception(f"Failed to write {len(cases)} review cases")

    # ── one report ─────────────────────────────────────────────────────

    def process_report(self, report: Report) -> tuple[RunSummary, list[ReviewCase]]:
        """Process one report in its own transaction. Never raises for store errors."""
        base = RunSummary(write=self.config.write, reports_scanned=1)
        assertions = [
            ExtractedAssertion(report_id=report.id, raw_name=p.raw_name, score=p.score, source=p.source)
            for p in extract_epa_pairs(report.narrative_text)
        ]
        if not assertions:
            return base, []
        base.reports_with_pairs = 1
        base.pairs_found = len(assertions)

        for attempt in range(1, _MAX_REPORT_ATTEMPTS + 1):
            delta = base.model_copy()
            try:
                with session_scope(self.session_factory) as session:
                    cases = self._resolve_and_assign(session, report, assertions, delta)
                return delta, cases
            except IntegrityError:
                if attempt < _MAX_REPORT_ATTEMPTS:
                    logger.warning(f"report {report.id}: concurrent score write; retrying")
                    continue
                logger.exception(f"report {report.id}: score write conflict persisted; rolled back")
            except SQLAlchemyError:
                logger.exception(f"report {report.id}: store error; rolled back")
            break

        failed = base.model_copy()
        failed.reports_failed = 1
        return failed, []

    def _resolve_and_assign(
        self,
        session: Session,
        report: Report,
        assertions: list[ExtractedAssertion],
        delta: RunSummary,
    ) -> list[ReviewCase]:
        candidates = self.participants.candidates_for_report(session, report.id)
        if not candidates:
            logger.warning(f"report {report.id} has no report_participants rows; skipping")
            delta.reports_without_participants = 1
            return []

        trainees = [c for c in candidates if c.role == ParticipantRole.TRAINEE]
        by_id = {c.id: c for c in trainees}
        excerpt = ""
        cases: list[ReviewCase] = []
        # Preview only: scores this report would already have written
        previewed: dict[int, int] = {}

        for pair in assertions:
            resolution = resolve(pair.raw_name, pair.score, trainees, ParticipantRole.TRAINEE)

            if resolution.kind == ResolutionKind.UNIQUE:
                pid = resolution.participant_id
                method = resolution.match_method
                logger.info(
                    f"[ASSIGN] report {report.id}: \"{pair.raw_name}\" -> report_participant {pid} "
                    f"(score {pair.score}, rule {resolution.rule.value})"
                )
                result = self.scores.upsert(
                    session, pid, pair.score, method, self.config.write, pending=previewed,
                )
                if result.outcome == AssignmentOutcome.INSERTED:
                    delta.inserted += 1
                elif result.outcome == AssignmentOutcome.UPDATED:
                    delta.updated += 1
                else:
                    delta.unchanged += 1
                if method == MatchMethod.SOLE_CANDIDATE:
                    delta.sole_candidate_matches += 1
                continue

            if not excerpt:
                excerpt = extract_personnel_block(report.narrative_text)[: self.config.review_excerpt_chars]
            snapshot = [_snapshot(c) for c in trainees]

            if resolution.kind == ResolutionKind.AMBIGUOUS:
                delta.ambiguous += 1
                matches = [_snapshot(by_id[i], with_source=False) for i in resolution.participant_ids]
                logger.warning(
                    f"[SKIP] report {report.id}: ambiguous match for \"{pair.raw_name}\" "
                    f"(score {pair.score}). {len(matches)} candidates: "
                    + " || ".join("|".join(m.names) for m in matches)
                )
                cases.append(ReviewCase(
                    report_id=report.id,
                    raw_name=pair.raw_name,
                    score=pair.score,
                    reason=ReviewReason.AMBIGUOUS,
                    matches=matches,
                    candidates=snapshot,
                    personnel_excerpt=excerpt,
                ))
            else:
                delta.unmatched += 1
                logger.warning(
                    f"[SKIP] report {report.id}: no match for parsed name \"{pair.raw_name}\" "
                    f"(score {pair.score}). Candidates: "
                    + " || ".join("|".join(c.names) for c in trainees)
                )
                cases.append(ReviewCase(
                    report_id=report.id,
                    raw_name=pair.raw_name,
                    score=pair.score,
                    reason=ReviewReason.NO_MATCH,
                    candidates=snapshot,
                    personnel_excerpt=excerpt,
                ))
        return cases


def run_epa_assignment(
    config: PipelineConfig,
    review_sink: Optional[ReviewSink] = None,
    session_factory: Optional[sessionmaker] = None,
) -> RunSummary:
    """Build a pipeline for `config` and run it once."""
    pipeline = EpaAssignmentPipeline(config, session_factory=session_factory, review_sink=review_sink)
    return pipeline.run()
