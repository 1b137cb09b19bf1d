"""
Read/write adapters over the report, participant and score stores.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from packages.db.models import EpaScore, Report as ReportORM, ReportParticipant, User
from packages.shared.models import (
    AssignmentResult,
    MatchMethod,
    ParticipantCandidate,
    ParticipantRole,
    Report,
    ScoreAssignment,
)
from apps.worker.steps.step03_epa_pairs import has_epa_marker
from apps.worker.steps.step05_resolve import build_candidate
from apps.worker.steps.step06_assign import assign

logger = logging.getLogger(__name__)

_KNOWN_ROLES = {r.value for r in ParticipantRole}
_SCAN_BATCH = 200


class SqlReportSource:
    """Reports table reader."""

    def candidate_reports(self, session: Session, limit: int) -> list[Report]:
        """
        Up to `limit` reports whose narrative carries a "Trainee EPA <1-5>" marker.
        A cheap LIKE narrows the scan; the regex decides.
        """
        query = (
            session.query(ReportORM.id, ReportORM.content_text)
            .filter(ReportORM.content_text.isnot(None))
            .filter(ReportORM.content_text.ilike("%epa%"))
            .order_by(ReportORM.id)
            .yield_per(_SCAN_BATCH)
        )
        reports: list[Report] = []
        for report_id, text in query:
            if not has_epa_marker(text):
                continue
            reports.append(Report(id=report_id, narrative_text=text or ""))
            if len(reports) >= limit:
                break
        return reports

    def reports_with_text(self, session: Session, limit: int) -> list[Report]:
        rows = (
            session.query(ReportORM.id, ReportORM.content_text)
            .filter(ReportORM.content_text.isnot(None))
            .order_by(ReportORM.id)
            .limit(limit)
            .all()
        )
        return [Report(id=rid, narrative_text=text or "") for rid, text in rows]

    def get(self, session: Session, report_id: int) -> Optional[Report]:
        row = session.get(ReportORM, report_id)
        if row is None:
            return None
        return Report(id=row.id, narrative_text=row.content_text or "")


class SqlParticipantSource:
    """report_participants + users reader."""

    def user_names(self, session: Session, user_ids: Iterable[int]) -> dict[int, list[str]]:
        """Display-name variants per user: preferred name, then 'first last'."""
        unique_ids = sorted({int(u) for u in user_ids if u is not None})
        if not unique_ids:
            return {}
        rows = session.query(User).filter(User.user_id.in_(unique_ids)).all()
        names: dict[int, list[str]] = {}
        for user in rows:
            variants = []
            if user.preferred_name:
                variants.append(user.preferred_name)
            full = f"{user.first_name or ''} {user.last_name or ''}".strip()
            if full:
                variants.append(full)
            names[int(user.user_id)] = variants
        return names

    def candidates_for_report(self, session: Session, report_id: int) -> list[ParticipantCandidate]:
        rows = (
            session.query(ReportParticipant)
            .filter(ReportParticipant.report_id == report_id)
            .order_by(ReportParticipant.id)
            .all()
        )
        user_map = self.user_names(session, [r.user_id for r in rows])
        candidates = []
        for row in rows:
            role = (row.role or "").strip().lower()
            if role not in _KNOWN_ROLES:
                logger.debug(f"report {report_id}: participant {row.id} has role {row.role!r}; ignored")
                continue
            candidates.append(build_candidate(
                participant_id=row.id,
                report_id=row.report_id,
                role=role,
                linked_user_id=row.user_id,
                source_label=row.source_text,
                user_names=user_map,
            ))
        return candidates


class SqlScoreSink:
    """epa_scores point lookup and idempotent upsert."""

    def lookup(self, session: Session, participant_id: int) -> Optional[ScoreAssignment]:
        row = (
            session.query(EpaScore)
            .filter(EpaScore.report_participant_id == participant_id)
            .first()
        )
        if row is None:
            return None
        return ScoreAssignment(
            participant_id=row.report_participant_id,
            score=row.epa_score,
            assigned_at=row.created_at,
            match_method=MatchMethod(row.match_method or MatchMethod.IDENTITY.value),
        )

    def upsert(
        self,
        session: Session,
        participant_id: int,
        score: int,
        match_method: MatchMethod,
        write: bool,
        pending: Optional[dict[int, int]] = None,
    ) -> AssignmentResult:
        return assign(session, participant_id, score, match_method=match_method, write=write, pending=pending)
