"""
Step 6 — Idempotent score assignment.

One epa_scores row per report participant:
- no row            -> insert
- different score   -> update score and timestamp (last write wins)
- same score        -> no write

Safe to re-run any number of times; the unique key on
report_participant_id is what makes concurrent writers converge.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from packages.db.models import EpaScore, utcnow
from packages.shared.models import AssignmentOutcome, AssignmentResult, MatchMethod
from apps.worker.steps.step03_epa_pairs import MAX_SCORE, MIN_SCORE

logger = logging.getLogger(__name__)


def _existing(session: Session, participant_id: int) -> Optional[EpaScore]:
    return (
        session.query(EpaScore)
        .filter(EpaScore.report_participant_id == participant_id)
        .first()
    )


def _apply(
    session: Session,
    row: Optional[EpaScore],
    participant_id: int,
    score: int,
    match_method: MatchMethod,
) -> AssignmentResult:
    if row is None:
        session.add(EpaScore(
            report_participant_id=participant_id,
            epa_score=score,
            created_at=utcnow(),
            match_method=match_method.value,
        ))
        session.flush()
        logger.info(f"[INSERT] epa_scores for report_participant_id={participant_id} score={score}")
        return AssignmentResult(
            participant_id=participant_id, outcome=AssignmentOutcome.INSERTED, score=score,
        )

    previous = row.epa_score
    if previous == score:
        return AssignmentResult(
            participant_id=participant_id, outcome=AssignmentOutcome.UNCHANGED,
            score=score, previous_score=previous,
        )

    row.epa_score = score
    row.created_at = utcnow()
    row.match_method = match_method.value
    session.flush()
    logger.info(f"[UPDATE] epa_scores.id={row.id} updated {previous} -> {score}")
    return AssignmentResult(
        participant_id=participant_id, outcome=AssignmentOutcome.UPDATED,
        score=score, previous_score=previous,
    )


def preview_assignment(
    session: Session,
    participant_id: int,
    score: int,
    pending: Optional[dict[int, int]] = None,
) -> AssignmentResult:
    """
    What `assign` would do, without writing.

    `pending` holds scores previewed earlier in the same unit of work
    (participant id -> score); they shadow the stored row and the new score is
    recorded there, so a repeated mention previews like the second write would.
    """
    if pending is not None and participant_id in pending:
        stored: Optional[int] = pending[participant_id]
    else:
        row = _existing(session, participant_id)
        stored = row.epa_score if row is not None else None

    if stored is None:
        outcome = AssignmentOutcome.INSERTED
    elif stored == score:
        outcome = AssignmentOutcome.UNCHANGED
    else:
        outcome = AssignmentOutcome.UPDATED
    if pending is not None:
        pending[participant_id] = score
    return AssignmentResult(
        participant_id=participant_id, outcome=outcome, score=score,
        previous_score=stored, applied=False,
    )


def assign(
    session: Session,
    participant_id: int,
    score: int,
    match_method: MatchMethod = MatchMethod.IDENTITY,
    write: bool = True,
    pending: Optional[dict[int, int]] = None,
) -> AssignmentResult:
    """
    Create or update the participant's score. Commit is the caller's.

    A writer racing on the same participant surfaces as IntegrityError at
    flush; the caller rolls back and retries its unit of work.
    """
    if score < MIN_SCORE or score > MAX_SCORE:
        raise ValueError(f"EPA score must be {MIN_SCORE}-{MAX_SCORE}, got {score}")
    if not write:
        return preview_assignment(session, participant_id, score, pending)
    return _apply(session, _existing(session, participant_id), participant_id, score, match_method)
