"""
Shared seeding helpers for tests that need a report/participant/score database.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from packages.db.database import build_engine, build_session_factory, init_db, session_scope
from packages.db.models import EpaScore, Report, ReportParticipant, User
from packages.shared.config import PipelineConfig

PERSONNEL_NARRATIVE = (
    "Procedural Personnel: Resident(s) PGY1-5: Jane Doe\n"
    "Attending: Dr. John Roe, MD\n"
    "\n"
    "Jane Doe Trainee EPA: 4"
)


def sqlite_config(tmp_path: Path, **overrides) -> PipelineConfig:
    values = {
        "database_url": f"sqlite:///{tmp_path / 'epatrack_test.db'}",
        "review_output_path": tmp_path / "review.json",
    }
    values.update(overrides)
    return PipelineConfig(**values)


def build_test_db(config: PipelineConfig):
    engine = build_engine(config)
    init_db(engine)
    return engine, build_session_factory(engine)


def add_report(factory, report_id: int, text: Optional[str], **columns) -> None:
    with session_scope(factory) as session:
        session.add(Report(id=report_id, content_text=text, **columns))


def add_user(factory, user_id: int, first: str = None, last: str = None, preferred: str = None) -> None:
    with session_scope(factory) as session:
        session.add(User(user_id=user_id, first_name=first, last_name=last, preferred_name=preferred))


def add_participant(
    factory,
    report_id: int,
    source_text: Optional[str],
    role: str = "trainee",
    user_id: Optional[int] = None,
) -> int:
    with session_scope(factory) as session:
        row = ReportParticipant(report_id=report_id, source_text=source_text, role=role, user_id=user_id)
        session.add(row)
        session.flush()
        return row.id


def scores_by_participant(factory) -> dict[int, tuple[int, Optional[str]]]:
    with session_scope(factory) as session:
        rows = session.query(EpaScore).all()
        return {r.report_participant_id: (r.epa_score, r.match_method) for r in rows}
