"""
SQLAlchemy ORM models for the report, participant and score stores.

These map tables owned by the reporting database; `init_db` creates them only
for local development and tests.
"""
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow():
    return datetime.now(dt_timezone.utc)


class Base(DeclarativeBase):
    pass


class Report(Base):
    __tablename__ = "reports"

    id = Column("ReportID", Integer, primary_key=True)
    content_text = Column("ContentText", Text, nullable=True)
    create_date = Column("CreateDate", DateTime, nullable=True)
    accession = Column("Accession", String(64), nullable=True)

    # Enrichment columns written by the enrichment job
    epa = Column(Text, nullable=True)
    attending = Column(String(128), nullable=True)
    trainee = Column(Text, nullable=True)
    scan_type = Column(String(64), nullable=True)

    participants = relationship("ReportParticipant", back_populates="report")


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True)
    preferred_name = Column(String(200), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)


class ReportParticipant(Base):
    __tablename__ = "report_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.ReportID"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    role = Column(String(20), nullable=False)  # trainee | attending
    source_text = Column(Text, nullable=True)

    report = relationship("Report", back_populates="participants")
    user = relationship("User")
    epa_score = relationship("EpaScore", back_populates="participant", uselist=False)


class EpaScore(Base):
    __tablename__ = "epa_scores"
    __table_args__ = (
        UniqueConstraint("report_participant_id", name="uq_epa_scores_report_participant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_participant_id = Column(Integer, ForeignKey("report_participants.id"), nullable=False)
    epa_score = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    match_method = Column(String(32), nullable=True)  # identity | sole_candidate

    participant = relationship("ReportParticipant", back_populates="epa_score")
