from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from .enums import (
    AssignmentOutcome,
    MatchMethod,
    PairSource,
    ParticipantRole,
    ResolutionKind,
    ResolutionRule,
    ReviewReason,
    ScanType,
)


class Report(BaseModel):
    id: int
    narrative_text: str = ""


class ParticipantCandidate(BaseModel):
    id: int
    report_id: int
    role: ParticipantRole
    linked_user_id: Optional[int] = None
    source_label: str = ""
    names: list[str] = Field(default_factory=list)  # raw display-name fragments
    norms: list[str] = Field(default_factory=list)  # deduped normalized names


class EpaPair(BaseModel):
    """A name/score pair as found in narrative text."""
    raw_name: str
    score: int = Field(ge=1, le=5)
    source: PairSource = PairSource.PERSONNEL


class ExtractedAssertion(BaseModel):
    report_id: int
    raw_name: str
    score: int = Field(ge=1, le=5)
    source: PairSource = PairSource.PERSONNEL


class Resolution(BaseModel):
    kind: ResolutionKind
    participant_ids: list[int] = Field(default_factory=list)
    rule: Optional[ResolutionRule] = None

    @property
    def participant_id(self) -> Optional[int]:
        if self.kind == ResolutionKind.UNIQUE:
            return self.participant_ids[0]
        return None

    @property
    def match_method(self) -> MatchMethod:
        if self.rule == ResolutionRule.SOLE_CANDIDATE:
            return MatchMethod.SOLE_CANDIDATE
        return MatchMethod.IDENTITY


class ScoreAssignment(BaseModel):
    participant_id: int
    score: int = Field(ge=1, le=5)
    assigned_at: Optional[datetime] = None
    match_method: MatchMethod = MatchMethod.IDENTITY


class AssignmentResult(BaseModel):
    participant_id: int
    outcome: AssignmentOutcome
    score: int
    previous_score: Optional[int] = None
    applied: bool = True  # False in preview mode


class CandidateSnapshot(BaseModel):
    id: int
    user_id: Optional[int] = None
    names: list[str] = Field(default_factory=list)
    source_text: str = ""


class ReviewCase(BaseModel):
    report_id: int
    raw_name: str
    score: int
    reason: ReviewReason
    matches: list[CandidateSnapshot] = Field(default_factory=list)
    candidates: list[CandidateSnapshot] = Field(default_factory=list)
    personnel_excerpt: str = ""


class ReportExtraction(BaseModel):
    """Everything the extractors derive from one narrative."""
    report_id: int
    scan_type: Optional[ScanType] = None
    epa_pairs: list[EpaPair] = Field(default_factory=list)
    epa_ids: list[str] = Field(default_factory=list)
    attending: Optional[str] = None
    trainee: Optional[str] = None

    @computed_field
    @property
    def epa(self) -> Optional[str]:
        return "; ".join(self.epa_ids) if self.epa_ids else None


class RunSummary(BaseModel):
    write: bool = False
    reports_scanned: int = 0
    reports_with_pairs: int = 0
    reports_without_participants: int = 0
    reports_failed: int = 0
    pairs_found: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    ambiguous: int = 0
    unmatched: int = 0
    sole_candidate_matches: int = 0
    review_cases: int = 0
    review_artifact: Optional[str] = None
    review_write_failed: bool = False

    def merge(self, other: "RunSummary") -> None:
        """Add another (per-report) summary's counters into this one."""
        for name in (
            "reports_scanned", "reports_with_pairs", "reports_without_participants",
            "reports_failed", "pairs_found", "inserted", "updated", "unchanged",
            "ambiguous", "unmatched", "sole_candidate_matches", "review_cases",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))


class EnrichmentSummary(BaseModel):
    total: int = 0
    with_epa: int = 0
    with_attending: int = 0
    with_trainee: int = 0
    with_scan_type: int = 0
    written: int = 0
