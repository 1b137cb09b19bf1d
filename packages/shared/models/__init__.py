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
from .domain import (
    AssignmentResult,
    CandidateSnapshot,
    EnrichmentSummary,
    EpaPair,
    ExtractedAssertion,
    ParticipantCandidate,
    Report,
    ReportExtraction,
    Resolution,
    ReviewCase,
    RunSummary,
    ScoreAssignment,
)

__all__ = [
    "AssignmentOutcome",
    "AssignmentResult",
    "CandidateSnapshot",
    "EnrichmentSummary",
    "EpaPair",
    "ExtractedAssertion",
    "MatchMethod",
    "PairSource",
    "ParticipantCandidate",
    "ParticipantRole",
    "Report",
    "ReportExtraction",
    "Resolution",
    "ResolutionKind",
    "ResolutionRule",
    "ReviewCase",
    "ReviewReason",
    "RunSummary",
    "ScanType",
    "ScoreAssignment",
]
