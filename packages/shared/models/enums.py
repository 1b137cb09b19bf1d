from enum import Enum


class ScanType(str, Enum):
    CT = "CT"
    MRI = "MRI"
    XRAY = "X-Ray"
    ULTRASOUND = "Ultrasound"
    PET = "PET"


class ParticipantRole(str, Enum):
    TRAINEE = "trainee"
    ATTENDING = "attending"


class PairSource(str, Enum):
    PERSONNEL = "personnel"  # Procedural Personnel excerpt (or whole text when absent)
    FULL_TEXT = "full_text"  # Whole-text fallback


class ResolutionKind(str, Enum):
    UNIQUE = "unique"
    AMBIGUOUS = "ambiguous"
    NO_MATCH = "no_match"


class ResolutionRule(str, Enum):
    NUMERIC_ID = "numeric_id"
    EXACT_NAME = "exact_name"
    LAST_NAME = "last_name"
    SOLE_CANDIDATE = "sole_candidate"


class MatchMethod(str, Enum):
    """Stored on the score row so fallback assignments can be audited."""
    IDENTITY = "identity"
    SOLE_CANDIDATE = "sole_candidate"


class AssignmentOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class ReviewReason(str, Enum):
    NO_MATCH = "no_match"
    AMBIGUOUS = "ambiguous"
