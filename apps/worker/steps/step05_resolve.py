"""
Step 5 — Candidate resolution.

Match an extracted name against the report's participant candidates of the
same role. Rules run in priority order; the first rule that keeps at least one
candidate decides, looser rules are never consulted after that:

1. numeric_id      digits-only name -> linked user id, then participant id
2. exact_name      normalized name is one of the candidate's normalized names
3. last_name       last token of the normalized name is contained in one of them
4. sole_candidate  the report has exactly one candidate of that role

One survivor is a unique match, several are ambiguous, none is no match.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, Optional

from packages.shared.models import (
    ParticipantCandidate,
    ParticipantRole,
    Resolution,
    ResolutionKind,
    ResolutionRule,
)
from apps.worker.lib.name_normalize import (
    dedupe_preserving_order,
    last_name_token,
    normalize_name,
    split_names,
)

logger = logging.getLogger(__name__)

_LABEL_NOISE = re.compile(r"[,()\[\]]")
_DIGITS = re.compile(r"[0-9]+")

RuleFn = Callable[[str, list[ParticipantCandidate]], list[ParticipantCandidate]]


def build_candidate(
    participant_id: int,
    report_id: int,
    role: ParticipantRole | str,
    linked_user_id: Optional[int],
    source_label: Optional[str],
    user_names: Optional[dict[int, list[str]]] = None,
) -> ParticipantCandidate:
    """Candidate with its raw name fragments and normalized name set."""
    names: list[str] = []
    if linked_user_id is not None and user_names:
        names.extend(user_names.get(int(linked_user_id), []))
    label = source_label or ""
    names.extend(split_names(_LABEL_NOISE.sub(" ", label)))
    norms = dedupe_preserving_order([n for n in (normalize_name(x) for x in names) if n])
    return ParticipantCandidate(
        id=participant_id,
        report_id=report_id,
        role=ParticipantRole(role),
        linked_user_id=linked_user_id,
        source_label=label,
        names=names,
        norms=norms,
    )


def _numeric_rule(norm: str, candidates: list[ParticipantCandidate]) -> list[ParticipantCandidate]:
    if not _DIGITS.fullmatch(norm):
        return []
    number = int(norm)
    matched = [c for c in candidates if c.linked_user_id is not None and int(c.linked_user_id) == number]
    if not matched:
        matched = [c for c in candidates if int(c.id) == number]
    return matched


def _exact_rule(norm: str, candidates: list[ParticipantCandidate]) -> list[ParticipantCandidate]:
    if not norm:
        return []
    return [c for c in candidates if norm in c.norms]


def _last_name_rule(norm: str, candidates: list[ParticipantCandidate]) -> list[ParticipantCandidate]:
    last = last_name_token(norm)
    if not last:
        return []
    return [c for c in candidates if any(last in n for n in c.norms)]


def _sole_candidate_rule(norm: str, candidates: list[ParticipantCandidate]) -> list[ParticipantCandidate]:
    return list(candidates) if len(candidates) == 1 else []


RESOLUTION_RULES: tuple[tuple[ResolutionRule, RuleFn], ...] = (
    (ResolutionRule.NUMERIC_ID, _numeric_rule),
    (ResolutionRule.EXACT_NAME, _exact_rule),
    (ResolutionRule.LAST_NAME, _last_name_rule),
    (ResolutionRule.SOLE_CANDIDATE, _sole_candidate_rule),
)


def resolve(
    raw_name: str,
    score: Optional[int],
    candidates: Iterable[ParticipantCandidate],
    role: ParticipantRole = ParticipantRole.TRAINEE,
) -> Resolution:
    """
    Resolve one extracted name to a participant of the given role.

    `score` travels with the name for logging only; it never affects which
    candidate matches.
    """
    pool = [c for c in candidates if c.role == role]
    norm = normalize_name(raw_name)

    for rule, fn in RESOLUTION_RULES:
        matched = fn(norm, pool)
        if not matched:
            continue
        ids = [c.id for c in matched]
        kind = ResolutionKind.UNIQUE if len(ids) == 1 else ResolutionKind.AMBIGUOUS
        return Resolution(kind=kind, participant_ids=ids, rule=rule)

    logger.debug(f"no {role.value} candidate for \"{raw_name}\" (score {score}) among {len(pool)}")
    return Resolution(kind=ResolutionKind.NO_MATCH)
