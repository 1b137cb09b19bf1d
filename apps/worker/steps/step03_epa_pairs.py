"""
Step 3 — EPA name/score pair extraction.

Strategies run in order and the first one that finds anything wins:
1. personnel: "<name> Trainee EPA: <score>" inside the Procedural Personnel
   excerpt (the whole text when the report has no such header)
2. full_text: the same pattern over the whole text, merged with the reversed
   form "Trainee EPA: <score> - <name>". Whichever reading pairs more markers
   owns them; the other only fills markers and names it left free.

A name and its marker always sit on the same line.

Scores outside 1-5 are dropped. Repeated mentions are kept; they resolve to
the same participant later and the assignment is idempotent.
"""
from __future__ import annotations

import re
from typing import Callable

from packages.shared.models import EpaPair, PairSource
from apps.worker.steps.step02_personnel import extract_personnel_block

# Name run: starts with a letter, stays on one line, bounded length
_NAME_RUN = r"[A-Za-z][A-Za-z.'\- \t,]{1,120}?"
_MARKER = r"Trainee\s+EPA\s*[:#\-]?\s*"
_SCORE = r"(\d+)(?!\d)"

_NAME_THEN_SCORE = re.compile(rf"({_NAME_RUN})[ \t]+{_MARKER}{_SCORE}", re.IGNORECASE)
# Reversed form: up to four name words on the same line, never running into
# the next marker
_NAME_WORD = r"(?!Trainee\b|EPA\b)[A-Za-z][A-Za-z.'\-]*"
_SCORE_THEN_NAME = re.compile(
    rf"{_MARKER}{_SCORE}[ \t]*[-–—: \t]{{0,4}}[ \t]*"
    rf"({_NAME_WORD}(?:[ \t,]+{_NAME_WORD}){{0,3}})",
    re.IGNORECASE,
)

# Report prefilter: anything worth running the pipeline on
EPA_PREFILTER = re.compile(r"Trainee\s+EPA[:#]?\s*[1-5]", re.IGNORECASE)

MIN_SCORE = 1
MAX_SCORE = 5


def reorder_last_first(raw_name: str) -> str:
    """'Doe, Jane' -> 'Jane Doe'. Names without a comma are returned stripped."""
    name = raw_name.strip()
    if "," not in name:
        return name
    parts = [p.strip() for p in name.split(",") if p.strip()]
    if not parts:
        return ""
    return " ".join(parts[1:] + parts[:1])


def _make_pair(raw_name: str, score_text: str, source: PairSource) -> EpaPair | None:
    score = int(score_text)
    if score < MIN_SCORE or score > MAX_SCORE:
        return None
    name = reorder_last_first(raw_name).strip(" \t.,-'")
    if not name:
        return None
    return EpaPair(raw_name=name, score=score, source=source)


def _matches(pattern: re.Pattern, scope: str, name_group: int, score_group: int, source: PairSource):
    """(score position, name span, pair or None) for every match of `pattern`."""
    found = []
    for m in pattern.finditer(scope):
        pair = _make_pair(m.group(name_group), m.group(score_group), source)
        found.append((m.start(score_group), m.span(name_group), pair))
    return found


def _overlaps(span: tuple[int, int], spans: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in spans)


def _personnel_strategy(text: str) -> list[EpaPair]:
    scope = extract_personnel_block(text) or text
    found = _matches(_NAME_THEN_SCORE, scope, 1, 2, PairSource.PERSONNEL)
    return [pair for _pos, _span, pair in found if pair]


def _full_text_strategy(text: str) -> list[EpaPair]:
    forward = _matches(_NAME_THEN_SCORE, text, 1, 2, PairSource.FULL_TEXT)
    reverse = _matches(_SCORE_THEN_NAME, text, 2, 1, PairSource.FULL_TEXT)

    # The reading that pairs more markers decides who owns each name; ties go forward
    def valid(found):
        return sum(1 for _pos, _span, pair in found if pair)

    primary, secondary = (reverse, forward) if valid(reverse) > valid(forward) else (forward, reverse)
    claimed_scores = {pos for pos, _span, _pair in primary}
    claimed_names = [span for _pos, span, pair in primary if pair]
    merged = [(pos, pair) for pos, _span, pair in primary if pair]
    for pos, span, pair in secondary:
        if pair and pos not in claimed_scores and not _overlaps(span, claimed_names):
            merged.append((pos, pair))
            claimed_scores.add(pos)
            claimed_names.append(span)
    merged.sort(key=lambda item: item[0])
    return [pair for _pos, pair in merged]


PAIR_STRATEGIES: tuple[tuple[PairSource, Callable[[str], list[EpaPair]]], ...] = (
    (PairSource.PERSONNEL, _personnel_strategy),
    (PairSource.FULL_TEXT, _full_text_strategy),
)


def extract_epa_pairs(text: str | None) -> list[EpaPair]:
    """All (name, score) pairs from the first strategy that finds any."""
    if not text or not isinstance(text, str):
        return []
    for _source, strategy in PAIR_STRATEGIES:
        pairs = strategy(text)
        if pairs:
            return pairs
    return []


def has_epa_marker(text: str | None) -> bool:
    return bool(text) and bool(EPA_PREFILTER.search(text))
