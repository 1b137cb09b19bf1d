"""
Step 2 — Procedural Personnel extraction.
Locate the "Procedural Personnel" excerpt and pull the attending and trainee
name lists out of its role-roster lines.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Optional

from apps.worker.lib.name_normalize import dedupe_preserving_order, split_names

# Body only (header excluded), up to the next blank line or end of text
_PERSONNEL_BODY = re.compile(
    r"Procedural\s+Personnel[ \t]*:?(.*?)(?:\n\s*\n|\Z)", re.IGNORECASE | re.DOTALL
)
# Whole section including the header line
_PERSONNEL_SECTION = re.compile(
    r"Procedural\s+Personnel[ \t]*:?.*?(?=\n\s*\n|\Z)", re.IGNORECASE | re.DOTALL
)

_APP_LINE = re.compile(
    r"^[ \t]*Advanced\s+practice\s+provider(?:\(s\))?\s*:[^\n]*$", re.IGNORECASE | re.MULTILINE
)
_APP_PHRASE = re.compile(r"Advanced\s*practice\s*provider\b(?:\(s\))?\s*[:.]?\s*", re.IGNORECASE)

_LEADING_TITLE = re.compile(
    r"^\s*(?:Dr\.?|Doctor|Prof\.?|Professor|Mr\.?|Mrs\.?|Ms\.?)\s+", re.IGNORECASE
)
_PARENTHETICAL = re.compile(r"\([^)]*\)")
_ANY_CREDENTIAL = re.compile(r"(?:,\s*)?\b(?:MD|DO|PhD|RN|PA|NP|MBBS)\b\.?", re.IGNORECASE)
_TRAILING_CREDENTIAL = re.compile(r"(?:,\s*)?\b(?:MD|DO|PhD|RN|PA|NP|MBBS)\.?$", re.IGNORECASE)
_TRAILING_DOTS = re.compile(r"[.\s]+$")
_EMPTY_VALUES = {"none", "n/a"}

# ── Attending ────────────────────────────────────────────────────────────

_ATTENDING_WORD = re.compile(r"\bAttending\b", re.IGNORECASE)
_ATTENDING_PREFIX = re.compile(
    r"^.*\bAttending\b(?:\s*\(s\))?(?:\s+physician(?:s)?)?(?:\s*\(s\))?[:\-]?\s*", re.IGNORECASE
)
# Label with its value possibly on the following line
_ATTENDING_LABEL = re.compile(
    r"Attending(?:s)?(?:\s*\(s\))?(?:\s+physician(?:s)?)?(?:\s*\(s\))?\s*[:\-]?\s*(.*)", re.IGNORECASE
)
_TRAINEE_EPA_TAIL = re.compile(r"Trainee\s+EPA\b.*", re.IGNORECASE)

# ── Trainee ──────────────────────────────────────────────────────────────

_RESIDENT_PGY_TOKEN = re.compile(r"ResidentPGY[0-9/\-]*[:.]?\s*", re.IGNORECASE)
# Roster labels, most specific first
_TRAINEE_LABELS: tuple[re.Pattern, ...] = (
    re.compile(r"Resident\(s\)\s*PGY6/?7\s*:[ \t]*([^\n]*)", re.IGNORECASE),
    re.compile(r"Resident\(s\)\s*PGY1-5\s*:[ \t]*([^\n]*)", re.IGNORECASE),
    re.compile(r"Resident\(s\)\s*PGY[0-9/\- ]+:[ \t]*([^\n]*)", re.IGNORECASE),
)
_HEADER_LINE = re.compile(r"^[A-Za-z\s]{1,40}:$")
_LEADING_PGY = re.compile(r"^\s*PGY[0-9/\-]+[:.\s-]*", re.IGNORECASE)
# Where an unrelated field starts on the same line
_TRAINEE_FIELD_STOPS: tuple[re.Pattern, ...] = (
    re.compile(r"Trainee\s*EPA", re.IGNORECASE),
    re.compile(r"\bEPA\b", re.IGNORECASE),
    re.compile(r"Advanced\s*practice\s*provider\b", re.IGNORECASE),
)
_ROLE_PREFIXES: tuple[re.Pattern, ...] = (
    re.compile(r"^ResidentPGY[0-9/\-]*[:.]?\s*", re.IGNORECASE),
    re.compile(r"^Resident(?:\(s\)|\b)[:.]?\s*", re.IGNORECASE),
    re.compile(r"^PGY[0-9/\-]+[:.]?\s*", re.IGNORECASE),
    _APP_PHRASE,
    re.compile(r"Trainee\s*EPA\s*[:#]*\s*$", re.IGNORECASE),
    re.compile(r"Trainee\s*[:\-]*\s*$", re.IGNORECASE),
)
_TRAINEE_FILLER = {"none", "n/a", "resident", "resident(s)"}
_TRAINEE_FALLBACK = re.compile(
    r"([A-Z][A-Za-z.'\- \t]{1,100}?)\s+Trainee\s+EPA\s*[:#]?\s*[0-9][0-9\-]*", re.IGNORECASE
)
_STRUCTURAL_WORDS = re.compile(r"resident|trainee|epa", re.IGNORECASE)


def extract_personnel_block(text: str | None) -> str:
    """Text after the Procedural Personnel header, up to the next blank line."""
    if not text or not isinstance(text, str):
        return ""
    m = _PERSONNEL_BODY.search(text)
    return m.group(1) if m else ""


def personnel_section(text: str | None) -> Optional[str]:
    """The Procedural Personnel section including its header, or None."""
    if not text or not isinstance(text, str):
        return None
    m = _PERSONNEL_SECTION.search(text)
    return m.group(0) if m else None


def _strip_outer_punct(value: str) -> str:
    """Trim whitespace and Unicode punctuation from both ends."""
    start, end = 0, len(value)
    while start < end and (value[start].isspace() or unicodedata.category(value[start]).startswith("P")):
        start += 1
    while end > start and (value[end - 1].isspace() or unicodedata.category(value[end - 1]).startswith("P")):
        end -= 1
    return value[start:end]


def _clean_person(part: str) -> str:
    """Drop title, parenthetical asides and trailing credentials from one name."""
    name = _LEADING_TITLE.sub("", part)
    name = _PARENTHETICAL.sub("", name)
    name = _TRAILING_CREDENTIAL.sub("", name.strip())
    return name.strip()


def _attending_value(block: str) -> Optional[str]:
    for line in block.splitlines():
        m = _ATTENDING_WORD.search(line)
        if not m:
            continue
        colon = line.find(":", m.start())
        if colon != -1:
            return line[colon + 1:].strip()
        return _ATTENDING_PREFIX.sub("", line).strip()
    return None


def extract_attending(text: str | None) -> Optional[str]:
    """Attending name(s) from the personnel section, joined with '; '."""
    block = personnel_section(text)
    if not block:
        return None
    block = _APP_LINE.sub("", block)
    block = _APP_PHRASE.sub(" ", block)

    val = _attending_value(block)
    if not val:
        # Label alone on its line: the value is on the next one
        m = _ATTENDING_LABEL.search(block)
        if not m:
            return None
        val = m.group(1).split("\n")[0].strip()
    if not val:
        return None

    val = _TRAINEE_EPA_TAIL.sub("", val).strip()
    val = _TRAILING_DOTS.sub("", val).strip()

    cleaned: list[str] = []
    for part in split_names(val):
        name = _LEADING_TITLE.sub("", part)
        name = _PARENTHETICAL.sub("", name)
        name = _ANY_CREDENTIAL.sub("", name)
        name = _strip_outer_punct(name)
        if not name or name.lower() in _EMPTY_VALUES:
            continue
        cleaned.append(name)

    ordered = dedupe_preserving_order(cleaned)
    return "; ".join(ordered) if ordered else None


def _value_after_label(block: str, m: re.Match) -> str:
    raw = m.group(1).strip()
    if raw:
        return raw
    # Take the next non-empty line that is not itself a "Label:" header
    for line in block[m.end():].splitlines():
        candidate = line.strip()
        if candidate and not _HEADER_LINE.match(candidate):
            return candidate
    return ""


def _trainee_names_from_value(raw: str) -> list[str]:
    raw = _LEADING_PGY.sub("", raw)
    for stop in _TRAINEE_FIELD_STOPS:
        raw = stop.split(raw, maxsplit=1)[0]

    names: list[str] = []
    for part in split_names(raw):
        name = re.sub(r"\s+", " ", part).strip()
        name = _TRAILING_DOTS.sub("", name).strip()
        for prefix in _ROLE_PREFIXES:
            name = prefix.sub("", name)
        name = _clean_person(name)
        if not name or name.lower() in _TRAINEE_FILLER:
            continue
        names.append(name)
    return names


def _trainee_fallback(block: str) -> Optional[str]:
    m = _TRAINEE_FALLBACK.search(block)
    if not m:
        return None
    name = m.group(1).strip()
    name = _RESIDENT_PGY_TOKEN.sub("", name).strip()
    name = _APP_PHRASE.sub("", name).strip()
    name = _clean_person(name)
    if name and not _STRUCTURAL_WORDS.search(name):
        return name
    return None


def extract_trainee(text: str | None) -> Optional[str]:
    """Trainee name(s) from the roster lines of the personnel section."""
    block = personnel_section(text)
    if not block:
        return None
    block = _APP_LINE.sub("", block)
    block = _RESIDENT_PGY_TOKEN.sub("", block)

    trainees: list[str] = []
    for label in _TRAINEE_LABELS:
        for m in label.finditer(block):
            raw = _value_after_label(block, m)
            if not raw or raw.lower() in _EMPTY_VALUES:
                continue
            trainees.extend(_trainee_names_from_value(raw))

    if trainees:
        return "; ".join(dedupe_preserving_order(trainees))
    return _trainee_fallback(block)
