"""
Person name normalization.

Maps a raw human name (as written in a report or a participant label) to the
canonical form used for matching:
- Title / honorific stripping (Dr, Professor, Mr, ...)
- Credential stripping (MD, DO, PhD, RN, PA, NP, MBBS)
- Training-level stripping (PGY1, PGY6/7, PGY1-5)
- Punctuation removal except apostrophe and hyphen
- Lowercase, collapsed whitespace, single-letter initials dropped

Deterministic and total: any input (including None) yields a string.
"""
from __future__ import annotations

import re

_TITLES = re.compile(r"\b(?:Dr|Doctor|Prof|Professor|Mr|Mrs|Ms)\b\.?", re.IGNORECASE)
_CREDENTIALS = re.compile(r"\b(?:MD|DO|PhD|RN|PA|NP|MBBS)\b\.?", re.IGNORECASE)
_TRAINING_LEVEL = re.compile(r"\bPGY[0-9/\-]*", re.IGNORECASE)
_CURLY_QUOTES = re.compile("[‘’“”]")
_PUNCTUATION = re.compile(r"[^\w\s'\-]")
_WHITESPACE = re.compile(r"\s+")

# Separators between several people in one field: ";", "/", "&" or the word "and"
NAME_SEPARATORS = re.compile(r"\s*(?:;|/|&|\band\b)\s*", re.IGNORECASE)


def normalize_name(raw: str | None) -> str:
    """Canonical comparison form of a person name."""
    if not raw or not isinstance(raw, str):
        return ""
    name = _TITLES.sub(" ", raw)
    name = _CREDENTIALS.sub(" ", name)
    name = _TRAINING_LEVEL.sub(" ", name)
    name = _CURLY_QUOTES.sub("'", name)
    name = _PUNCTUATION.sub(" ", name)
    name = _WHITESPACE.sub(" ", name).strip().lower()
    # Middle/first initials ("Jane A. Smith") do not distinguish people here
    tokens = [t for t in name.split(" ") if not (len(t) == 1 and t.isalpha())]
    return " ".join(tokens)


def last_name_token(normalized: str) -> str:
    """Final whitespace-delimited token of an already-normalized name."""
    if not normalized:
        return ""
    return normalized.split(" ")[-1]


def split_names(value: str | None) -> list[str]:
    """Split a multi-person field on the separator set, dropping empty parts."""
    if not value:
        return []
    return [p.strip() for p in NAME_SEPARATORS.split(value) if p and p.strip()]


def dedupe_preserving_order(items: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered
