"""
Step 4 — EPA identifier extraction (report enrichment).
Collect EPA ids/numbers mentioned in the personnel section, in first-seen order.
"""
from __future__ import annotations

import re

from apps.worker.steps.step02_personnel import personnel_section

# One id, or several joined by single separators ("1, 2 & 3-4")
_ID_GROUP = r"([0-9][0-9\-]*(?:[ \t,;&/]?[0-9][0-9\-]*)*)"
_GROUP_SPLIT = re.compile(r"[\s,;/&]+")

# Ordered patterns; all of them contribute, earlier ones first
_EPA_ID_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("trainee_epa", re.compile(r"Trainee\s*EPA\b[^\d#\n\r:-]*[:#-]?\s*" + _ID_GROUP, re.IGNORECASE)),
    ("generic_epa", re.compile(r"\bEPA\b[^\d#\n\r:-]*[:#-]?\s*" + _ID_GROUP, re.IGNORECASE)),
    ("hash", re.compile(r"#\s*([0-9][0-9\-]*)")),
    ("long_number", re.compile(r"\b([0-9]{4,})\b")),
)


def _clean_id(token: str) -> str:
    return re.sub(r"[^0-9\-]", "", token).strip("-")


def extract_epa_ids(text: str | None) -> list[str]:
    if not text or not isinstance(text, str):
        return []
    scope = personnel_section(text) or text

    found: dict[str, None] = {}
    for _name, pattern in _EPA_ID_PATTERNS:
        for m in pattern.finditer(scope):
            for token in _GROUP_SPLIT.split(m.group(1)):
                cleaned = _clean_id(token)
                if cleaned:
                    found.setdefault(cleaned, None)
    return list(found)
