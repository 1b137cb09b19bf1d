"""
Step 1 — Scan type classification (rule-based).
First matching rule wins; the list order is the priority.
"""
from __future__ import annotations

import re
from typing import Optional

from packages.shared.models import ScanType

# Priority-ordered classification rules: (pattern, scan_type)
SCAN_RULES: tuple[tuple[re.Pattern, ScanType], ...] = (
    (re.compile(r"\bct\b|\bcomputed tomography\b", re.IGNORECASE), ScanType.CT),
    (re.compile(r"\bmri\b|\bmagnetic resonance\b", re.IGNORECASE), ScanType.MRI),
    (re.compile(r"x-?ray|\bxr\b", re.IGNORECASE), ScanType.XRAY),
    (re.compile(r"ultrasound|\bus\b", re.IGNORECASE), ScanType.ULTRASOUND),
    (re.compile(r"\bpet\b", re.IGNORECASE), ScanType.PET),
)


def classify_scan(text: str | None) -> Optional[ScanType]:
    if not text or not isinstance(text, str):
        return None
    for pattern, scan_type in SCAN_RULES:
        if pattern.search(text):
            return scan_type
    return None
