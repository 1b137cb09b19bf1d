"""
Review sinks: where unresolved EPA assignments go for human follow-up.
A run hands its whole batch over once, at the end.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from packages.shared.models import ReviewCase

logger = logging.getLogger(__name__)


class ReviewSink(Protocol):
    def write_batch(self, cases: list[ReviewCase]) -> Optional[str]:
        """Persist one run's review cases; returns where they went, if anywhere."""
        ...


def write_artifact_json(path: Path, obj) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2), encoding="utf-8")
    return path


class JsonFileReviewSink:
    """Writes the batch as one JSON array, replacing the previous run's file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def write_batch(self, cases: list[ReviewCase]) -> Optional[str]:
        payload = [case.model_dump(mode="json") for case in cases]
        path = write_artifact_json(self.path, payload)
        logger.info(f"Wrote {len(cases)} unmatched cases to {path}")
        return str(path)


class InMemoryReviewSink:
    """Collects batches in memory (tests, API previews)."""

    def __init__(self):
        self.batches: list[list[ReviewCase]] = []

    @property
    def cases(self) -> list[ReviewCase]:
        return [case for batch in self.batches for case in batch]

    def write_batch(self, cases: list[ReviewCase]) -> Optional[str]:
        self.batches.append(list(cases))
        return None
