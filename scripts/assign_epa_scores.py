"""
Scan reports for "<Trainee Name> Trainee EPA: <1-5>" lines, match each parsed
name to one report participant of the same report, and insert/update that
participant's EPA score.

Usage:
    python scripts/assign_epa_scores.py --limit 500            # preview, no writes
    python scripts/assign_epa_scores.py --limit 500 --write

Ambiguous and unmatched names are skipped and written to the review file.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pydantic import ValidationError

from packages.shared.config import DEFAULT_REPORT_LIMIT, PipelineConfig
from apps.worker.pipeline import run_epa_assignment

logger = logging.getLogger("epatrack.assign")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assign parsed Trainee EPA scores to report participants.")
    parser.add_argument("--limit", type=int, default=DEFAULT_REPORT_LIMIT, help="Number of reports to scan")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--write", action="store_true", help="Insert/update epa_scores")
    mode.add_argument("--dry-run", action="store_true", help="Only log actions (default)")
    parser.add_argument("--review-out", type=Path, default=None, help="Where to write unmatched cases (JSON)")
    parser.add_argument("--workers", type=int, default=None, help="Process reports on N threads")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL / RDS_*")
    parser.add_argument("--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = PipelineConfig.from_env(
            database_url=args.database_url,
            report_limit=args.limit,
            write=bool(args.write),
            workers=args.workers,
            review_output_path=args.review_out,
        )
    except ValidationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 2

    try:
        summary = run_epa_assignment(config)
    except KeyboardInterrupt:
        logger.info("Stopped by user request; completed reports are committed.")
        return 130

    print(summary.model_dump_json(indent=2))
    logger.info("[DONE] Processing complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
