"""
Derive scan_type / epa / attending / trainee for reports and store them in the
reports table's enrichment columns.

Usage:
    python scripts/enrich_reports.py --limit 100            # print stats only
    python scripts/enrich_reports.py --limit 100 --write    # keep existing values where nothing was found
    python scripts/enrich_reports.py --limit 100 --write --force
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

from packages.shared.config import PipelineConfig
from apps.worker.enrich import run_enrichment

logger = logging.getLogger("epatrack.enrich")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Enrich reports with parsed scan type, EPA, attending and trainee.")
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--write", action="store_true", help="Write enrichment columns")
    parser.add_argument("--force", action="store_true", help="Overwrite columns even when nothing was found")
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        config = PipelineConfig.from_env(
            database_url=args.database_url, report_limit=args.limit, write=args.write,
        )
    except ValidationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 2

    summary = run_enrichment(config, force=args.force)
    print(summary.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
