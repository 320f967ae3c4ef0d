from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from listings.config import settings
from listings.database import SessionLocal
from listings.errors import BatchNotFoundError
from listings.services.import_validation_service import validate_import_batch
from listings.telemetry.logging_utils import configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the post-import validation suite for an import batch.")
    parser.add_argument("batch_id", type=int)
    parser.add_argument("--full", action="store_true", help="Include the SEO compliance checks")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(settings.log_level, settings.perf_log_level)

    with SessionLocal() as session:
        try:
            results = validate_import_batch(session, args.batch_id, run_full_validation=args.full)
        except BatchNotFoundError as exc:
            raise SystemExit(str(exc)) from exc

    print(f"Validation {results.id} for batch {results.batch_id}: {results.status}, overall {results.overall_score}/100")
    for name, category in results.categories:
        state = "PASS" if category.passed else "FAIL"
        print(f"  {name:<20} {category.score:>3}  {state}")
    for recommendation in results.recommendations:
        print(f"  - {recommendation}")


if __name__ == "__main__":
    main()
