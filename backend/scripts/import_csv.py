from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from listings.config import settings
from listings.database import SessionLocal
from listings.models import Category
from listings.services.csv_import_service import run_csv_import
from listings.services.source_priority import DataSource
from listings.telemetry.logging_utils import configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import a Google Maps style CSV export as one tracked batch.")
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--category", required=True, help="Category slug the businesses belong to")
    parser.add_argument("--source", default=DataSource.CSV_UPLOAD.value)
    parser.add_argument("--imported-by", default=None)
    parser.add_argument("--allow-duplicates", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(settings.log_level, settings.perf_log_level)

    with SessionLocal() as session:
        category = session.execute(select(Category).where(Category.slug == args.category)).scalar_one_or_none()
        if category is None:
            raise SystemExit(f"Unknown category slug: {args.category}")

        outcome = run_csv_import(
            session,
            args.csv_path,
            source=args.source,
            imported_by=args.imported_by,
            category_id=category.id,
            category_slug=category.slug,
            skip_duplicates=not args.allow_duplicates,
        )

    result = outcome.result
    print(
        f"Batch {outcome.batch_id} {outcome.status}: {result.successful} created, "
        f"{result.skipped} duplicates, {result.failed} failed, {len(outcome.rejected_rows)} rows rejected."
    )
    for message in outcome.rejected_rows + result.errors:
        print(f"  {message}")
    if outcome.status == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
