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
from listings.errors import BusinessNotFoundError
from listings.models import Business
from listings.services.review_analysis_service import process_business_reviews
from listings.services.review_analyzers import get_review_analyzer
from listings.telemetry.logging_utils import configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze reviews for every active business.")
    parser.add_argument("--business-id", type=int, action="append", dest="business_ids")
    parser.add_argument("--batch-size", type=int, default=settings.review_batch_size)
    parser.add_argument("--reanalyze", action="store_true", help="Re-run reviews that already have tags")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(settings.log_level, settings.perf_log_level)
    analyzer = get_review_analyzer()

    try:
        with SessionLocal() as session:
            business_ids = args.business_ids or list(
                session.execute(select(Business.id).where(Business.active.is_(True)).order_by(Business.id)).scalars()
            )
            succeeded = 0
            for business_id in business_ids:
                try:
                    outcome = process_business_reviews(
                        session,
                        business_id,
                        batch_size=args.batch_size,
                        skip_existing=not args.reanalyze,
                        analyzer=analyzer,
                    )
                except BusinessNotFoundError as exc:
                    print(exc)
                    continue
                print(f"Business {business_id}: {outcome.message}")
                if outcome.success:
                    succeeded += 1
    finally:
        analyzer.close()

    print(f"Analyzed {succeeded}/{len(business_ids)} businesses.")


if __name__ == "__main__":
    main()
