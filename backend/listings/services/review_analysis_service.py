from __future__ import annotations

import logging
import math
import time
from collections import Counter
from collections.abc import Callable, Sequence
from types import MappingProxyType
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..errors import BusinessNotFoundError
from ..models import Business, Review, ReviewAnalysisTag
from ..schemas import BusinessInsights, PerformanceScores, ReviewAnalysisOutcome
from ..telemetry import record_operation_summary, timed_stage
from .review_analyzers import ReviewAnalyzer, get_review_analyzer
from .review_scorecard import DEFAULT_CONFIDENCE, ReviewScorecard

logger = logging.getLogger(__name__)

TOP_KEYWORD_LIMIT = 10
QUOTE_LIMIT = 5
MIN_QUOTE_LENGTH = 30
# Rescales the 0-10 dimension sum onto 0-100.
OVERALL_SCORE_FACTOR = 2.5

INSIGHT_TIER_BY_PLAN: MappingProxyType[str, str] = MappingProxyType(
    {
        "free": "basic",
        "starter": "enhanced",
        "pro": "professional",
        "power": "premium",
    }
)


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def _round_tenth(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def aggregate_review_insights(scorecards: Sequence[ReviewScorecard]) -> BusinessInsights | None:
    """Fold per-review scorecards into one business-level profile."""
    if not scorecards:
        return None

    scores = PerformanceScores(
        speed=_mean([card.speed for card in scorecards]),
        value=_mean([card.value for card in scorecards]),
        quality=_mean([card.quality for card in scorecards]),
        reliability=_mean([card.reliability for card in scorecards]),
        expertise=_mean([card.expertise for card in scorecards]),
        customer_impact=_mean([card.customer_impact for card in scorecards]),
    )

    keyword_counts = Counter(keyword for card in scorecards for keyword in card.keywords)
    top_keywords = [keyword for keyword, _count in keyword_counts.most_common(TOP_KEYWORD_LIMIT)]
    quotes = [quote for card in scorecards for quote in card.customer_quotes if quote and len(quote) > MIN_QUOTE_LENGTH]

    return BusinessInsights(
        performance_scores=scores,
        top_keywords=top_keywords,
        customer_quotes=quotes[:QUOTE_LIMIT],
        analysis_count=len(scorecards),
        confidence=_mean([card.confidence or DEFAULT_CONFIDENCE for card in scorecards]),
        last_analyzed=utcnow(),
    )


def tiered_keywords(keywords: Sequence[str]) -> dict[str, list[str]]:
    return {
        "basic": list(keywords[:3]),
        "enhanced": list(keywords[:5]),
        "professional": list(keywords),
        "premium": list(keywords),
    }


def insights_for_plan_tier(ai_insights: dict[str, Any] | None, plan_tier: str) -> list[str]:
    if not ai_insights:
        return []
    tier = INSIGHT_TIER_BY_PLAN.get(plan_tier, "basic")
    return list(ai_insights.get(tier) or [])


def update_business_ai_scores(db: Session, business: Business, insights: BusinessInsights | None) -> None:
    if insights is None:
        return

    scores = insights.performance_scores
    business.speed_score = _round_tenth(scores.speed)
    business.value_score = _round_tenth(scores.value)
    business.quality_score = _round_tenth(scores.quality)
    business.reliability_score = _round_tenth(scores.reliability)
    business.overall_score = _round_tenth(
        (scores.speed + scores.value + scores.quality + scores.reliability) * OVERALL_SCORE_FACTOR
    )
    business.ai_insights = tiered_keywords(insights.top_keywords)
    business.last_ranking_update = utcnow()
    business.updated_at = business.last_ranking_update
    db.commit()


def _fetch_review_pages(db: Session, business_id: int, batch_size: int) -> list[Review]:
    reviews: list[Review] = []
    offset = 0
    for _page in range(settings.review_page_limit):
        stmt = (
            select(Review)
            .where(Review.business_id == business_id)
            .order_by(Review.id)
            .offset(offset)
            .limit(batch_size)
        )
        page = list(db.execute(stmt).scalars())
        reviews.extend(page)
        if len(page) < batch_size:
            break
        offset += batch_size
    return reviews


def _has_tag(db: Session, review_id: int) -> bool:
    stmt = select(ReviewAnalysisTag.id).where(ReviewAnalysisTag.review_id == review_id).limit(1)
    return db.execute(stmt).first() is not None


def _store_tag(db: Session, review: Review, scorecard: ReviewScorecard, model_version: str) -> ReviewAnalysisTag:
    stmt = select(ReviewAnalysisTag).where(
        ReviewAnalysisTag.review_id == review.id,
        ReviewAnalysisTag.business_id == review.business_id,
    )
    tag = db.execute(stmt).scalar_one_or_none()
    if tag is None:
        tag = ReviewAnalysisTag(review_id=review.id, business_id=review.business_id)
        db.add(tag)

    now = utcnow()
    tag.model_version = model_version
    tag.analysis_date = now
    tag.quality_indicators = scorecard.quality_indicators.model_dump()
    tag.service_excellence = scorecard.service_excellence.model_dump()
    tag.customer_experience = scorecard.customer_experience.model_dump()
    tag.competitive_markers = scorecard.competitive_markers.model_dump()
    tag.business_performance = scorecard.business_performance.model_dump()
    tag.recommendation_strength = scorecard.recommendation_strength.model_dump()
    tag.sentiment = scorecard.sentiment.model_dump()
    tag.keywords = list(scorecard.keywords)
    tag.topics = list(scorecard.topics)
    tag.customer_quotes = list(scorecard.customer_quotes)
    tag.confidence_score = scorecard.confidence
    tag.created_at = tag.created_at or now
    db.commit()
    return tag


def process_business_reviews(
    db: Session,
    business_id: int,
    batch_size: int | None = None,
    skip_existing: bool = True,
    analyzer: ReviewAnalyzer | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReviewAnalysisOutcome:
    """Analyze a business's reviews and write the aggregate onto the business.

    Raises BusinessNotFoundError for an unknown business; any other failure
    outside the per-review loop is reported as an unsuccessful outcome.
    """
    business = db.get(Business, business_id)
    if business is None:
        raise BusinessNotFoundError(business_id)

    batch_size = batch_size or settings.review_batch_size
    analyzer = analyzer or get_review_analyzer()
    category = business.category.name if business.category is not None else "general"

    try:
        reviews = _fetch_review_pages(db, business_id, batch_size)
        if not reviews:
            return ReviewAnalysisOutcome(success=False, message="No reviews found for this business")
        logger.info("Analyzing %s reviews for business id=%s", len(reviews), business_id)

        processed = 0
        skipped = 0
        failed = 0
        scorecards: list[ReviewScorecard] = []
        with timed_stage("review_analysis"):
            for review in reviews:
                try:
                    if skip_existing and _has_tag(db, review.id):
                        skipped += 1
                        continue

                    scorecard = analyzer.analyze(review.comment or "", review.rating, category)
                    _store_tag(db, review, scorecard, analyzer.model_version)
                except Exception:
                    db.rollback()
                    failed += 1
                    logger.exception("Error processing review %s", review.id)
                    continue

                scorecards.append(scorecard)
                processed += 1
                if processed % settings.review_throttle_every == 0:
                    sleep(settings.review_throttle_seconds)

        insights = aggregate_review_insights(scorecards)
        update_business_ai_scores(db, business, insights)
    except Exception as exc:
        db.rollback()
        logger.exception("Review analysis for business id=%s failed", business_id)
        return ReviewAnalysisOutcome(success=False, message=str(exc))

    record_operation_summary("process_business_reviews", len(reviews), failed)
    return ReviewAnalysisOutcome(
        success=True,
        message=f"Processed {processed} reviews, skipped {skipped} existing",
        insights=insights,
    )


def get_analysis_tags_for_business(db: Session, business_id: int) -> list[ReviewAnalysisTag]:
    stmt = (
        select(ReviewAnalysisTag)
        .where(ReviewAnalysisTag.business_id == business_id)
        .order_by(ReviewAnalysisTag.analysis_date.desc(), ReviewAnalysisTag.id.desc())
    )
    return list(db.execute(stmt).scalars())
