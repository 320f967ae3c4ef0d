import json
import time

import httpx
import pytest
from sqlalchemy import func, select

from conftest import make_record
from listings.config import settings
from listings.errors import BusinessNotFoundError
from listings.models import Business, Review, ReviewAnalysisTag
from listings.services.import_service import import_businesses
from listings.services.review_analysis_service import (
    aggregate_review_insights,
    get_analysis_tags_for_business,
    insights_for_plan_tier,
    process_business_reviews,
    tiered_keywords,
    update_business_ai_scores,
)
from listings.services.review_analyzers import (
    GeminiReviewAnalyzer,
    HeuristicReviewAnalyzer,
    ReviewAnalyzer,
    close_shared_review_analyzer,
    get_review_analyzer,
    get_shared_review_analyzer,
)
from listings.services.review_scorecard import ReviewScorecard


def _card(speed, value, quality, reliability, expertise, impact, keywords=(), quotes=(), confidence=70.0):
    return ReviewScorecard.model_validate(
        {
            "business_performance": {
                "response_quality": {"response_speed_score": speed},
                "value_delivery": {"value_score": value},
                "problem_resolution": {"difficulty_level": reliability},
            },
            "quality_indicators": {"excellence": {"intensity": quality}},
            "service_excellence": {"expertise": {"technical_competency": expertise}},
            "customer_experience": {"emotional_impact": {"emotional_intensity": impact}},
            "keywords": list(keywords),
            "customer_quotes": list(quotes),
            "confidence": confidence,
        }
    )


@pytest.fixture()
def business(db, category):
    import_businesses(db, [make_record("Joe's Plumbing", category_id=category.id)])
    return db.execute(select(Business)).scalar_one()


def _add_reviews(db, business, count, rating=5, comment="Quick and professional service, highly recommend them to anyone!"):
    for index in range(count):
        db.add(Review(business_id=business.id, author_name=f"Reviewer {index}", rating=rating, comment=comment))
    db.commit()


def test_scorecard_defaults_are_complete():
    card = ReviewScorecard()
    assert card.speed == 5.0
    assert card.customer_impact == 5.0
    assert card.sentiment.classification == "neutral"
    assert card.confidence == 70.0
    assert card.competitive_markers.comparison_mentions.comparison_count == 0


def test_heuristic_positive_review():
    card = HeuristicReviewAnalyzer().analyze("Quick and professional service, highly recommend!", 5)

    assert card.speed == 9.0
    assert card.quality == 10.0
    assert card.recommendation_strength.advocacy_score == 9.0
    assert card.sentiment.classification == "positive"
    assert card.keywords == ["professional", "quick", "recommend"]
    assert "response_time" in card.topics


def test_heuristic_negative_review():
    card = HeuristicReviewAnalyzer().analyze("They never showed up.", 2)

    assert card.value == 5.0
    assert card.quality == 2.0
    assert card.reliability == 4.5
    assert card.sentiment.classification == "negative"
    assert card.customer_quotes == []


def test_aggregation_means_keywords_quotes_and_confidence():
    long_quote = "They fixed our water heater in under an hour."
    insights = aggregate_review_insights(
        [
            _card(8, 6, 10, 8, 9, 8.5, keywords=["quick", "clean"], quotes=[long_quote, "Too short"], confidence=90),
            _card(10, 8, 6, 4, 7, 4.5, keywords=["quick"], confidence=0),
        ]
    )

    scores = insights.performance_scores
    assert (scores.speed, scores.value, scores.quality, scores.reliability) == (9, 7, 8, 6)
    assert (scores.expertise, scores.customer_impact) == (8, 6.5)
    assert insights.top_keywords == ["quick", "clean"]
    assert insights.customer_quotes == [long_quote]
    assert insights.analysis_count == 2
    assert insights.confidence == 80


def test_aggregation_of_nothing_is_none():
    assert aggregate_review_insights([]) is None


def test_business_scores_are_rounded(db, business):
    insights = aggregate_review_insights([_card(8.25, 7.04, 9, 6, 5, 5, keywords=list("abcdef"))])

    update_business_ai_scores(db, business, insights)
    db.refresh(business)

    assert business.speed_score == 8.3
    assert business.value_score == 7.0
    assert business.overall_score == 75.7
    assert business.ai_insights["basic"] == ["a", "b", "c"]
    assert business.ai_insights["enhanced"] == ["a", "b", "c", "d", "e"]
    assert business.ai_insights["premium"] == list("abcdef")
    assert business.last_ranking_update is not None


def test_insight_tiers_by_plan():
    ai_insights = tiered_keywords(["a", "b", "c", "d", "e", "f"])
    assert insights_for_plan_tier(ai_insights, "free") == ["a", "b", "c"]
    assert insights_for_plan_tier(ai_insights, "power") == ["a", "b", "c", "d", "e", "f"]
    assert insights_for_plan_tier(None, "pro") == []


def test_process_reviews_tags_each_review_and_throttles(db, business):
    _add_reviews(db, business, 12)
    pauses = []

    outcome = process_business_reviews(db, business.id, analyzer=HeuristicReviewAnalyzer(), sleep=pauses.append)

    assert outcome.success is True
    assert outcome.message == "Processed 12 reviews, skipped 0 existing"
    assert pauses == [settings.review_throttle_seconds]
    assert db.execute(select(func.count(ReviewAnalysisTag.id))).scalar_one() == 12
    db.refresh(business)
    assert business.speed_score == 9.0
    assert business.overall_score is not None


def test_process_reviews_skips_analyzed_reviews(db, business):
    _add_reviews(db, business, 3)
    process_business_reviews(db, business.id, analyzer=HeuristicReviewAnalyzer(), sleep=lambda _: None)

    outcome = process_business_reviews(db, business.id, analyzer=HeuristicReviewAnalyzer(), sleep=lambda _: None)

    assert outcome.message == "Processed 0 reviews, skipped 3 existing"
    assert outcome.insights is None


def test_reanalysis_updates_tags_in_place(db, business):
    _add_reviews(db, business, 2)
    process_business_reviews(db, business.id, analyzer=HeuristicReviewAnalyzer(), sleep=lambda _: None)
    process_business_reviews(db, business.id, skip_existing=False, analyzer=HeuristicReviewAnalyzer(), sleep=lambda _: None)

    assert len(get_analysis_tags_for_business(db, business.id)) == 2


def test_process_reviews_continues_past_failing_review(db, business):
    _add_reviews(db, business, 3)

    class FlakyAnalyzer(ReviewAnalyzer):
        calls = 0

        def analyze(self, text, rating, category="general"):
            self.calls += 1
            if self.calls == 2:
                raise RuntimeError("bad review")
            return HeuristicReviewAnalyzer().analyze(text, rating, category)

    outcome = process_business_reviews(db, business.id, analyzer=FlakyAnalyzer(), sleep=lambda _: None)

    assert outcome.success is True
    assert outcome.insights.analysis_count == 2


def test_process_reviews_without_reviews(db, business):
    outcome = process_business_reviews(db, business.id, analyzer=HeuristicReviewAnalyzer())
    assert outcome.success is False
    assert outcome.message == "No reviews found for this business"


def test_process_reviews_unknown_business(db):
    with pytest.raises(BusinessNotFoundError):
        process_business_reviews(db, 404)


def _gemini(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiReviewAnalyzer(
        api_key="test-key",
        model="gemini-test",
        base_url="https://gemini.test/v1beta",
        timeout_seconds=1,
        client=client,
    )


def _completion(payload):
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}


def test_gemini_scorecard_is_parsed():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        card = _card(6.5, 6, 7, 7, 8, 6, keywords=["thorough"]).model_dump(by_alias=True)
        return httpx.Response(200, json=_completion(card))

    card = _gemini(handler).analyze("Thorough work.", 4, "plumbing")

    assert seen == {"url": "https://gemini.test/v1beta/models/gemini-test:generateContent", "key": "test-key"}
    assert card.speed == 6.5
    assert card.keywords == ["thorough"]


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, text="unavailable"),
        lambda request: httpx.Response(200, json=_completion({"keywords": ["x"]})),
        lambda request: httpx.Response(200, json={"candidates": []}),
    ],
)
def test_gemini_falls_back_to_heuristic(handler):
    card = _gemini(handler).analyze("Quick fix, highly recommend!", 5)
    assert card.speed == 9.0
    assert card.recommendation_strength.advocacy_score == 9.0


def test_gemini_timeout_falls_back_to_heuristic():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    card = _gemini(handler).analyze("Slow and rude.", 1)
    assert card.sentiment.classification == "negative"


def test_provider_selection():
    assert isinstance(get_review_analyzer(), HeuristicReviewAnalyzer)

    analyzer = get_review_analyzer(settings.model_copy(update={"ai_provider": "gemini", "gemini_api_key": "key"}))
    assert isinstance(analyzer, GeminiReviewAnalyzer)
    assert analyzer.model_version == settings.gemini_model
    analyzer.close()

    keyless = settings.model_copy(update={"ai_provider": "gemini", "gemini_api_key": None})
    assert isinstance(get_review_analyzer(keyless), HeuristicReviewAnalyzer)


def test_gemini_slow_response_hits_total_deadline():
    def handler(request):
        time.sleep(0.5)
        return httpx.Response(200, json=_completion(_card(1, 1, 1, 1, 1, 1).model_dump(by_alias=True)))

    analyzer = GeminiReviewAnalyzer(
        api_key="test-key",
        model="gemini-test",
        base_url="https://gemini.test/v1beta",
        timeout_seconds=0.05,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    started = time.monotonic()
    card = analyzer.analyze("Quick fix, highly recommend!", 5)
    elapsed = time.monotonic() - started
    analyzer.close()

    assert elapsed < 0.4
    assert card.speed == 9.0


def test_review_analyzer_is_abstract():
    with pytest.raises(TypeError):
        ReviewAnalyzer()
    HeuristicReviewAnalyzer().close()


def test_shared_analyzer_is_reused_until_closed(monkeypatch):
    class ClosingAnalyzer(HeuristicReviewAnalyzer):
        closed = False

        def close(self):
            self.closed = True

    monkeypatch.setattr("listings.services.review_analyzers.get_review_analyzer", ClosingAnalyzer)
    close_shared_review_analyzer()

    first = get_shared_review_analyzer()
    assert get_shared_review_analyzer() is first

    close_shared_review_analyzer()
    assert first.closed
    assert get_shared_review_analyzer() is not first
    close_shared_review_analyzer()
