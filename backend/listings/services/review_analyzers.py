from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import lru_cache
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings, settings
from ..errors import AnalysisProviderError
from .review_scorecard import ReviewScorecard

logger = logging.getLogger(__name__)

HEURISTIC_MODEL_VERSION = "mock-v1"

KEYWORD_TERMS = (
    "professional",
    "excellent",
    "quality",
    "fast",
    "quick",
    "reliable",
    "honest",
    "fair",
    "clean",
    "friendly",
    "knowledgeable",
    "efficient",
    "thorough",
    "responsive",
    "expert",
    "affordable",
    "recommend",
    "best",
    "amazing",
    "outstanding",
    "prompt",
    "courteous",
)

TOPIC_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("service_quality", ("repair", "fix", "maintenance")),
    ("customer_service", ("customer service", "friendly", "helpful")),
    ("pricing", ("price", "cost", "affordable", "expensive")),
    ("response_time", ("quick", "fast", "time", "prompt")),
    ("work_quality", ("quality", "excellent", "great")),
    ("expertise", ("knowledge", "expert", "professional")),
    ("trustworthiness", ("trust", "reliable", "honest")),
)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_COMPARISON_RE = re.compile(r"better|best|superior|top|excellent|outstanding")
_PROMPT_TEXT_LIMIT = 500


def _has(text: str, *terms: str) -> bool:
    return any(term in text for term in terms)


def extract_keywords(text: str) -> list[str]:
    lowered = text.lower()
    return [term for term in KEYWORD_TERMS if term in lowered]


def extract_topics(text: str) -> list[str]:
    lowered = text.lower()
    return [topic for topic, terms in TOPIC_RULES if _has(lowered, *terms)]


def extract_quotes(text: str, positive: bool) -> list[str]:
    if not positive:
        return []
    sentences = [part for part in _SENTENCE_SPLIT_RE.split(text) if len(part.strip()) > 20]
    return [sentence for sentence in sentences if len(sentence) < 150][:2]


class ReviewAnalyzer(ABC):
    model_version = HEURISTIC_MODEL_VERSION

    @abstractmethod
    def analyze(self, text: str, rating: float, category: str = "general") -> ReviewScorecard:
        """Score one review."""

    def close(self) -> None:
        pass


class HeuristicReviewAnalyzer(ReviewAnalyzer):
    """Keyword-driven scorecard with fixed scores per sentiment band."""

    def analyze(self, text: str, rating: float, category: str = "general") -> ReviewScorecard:
        t = text.lower()
        positive = rating >= 4
        quick = _has(t, "quick", "fast", "prompt", "immediate")
        expert = _has(t, "knowledge", "expert", "experienced", "skilled")

        if positive and "recommend" in t:
            advocacy = 9.0
        elif positive:
            advocacy = 7.0
        else:
            advocacy = 4.0

        if positive:
            classification = "positive"
        elif rating == 3:
            classification = "neutral"
        else:
            classification = "negative"

        payload: dict[str, Any] = {
            "quality_indicators": {
                "excellence": {
                    "mentioned": _has(t, "excellent", "outstanding", "exceptional", "best"),
                    "intensity": min(10.0, rating * 2) if positive else float(rating),
                    "exceeded_expectations": _has(t, "exceeded", "beyond", "more than expected"),
                },
                "first_time_success": {
                    "mentioned": _has(t, "first time", "one visit"),
                    "precision_work": _has(t, "precise", "accurate"),
                    "got_it_right_first": _has(t, "right", "correct"),
                    "no_return_visits": _has(t, "no return", "single visit"),
                    "single_visit_complete": _has(t, "one visit", "complete"),
                },
                "attention_to_detail": {
                    "mentioned": _has(t, "detail", "thorough"),
                    "thoroughness": 8.0 if positive else 5.0,
                    "cleanliness": _has(t, "clean", "tidy", "neat"),
                    "careful_work": _has(t, "careful", "meticulous", "precise"),
                },
            },
            "service_excellence": {
                "professionalism": {
                    "score": 9.0 if positive else 4.5,
                    "punctual": _has(t, "on time", "punctual", "prompt"),
                    "courteous": _has(t, "courteous", "polite", "respectful"),
                    "knowledgeable": _has(t, "knowledge", "expert", "skilled"),
                },
                "communication": {
                    "score": 8.0 if positive else 5.0,
                    "clear_explanation": _has(t, "explain", "clear"),
                    "responsive": quick,
                    "kept_informed": _has(t, "informed", "update"),
                },
                "expertise": {
                    "expert_referenced": expert,
                    "technical_competency": 9.0 if positive else 6.0,
                    "specialist_noted": _has(t, "specialist", "expert"),
                    "master_craftsman": _has(t, "master", "craftsman", "best in"),
                },
            },
            "customer_experience": {
                "emotional_impact": {
                    "stress_relief": _has(t, "stress", "relief"),
                    "peace_of_mind": _has(t, "peace of mind", "worry"),
                    "life_changing": "life" in t and _has(t, "chang", "sav"),
                    "emotional_intensity": 8.5 if positive else 4.5,
                },
                "business_impact": {
                    "saved_money": ("save" in t and "money" in t) or "affordable" in t,
                    "improved_efficiency": _has(t, "efficient", "quick", "fast"),
                    "prevented_disaster": _has(t, "prevent", "disaster", "avoid"),
                    "business_value_score": 8.5 if positive else 5.5,
                },
                "relationship_building": {
                    "trust_established": "trust" in t or rating >= 4.5,
                    "personal_connection": _has(t, "personal", "friendly"),
                    "loyalty_indicated": _has(t, "always", "only", "forever"),
                    "future_service_planned": _has(t, "next time", "again", "future"),
                    "relationship_score": 8.5 if positive else 5.5,
                },
            },
            "competitive_markers": {
                "comparison_mentions": {
                    "better_than_others": _has(t, "better than", "superior to", "unlike others", "best i've"),
                    "best_in_area": _has(t, "best in", "best around", "top", "#1"),
                    "tried_others_first": _has(t, "tried others", "other companies", "switched from", "finally found"),
                    "comparison_count": len(_COMPARISON_RE.findall(t)),
                },
                "market_position": {
                    "local_favorite": _has(t, "local favorite", "neighborhood", "community", "go-to"),
                    "industry_leader": _has(t, "leader", "industry", "standard", "benchmark"),
                    "go_to_provider": _has(t, "go to", "always use", "only use", "my guy"),
                },
                "differentiation": {
                    "unique_approach": _has(t, "unique", "different approach", "innovative", "creative"),
                    "special_equipment": _has(t, "equipment", "tools", "technology", "state-of-the-art"),
                    "innovation_mentioned": _has(t, "innovat", "modern", "latest", "cutting edge"),
                },
            },
            "business_performance": {
                "response_quality": {
                    "quick_response_mentioned": quick,
                    "same_day_service": _has(t, "same day", "today"),
                    "emergency_available": _has(t, "emergency", "urgent"),
                    "response_speed_score": 9.0 if _has(t, "quick", "fast") else 7.0,
                },
                "value_delivery": {
                    "fair_pricing": _has(t, "fair", "reasonable", "good price", "affordable"),
                    "worth_the_cost": _has(t, "worth", "value"),
                    "transparent_costs": _has(t, "transparent", "honest", "no surprise"),
                    "value_score": 8.5 if positive else 5.0,
                },
                "problem_resolution": {
                    "fixed_others_couldnt": _has(t, "others couldn't", "no one else"),
                    "complex_issue_resolved": _has(t, "complex", "difficult"),
                    "creative_solution": _has(t, "creative", "innovative"),
                    "difficulty_level": 8.0 if positive else 4.5,
                },
            },
            "recommendation_strength": {
                "would_recommend": _has(t, "recommend", "would use again") or rating >= 4,
                "already_recommended": _has(t, "told", "recommended to", "shared with", "referred"),
                "tell_everyone": _has(t, "tell everyone", "shouting", "can't say enough", "highly recommend"),
                "only_company_use": _has(t, "only", "no one else", "won't go anywhere else", "exclusive"),
                "advocacy_score": advocacy,
            },
            "keywords": extract_keywords(text),
            "topics": extract_topics(text),
            "customer_quotes": extract_quotes(text, positive),
            "sentiment": {
                "overall": 0.9 if positive else -0.35,
                "magnitude": min(1.0, len(text) / 500),
                "classification": classification,
            },
            "confidence": min(95.0, 60 + len(text) / 20 + (10 if rating == 5 else 0)),
        }
        return ReviewScorecard.model_validate(payload)


def _gemini_prompt(text: str, rating: float, category: str) -> str:
    excerpt = text[:_PROMPT_TEXT_LIMIT] + ("..." if len(text) > _PROMPT_TEXT_LIMIT else "")
    example = ReviewScorecard().model_dump(by_alias=True)
    return (
        f"Analyze this {rating}-star review for a {category} business and return complete JSON "
        "with ALL required fields.\n\n"
        f"REQUIRED OUTPUT FORMAT (must include ALL fields):\n{json.dumps(example, indent=2)}\n\n"
        f"Review text: {json.dumps(excerpt)}"
    )


class GeminiReviewAnalyzer(ReviewAnalyzer):
    """Scorecards from the Gemini generateContent API.

    Any transport error, non-2xx status, unparsable body or incomplete
    scorecard falls back to the heuristic analyzer. ``timeout_seconds`` bounds
    the whole call, not just each read, so a slow trickling response is
    abandoned too.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float,
        client: httpx.Client | None = None,
        fallback: ReviewAnalyzer | None = None,
        max_workers: int = 4,
    ) -> None:
        self.model_version = model
        self._api_key = api_key
        self._endpoint = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._timeout_seconds = timeout_seconds
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gemini")
        self._fallback = fallback or HeuristicReviewAnalyzer()

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def analyze(self, text: str, rating: float, category: str = "general") -> ReviewScorecard:
        try:
            return self._request_with_deadline(text, rating, category)
        except AnalysisProviderError as exc:
            logger.warning("Gemini analysis unavailable, using heuristic: %s", exc)
            return self._fallback.analyze(text, rating, category)

    def _request_with_deadline(self, text: str, rating: float, category: str) -> ReviewScorecard:
        future = self._executor.submit(self._request_scorecard, text, rating, category)
        try:
            return future.result(timeout=self._timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            raise AnalysisProviderError("Gemini API timeout") from exc

    def _request_scorecard(self, text: str, rating: float, category: str) -> ReviewScorecard:
        body = {
            "contents": [{"parts": [{"text": _gemini_prompt(text, rating, category)}]}],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 1200,
                "responseMimeType": "application/json",
            },
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self._api_key}
        try:
            response = self._client.post(self._endpoint, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            raise AnalysisProviderError("Gemini API timeout") from exc
        except httpx.HTTPError as exc:
            raise AnalysisProviderError(f"Gemini API error: {exc}") from exc

        if not response.is_success:
            raise AnalysisProviderError(f"Gemini API error: {response.status_code} - {response.text[:200]}")

        try:
            completion = response.json()
            content = completion["candidates"][0]["content"]["parts"][0]["text"]
            parsed = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AnalysisProviderError(f"Gemini response could not be parsed: {exc}") from exc

        if not isinstance(parsed, dict) or not all(
            parsed.get(key) for key in ("qualityIndicators", "serviceExcellence", "customerExperience")
        ):
            raise AnalysisProviderError("Gemini returned incomplete structure")

        try:
            return ReviewScorecard.model_validate(parsed)
        except ValidationError as exc:
            raise AnalysisProviderError(f"Gemini scorecard invalid: {exc.error_count()} errors") from exc


def get_review_analyzer(config: Settings | None = None) -> ReviewAnalyzer:
    config = config or settings
    if config.ai_provider == "gemini" and config.gemini_api_key:
        return GeminiReviewAnalyzer(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_base_url,
            timeout_seconds=config.ai_request_timeout_seconds,
        )
    return HeuristicReviewAnalyzer()


@lru_cache
def get_shared_review_analyzer() -> ReviewAnalyzer:
    """Process-wide analyzer reused across requests; released by close_shared_review_analyzer."""
    return get_review_analyzer()


def close_shared_review_analyzer() -> None:
    if get_shared_review_analyzer.cache_info().currsize:
        get_shared_review_analyzer().close()
        get_shared_review_analyzer.cache_clear()
