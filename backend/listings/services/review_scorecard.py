"""Typed per-review scorecard.

Every sub-record carries explicit defaults so a partial analyzer response
still produces a complete scorecard: flags default to False, 0-10 scores to
5.0, counts to 0, sentiment to neutral and confidence to 70.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NEUTRAL_SCORE = 5.0
DEFAULT_CONFIDENCE = 70.0


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Excellence(_Model):
    mentioned: bool = False
    intensity: float = NEUTRAL_SCORE
    exceeded_expectations: bool = False
    specific_examples: list[str] = Field(default_factory=list)


class FirstTimeSuccess(_Model):
    mentioned: bool = False
    precision_work: bool = False
    got_it_right_first: bool = False
    no_return_visits: bool = False
    single_visit_complete: bool = False


class AttentionToDetail(_Model):
    mentioned: bool = False
    thoroughness: float = NEUTRAL_SCORE
    cleanliness: bool = False
    careful_work: bool = False


class QualityIndicators(_Model):
    excellence: Excellence = Field(default_factory=Excellence)
    first_time_success: FirstTimeSuccess = Field(default_factory=FirstTimeSuccess)
    attention_to_detail: AttentionToDetail = Field(default_factory=AttentionToDetail)


class Professionalism(_Model):
    score: float = NEUTRAL_SCORE
    punctual: bool = False
    courteous: bool = False
    knowledgeable: bool = False


class Communication(_Model):
    score: float = NEUTRAL_SCORE
    clear_explanation: bool = False
    responsive: bool = False
    kept_informed: bool = False


class Expertise(_Model):
    expert_referenced: bool = False
    technical_competency: float = NEUTRAL_SCORE
    specialist_noted: bool = False
    master_craftsman: bool = False


class ServiceExcellence(_Model):
    professionalism: Professionalism = Field(default_factory=Professionalism)
    communication: Communication = Field(default_factory=Communication)
    expertise: Expertise = Field(default_factory=Expertise)


class EmotionalImpact(_Model):
    stress_relief: bool = False
    peace_of_mind: bool = False
    life_changing: bool = False
    emotional_intensity: float = NEUTRAL_SCORE


class BusinessImpact(_Model):
    saved_money: bool = False
    improved_efficiency: bool = False
    prevented_disaster: bool = False
    business_value_score: float = NEUTRAL_SCORE


class RelationshipBuilding(_Model):
    trust_established: bool = False
    personal_connection: bool = False
    loyalty_indicated: bool = False
    future_service_planned: bool = False
    relationship_score: float = NEUTRAL_SCORE


class CustomerExperience(_Model):
    emotional_impact: EmotionalImpact = Field(default_factory=EmotionalImpact)
    business_impact: BusinessImpact = Field(default_factory=BusinessImpact)
    relationship_building: RelationshipBuilding = Field(default_factory=RelationshipBuilding)


class ComparisonMentions(_Model):
    better_than_others: bool = False
    best_in_area: bool = False
    tried_others_first: bool = False
    comparison_count: int = 0


class MarketPosition(_Model):
    local_favorite: bool = False
    industry_leader: bool = False
    go_to_provider: bool = False


class Differentiation(_Model):
    unique_approach: bool = False
    special_equipment: bool = False
    innovation_mentioned: bool = False


class CompetitiveMarkers(_Model):
    comparison_mentions: ComparisonMentions = Field(default_factory=ComparisonMentions)
    market_position: MarketPosition = Field(default_factory=MarketPosition)
    differentiation: Differentiation = Field(default_factory=Differentiation)


class ResponseQuality(_Model):
    quick_response_mentioned: bool = False
    same_day_service: bool = False
    emergency_available: bool = False
    response_speed_score: float = NEUTRAL_SCORE


class ValueDelivery(_Model):
    fair_pricing: bool = False
    worth_the_cost: bool = False
    transparent_costs: bool = False
    value_score: float = NEUTRAL_SCORE


class ProblemResolution(_Model):
    fixed_others_couldnt: bool = False
    complex_issue_resolved: bool = False
    creative_solution: bool = False
    difficulty_level: float = NEUTRAL_SCORE


class BusinessPerformance(_Model):
    response_quality: ResponseQuality = Field(default_factory=ResponseQuality)
    value_delivery: ValueDelivery = Field(default_factory=ValueDelivery)
    problem_resolution: ProblemResolution = Field(default_factory=ProblemResolution)


class RecommendationStrength(_Model):
    would_recommend: bool = False
    already_recommended: bool = False
    tell_everyone: bool = False
    only_company_use: bool = False
    advocacy_score: float = NEUTRAL_SCORE


class Sentiment(_Model):
    overall: float = 0.0
    magnitude: float = 0.0
    classification: Literal["positive", "neutral", "negative"] = "neutral"


class ReviewScorecard(_Model):
    quality_indicators: QualityIndicators = Field(default_factory=QualityIndicators)
    service_excellence: ServiceExcellence = Field(default_factory=ServiceExcellence)
    customer_experience: CustomerExperience = Field(default_factory=CustomerExperience)
    competitive_markers: CompetitiveMarkers = Field(default_factory=CompetitiveMarkers)
    business_performance: BusinessPerformance = Field(default_factory=BusinessPerformance)
    recommendation_strength: RecommendationStrength = Field(default_factory=RecommendationStrength)
    keywords: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    customer_quotes: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Field(default_factory=Sentiment)
    confidence: float = DEFAULT_CONFIDENCE

    # Aggregation reads these six dimensions.
    @property
    def speed(self) -> float:
        return self.business_performance.response_quality.response_speed_score

    @property
    def value(self) -> float:
        return self.business_performance.value_delivery.value_score

    @property
    def quality(self) -> float:
        return self.quality_indicators.excellence.intensity

    @property
    def reliability(self) -> float:
        return self.business_performance.problem_resolution.difficulty_level

    @property
    def expertise(self) -> float:
        return self.service_excellence.expertise.technical_competency

    @property
    def customer_impact(self) -> float:
        return self.customer_experience.emotional_impact.emotional_intensity
