from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PlanTier = Literal["free", "pro", "power"]
BatchStatus = Literal["pending", "completed", "failed"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(BaseModel):
    lat: float
    lng: float


class ImportRecord(CamelModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    url_path: str = Field(min_length=1)
    short_description: str = ""
    description: str = ""
    phone: str = ""
    email: str | None = None
    website: str | None = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    category_id: int | None = None
    services: list[str] = Field(default_factory=list)
    coordinates: Coordinates | None = None
    hours: dict[str, str] = Field(default_factory=dict)
    rating: float = 0
    review_count: int = 0
    social_links: dict[str, str] | None = None
    image_url: str | None = None
    favicon: str | None = None
    review_url: str | None = None
    service_options: str | None = None
    from_the_business: str | None = None
    offerings: str | None = None
    planning: str | None = None


class ImportRequest(CamelModel):
    businesses: list[ImportRecord]
    skip_duplicates: bool = True
    import_source: str = "admin_import"
    import_batch_id: int | None = None
    source_metadata: dict[str, Any] | None = None


class ImportResult(BaseModel):
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class BatchResults(BaseModel):
    created: int = 0
    updated: int = 0
    failed: int = 0
    duplicates: int = 0


class ImportBatchCreate(CamelModel):
    import_type: str
    source: str
    business_count: int = Field(ge=0)
    imported_by: str | None = None
    review_count: int | None = None
    source_metadata: dict[str, Any] | None = None


class ImportBatchUpdate(BaseModel):
    status: BatchStatus
    results: BatchResults | None = None
    errors: list[str] | None = None


class ImportBatchView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    import_type: str
    imported_by: str | None = None
    imported_at: datetime
    status: str
    business_count: int
    review_count: int | None = None
    source: str
    source_metadata: dict[str, Any] | None = None
    results: BatchResults | None = None
    errors: list[str] | None = None
    created_at: datetime
    completed_at: datetime | None = None


class FixPendingResponse(BaseModel):
    fixed_count: int
    fixed_batch_ids: list[int]


class CleanupResponse(BaseModel):
    deleted_count: int


class ValidationCheck(BaseModel):
    name: str
    passed: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationCategory(BaseModel):
    passed: bool = False
    score: int = Field(default=0, ge=0, le=100)
    checks: list[ValidationCheck] = Field(default_factory=list)
    duration: int = 0


class ValidationCategories(BaseModel):
    database_integrity: ValidationCategory = Field(default_factory=ValidationCategory)
    data_quality: ValidationCategory = Field(default_factory=ValidationCategory)
    seo_compliance: ValidationCategory = Field(default_factory=ValidationCategory)
    sitemap_integration: ValidationCategory = Field(default_factory=ValidationCategory)
    functional_systems: ValidationCategory = Field(default_factory=ValidationCategory)
    performance: ValidationCategory = Field(default_factory=ValidationCategory)

    def scores(self) -> list[int]:
        return [
            self.database_integrity.score,
            self.data_quality.score,
            self.seo_compliance.score,
            self.sitemap_integration.score,
            self.functional_systems.score,
            self.performance.score,
        ]


class SampleBusiness(BaseModel):
    id: int
    name: str
    url_path: str
    city: str
    category: str


class ValidationErrorEntry(BaseModel):
    category: str
    message: str
    severity: Literal["error", "warning", "info"] = "error"
    business_id: int | None = None


class ValidationStatistics(BaseModel):
    total_businesses: int = 0
    expected_businesses: int = 0
    successful_created: int = 0
    failed_created: int = 0
    duplicates_skipped: int = 0


class ValidationResults(BaseModel):
    id: int | None = None
    batch_id: int | None
    status: Literal["running", "completed", "failed"] = "running"
    started_at: datetime
    completed_at: datetime | None = None
    overall_score: int = Field(default=0, ge=0, le=100)
    categories: ValidationCategories = Field(default_factory=ValidationCategories)
    sample_businesses: list[SampleBusiness] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    errors: list[ValidationErrorEntry] = Field(default_factory=list)
    statistics: ValidationStatistics = Field(default_factory=ValidationStatistics)


class BatchInfo(BaseModel):
    import_type: str
    source: str
    business_count: int
    imported_at: datetime


class ValidationResultsWithBatch(ValidationResults):
    batch_info: BatchInfo | None = None


class ValidateBatchRequest(CamelModel):
    batch_id: int
    run_full_validation: bool = False


class BusinessIdsRequest(CamelModel):
    business_ids: list[int]


class BusinessQuickValidation(BaseModel):
    business_id: int
    name: str
    checks: dict[str, bool]
    score: float = Field(ge=0, le=100)


class FieldSourceContribution(CamelModel):
    field_name: str
    source: str
    value: Any
    confidence: int | None = Field(default=None, ge=0, le=100)
    metadata: dict[str, Any] | None = None


class FieldPreferenceUpdate(CamelModel):
    field_name: str
    preferred_source: str | None = None
    locked: bool | None = None


class FieldPreferencesRequest(BaseModel):
    updates: list[FieldPreferenceUpdate]


class ConflictResolution(BaseModel):
    updated_fields: int
    changes: list[str]


class FieldSourceSummary(BaseModel):
    field_name: str
    current_source: str
    source_count: int
    has_conflict: bool
    locked: bool
    preferred_source: str | None = None


class DataSourceSummary(BaseModel):
    total_fields: int
    fields_by_source: dict[str, int]
    locked_fields: int
    fields_with_conflicts: int
    fields: list[FieldSourceSummary]


class ReviewAnalysisRequest(CamelModel):
    business_id: int
    batch_size: int = Field(default=50, ge=1, le=200)
    skip_existing: bool = True


class PerformanceScores(BaseModel):
    speed: float = 0
    value: float = 0
    quality: float = 0
    reliability: float = 0
    expertise: float = 0
    customer_impact: float = 0


class BusinessInsights(BaseModel):
    performance_scores: PerformanceScores
    top_keywords: list[str]
    customer_quotes: list[str]
    analysis_count: int
    confidence: float
    last_analyzed: datetime


class ReviewAnalysisOutcome(BaseModel):
    success: bool
    message: str
    insights: BusinessInsights | None = None


class BusinessBulkUpdate(CamelModel):
    id: int
    plan_tier: PlanTier | None = None
    featured: bool | None = None
    priority: int | None = None
    claimed: bool | None = None
    verified: bool | None = None
    active: bool | None = None


class BusinessUrlUpdate(CamelModel):
    id: int
    slug: str = Field(min_length=1)
    url_path: str = Field(min_length=1)


class BusinessIdList(BaseModel):
    ids: list[int]


class MissingFields(BaseModel):
    email: bool
    website: bool
    coordinates: bool
    social_links: bool
    rating: bool
    review_count: bool


class BusinessMissingData(BaseModel):
    id: int
    name: str
    city: str
    missing_fields: MissingFields


class BulkOperationResult(BaseModel):
    successful: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class ImportStats(BaseModel):
    total_businesses: int
    category_stats: dict[str, int]
    city_stats: dict[str, int]
    plan_tier_stats: dict[str, int]
    average_rating: float
    total_reviews: int
    claimed_businesses: int
    verified_businesses: int
    featured_businesses: int


class DuplicateCleanupResult(BaseModel):
    duplicates_removed: int
    remaining_businesses: int


class HealthResponse(BaseModel):
    status: str
    environment: str


class CsvImportOutcome(BaseModel):
    batch_id: int
    status: BatchStatus
    total_rows: int
    rejected_rows: list[str] = Field(default_factory=list)
    result: ImportResult = Field(default_factory=ImportResult)


class SourceRecordView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    business_id: int
    field_name: str
    current_value: Any = None
    current_source: str
    current_updated_at: datetime
    sources: list[dict[str, Any]]
    locked: bool
    preferred_source: str | None = None


class ReviewAnalysisTagView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    review_id: int
    business_id: int
    model_version: str
    analysis_date: datetime
    quality_indicators: dict[str, Any]
    service_excellence: dict[str, Any]
    customer_experience: dict[str, Any]
    competitive_markers: dict[str, Any]
    business_performance: dict[str, Any]
    recommendation_strength: dict[str, Any]
    sentiment: dict[str, Any]
    keywords: list[str]
    topics: list[str]
    customer_quotes: list[str]
    confidence_score: float


class SitemapCacheView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    last_invalidated: datetime
    reason: str
    status: str
