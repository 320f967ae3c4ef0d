from __future__ import annotations

import logging
import math
import random
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..errors import BatchNotFoundError
from ..models import Business, BusinessContent, Category, ImportBatch, SourceRecord, ValidationResult
from ..schemas import (
    BatchInfo,
    BusinessQuickValidation,
    SampleBusiness,
    ValidationCategories,
    ValidationCategory,
    ValidationCheck,
    ValidationErrorEntry,
    ValidationResults,
    ValidationResultsWithBatch,
    ValidationStatistics,
)
from ..telemetry import record_operation_summary, timed_stage
from .sitemap_service import get_sitemap_cache_status

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "slug", "url_path", "phone", "address", "city", "category_id")

PHONE_RE = re.compile(r"^\(\d{3}\)\s\d{3}-\d{4}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
URL_PATH_RE = re.compile(r"^/[a-z0-9-]+/[a-z0-9-]+/[a-z0-9-]+$")
SLUG_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

SEO_SAMPLE_SIZE = 10
FUNCTIONAL_SAMPLE_SIZE = 5
SAMPLE_POOL_SIZE = 100
SAMPLE_SIZE = 5
MIN_BUSINESSES_PER_SECOND = 0.5
MAX_ERROR_RATE_PERCENT = 5.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class _CategoryRun:
    """Checks and points accumulated by one validation category."""

    label: str
    pass_threshold: int
    zero_on_error: bool = False
    checks: list[ValidationCheck] = field(default_factory=list)
    score: int = 0

    def add_check(self, name: str, passed: bool, message: str, points: int = 0, **details: Any) -> None:
        self.checks.append(ValidationCheck(name=name, passed=passed, message=message, details=details))
        if passed:
            self.score += points

    def record_error(self, exc: Exception) -> None:
        self.checks.append(
            ValidationCheck(
                name=f"{self.label} Check",
                passed=False,
                message=f"Error during validation: {exc}",
                details={"error": str(exc)},
            )
        )
        if self.zero_on_error:
            self.score = 0


@dataclass
class _BatchContext:
    batch: ImportBatch
    businesses: list[Business]


class ImportValidator:
    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def validate(self, db: Session, batch_id: int, run_full_validation: bool = False) -> ValidationResults:
        batch = db.get(ImportBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)

        batch_results = batch.results or {}
        results = ValidationResults(
            batch_id=batch.id,
            status="running",
            started_at=utcnow(),
            statistics=ValidationStatistics(
                expected_businesses=batch.business_count,
                successful_created=int(batch_results.get("created") or 0),
                failed_created=int(batch_results.get("failed") or 0),
                duplicates_skipped=int(batch_results.get("duplicates") or 0),
            ),
        )

        try:
            context = _BatchContext(batch=batch, businesses=self._batch_businesses(db, batch.id))
            results.statistics.total_businesses = len(context.businesses)
            categories = ValidationCategories()
            categories.database_integrity = self._run_category(
                "database_integrity", _CategoryRun("Database Integrity", 75), self._check_database_integrity, db, context
            )
            categories.data_quality = self._run_category(
                "data_quality", _CategoryRun("Data Quality", 75), self._check_data_quality, db, context
            )
            if run_full_validation:
                categories.seo_compliance = self._run_category(
                    "seo_compliance", _CategoryRun("SEO Compliance", 80), self._check_seo_compliance, db, context
                )
            else:
                categories.seo_compliance = ValidationCategory(
                    checks=[
                        ValidationCheck(
                            name="SEO Compliance",
                            passed=False,
                            message="Skipped; run full validation to audit URL and slug formats",
                            details={"skipped": True},
                        )
                    ]
                )
            categories.sitemap_integration = self._run_category(
                "sitemap_integration", _CategoryRun("Sitemap Integration", 50), self._check_sitemap_integration, db, context
            )
            categories.functional_systems = self._run_category(
                "functional_systems",
                _CategoryRun("Functional Systems", 75, zero_on_error=True),
                self._check_functional_systems,
                db,
                context,
            )
            categories.performance = self._run_category(
                "performance", _CategoryRun("Performance", 75), self._check_performance, db, context
            )

            results.categories = categories
            scores = categories.scores()
            results.overall_score = round_half_up(sum(scores) / len(scores))
            results.recommendations = generate_recommendations(categories, results.overall_score)
            results.sample_businesses = self._select_samples(db, context.businesses)
            results.status = "completed"
        except Exception as exc:
            db.rollback()
            logger.exception("Validation of import batch %s failed", batch_id)
            results.status = "failed"
            results.errors.append(
                ValidationErrorEntry(category="system", message=f"Validation failed: {exc}", severity="error")
            )
        results.completed_at = utcnow()

        stored = _store_results(db, results)
        results.id = stored.id
        logger.info(
            "Validated import batch id=%s status=%s overall_score=%s",
            batch_id,
            results.status,
            results.overall_score,
        )
        record_operation_summary("validate_import_batch", results.statistics.total_businesses, len(results.errors))
        return results

    @staticmethod
    def _batch_businesses(db: Session, batch_id: int) -> list[Business]:
        stmt = select(Business).where(Business.import_batch_id == batch_id).order_by(Business.id)
        return list(db.execute(stmt).scalars())

    @staticmethod
    def _run_category(
        stage: str,
        run: _CategoryRun,
        check: Callable[[_CategoryRun, Session, _BatchContext], None],
        db: Session,
        context: _BatchContext,
    ) -> ValidationCategory:
        with timed_stage(f"validation.{stage}") as timer:
            try:
                check(run, db, context)
            except Exception as exc:
                db.rollback()
                logger.warning("Validation category %s raised: %s", run.label, exc)
                run.record_error(exc)

        score = max(0, min(100, run.score))
        return ValidationCategory(
            passed=score >= run.pass_threshold,
            score=score,
            checks=run.checks,
            duration=int(timer.elapsed_ms),
        )

    @staticmethod
    def _check_database_integrity(run: _CategoryRun, db: Session, context: _BatchContext) -> None:
        batch = context.batch
        businesses = context.businesses
        total = len(businesses)
        reported_created = (batch.results or {}).get("created")

        expected = reported_created or batch.business_count
        count_match = total == expected
        run.add_check(
            "Business Count Verification",
            count_match,
            f"Created {total} businesses as expected" if count_match else f"Expected {expected} businesses, found {total}",
            points=25,
            expected=expected,
            actual=total,
        )

        business_ids = [business.id for business in businesses]
        with_content: set[int] = set()
        source_counts: dict[int, int] = {}
        if business_ids:
            with_content = set(
                db.execute(select(BusinessContent.business_id).where(BusinessContent.business_id.in_(business_ids))).scalars()
            )
            source_counts = dict(
                db.execute(
                    select(SourceRecord.business_id, func.count(SourceRecord.id))
                    .where(SourceRecord.business_id.in_(business_ids))
                    .group_by(SourceRecord.business_id)
                ).all()
            )

        missing_content = total - len(with_content)
        run.add_check(
            "Business Content Records",
            missing_content == 0,
            f"All {total} businesses have content records"
            if missing_content == 0
            else f"{missing_content} businesses missing content records",
            points=25,
            total=total,
            missing=missing_content,
        )

        with_sources = len(source_counts)
        run.add_check(
            "Data Source Tracking",
            with_sources == total,
            "All businesses have data source tracking"
            if with_sources == total
            else f"{total - with_sources} businesses missing source tracking",
            points=25,
            total=total,
            with_sources=with_sources,
            average_fields=round_half_up(sum(source_counts.values()) / with_sources) if with_sources else 0,
        )

        status_consistent = batch.status == "completed" and reported_created == total
        run.add_check(
            "Import Batch Status",
            status_consistent,
            "Import batch status is consistent"
            if status_consistent
            else "Import batch status inconsistent with actual data",
            points=25,
            batch_status=batch.status,
            reported_created=reported_created,
            actual_created=total,
        )

    @staticmethod
    def _check_data_quality(run: _CategoryRun, db: Session, context: _BatchContext) -> None:
        businesses = context.businesses
        if not businesses:
            run.add_check("Data Quality Check", False, "No businesses found for validation", business_count=0)
            return
        total = len(businesses)

        field_breakdown = []
        for field_name in REQUIRED_FIELDS:
            missing = sum(1 for business in businesses if getattr(business, field_name) in (None, ""))
            field_breakdown.append(
                {
                    "field": field_name,
                    "passed": missing == 0,
                    "missing_count": missing,
                    "completion_rate": (total - missing) / total * 100,
                }
            )
        required_score = round_half_up(sum(item["completion_rate"] for item in field_breakdown) / len(REQUIRED_FIELDS))
        run.add_check(
            "Required Fields Completion",
            required_score >= 95,
            f"Required fields {required_score}% complete",
            score=required_score,
            field_breakdown=field_breakdown,
        )
        run.score += round_half_up(required_score * 0.4)

        format_issues = {
            "phone": sum(1 for b in businesses if b.phone and not PHONE_RE.match(b.phone)),
            "email": sum(1 for b in businesses if b.email and not EMAIL_RE.match(b.email)),
            "website": sum(1 for b in businesses if b.website and not b.website.startswith("http")),
            "zip": sum(1 for b in businesses if b.zip and not ZIP_RE.match(b.zip)),
        }
        total_issues = sum(format_issues.values())
        format_score = max(0.0, 100 - total_issues / total * 100)
        run.add_check(
            "Data Format Validation",
            format_score >= 90,
            f"Data format {round_half_up(format_score)}% compliant",
            score=round_half_up(format_score),
            issues=format_issues,
            total_issues=total_issues,
        )
        run.score += round_half_up(format_score * 0.3)

        slugs = [business.slug for business in businesses]
        duplicate_slugs = len(slugs) - len(set(slugs))
        run.add_check(
            "URL Slug Uniqueness",
            duplicate_slugs == 0,
            f"All {total} business slugs are unique" if duplicate_slugs == 0 else f"Found {duplicate_slugs} duplicate slugs",
            points=30,
            total=total,
            duplicates=duplicate_slugs,
        )

    @staticmethod
    def _check_seo_compliance(run: _CategoryRun, db: Session, context: _BatchContext) -> None:
        sample = context.businesses[:SEO_SAMPLE_SIZE]
        if not sample:
            run.add_check("SEO Check", False, "No businesses to validate")
            return

        url_compliant = sum(1 for business in sample if business.url_path and URL_PATH_RE.match(business.url_path))
        url_rate = url_compliant / len(sample) * 100
        run.add_check(
            "URL Pattern Compliance",
            url_rate >= 95,
            f"{round_half_up(url_rate)}% URLs follow pattern",
            compliant=url_compliant,
            total=len(sample),
            rate=round_half_up(url_rate),
        )
        run.score += round_half_up(url_rate * 0.5)

        slug_compliant = sum(1 for business in sample if business.slug and SLUG_RE.match(business.slug))
        slug_rate = slug_compliant / len(sample) * 100
        run.add_check(
            "SEO Slug Format",
            slug_rate >= 95,
            f"{round_half_up(slug_rate)}% slugs SEO-compliant",
            compliant=slug_compliant,
            total=len(sample),
            rate=round_half_up(slug_rate),
        )
        run.score += round_half_up(slug_rate * 0.5)

    @staticmethod
    def _check_sitemap_integration(run: _CategoryRun, db: Session, context: _BatchContext) -> None:
        latest = get_sitemap_cache_status(db)
        completed_at = context.batch.completed_at or utcnow()
        window = timedelta(seconds=settings.sitemap_invalidation_window_seconds)
        invalidated = latest is not None and latest.last_invalidated >= completed_at - window
        run.add_check(
            "Sitemap Cache Invalidation",
            invalidated,
            "Sitemap cache invalidated after import" if invalidated else "Sitemap cache not invalidated",
            points=100,
            last_invalidation=latest.last_invalidated.isoformat() if latest is not None else None,
            import_completed=completed_at.isoformat(),
            reason=latest.reason if latest is not None else None,
        )

    @staticmethod
    def _check_functional_systems(run: _CategoryRun, db: Session, context: _BatchContext) -> None:
        sample = context.businesses[:FUNCTIONAL_SAMPLE_SIZE]
        total = len(sample)

        free_plan = sum(1 for business in sample if business.plan_tier == "free")
        run.add_check(
            "Plan Tier Defaults",
            free_plan == total,
            "All businesses set to default 'free' plan" if free_plan == total else "Some businesses have incorrect plan tier",
            points=25,
            total=total,
            free_plan=free_plan,
        )

        active = sum(1 for business in sample if business.active is True)
        run.add_check(
            "Active Status",
            active == total,
            "All businesses are active" if active == total else "Some businesses are not active",
            points=25,
            total=total,
            active=active,
        )

        category_ids = {business.category_id for business in sample if business.category_id is not None}
        known_categories: set[int] = set()
        if category_ids:
            known_categories = set(db.execute(select(Category.id).where(Category.id.in_(category_ids))).scalars())
        valid_categories = sum(1 for business in sample if business.category_id in known_categories)
        run.add_check(
            "Category References",
            valid_categories == total,
            "All category references are valid" if valid_categories == total else "Some category references are invalid",
            points=25,
            total=total,
            valid=valid_categories,
        )

        valid_timestamps = sum(1 for business in sample if business.created_at and business.updated_at)
        run.add_check(
            "Timestamp Integrity",
            valid_timestamps == total,
            "All timestamps are properly set" if valid_timestamps == total else "Some timestamps are missing or invalid",
            points=25,
            total=total,
            valid=valid_timestamps,
        )

    @staticmethod
    def _check_performance(run: _CategoryRun, db: Session, context: _BatchContext) -> None:
        batch = context.batch
        batch_results = batch.results or {}
        created = int(batch_results.get("created") or 0)
        failed = int(batch_results.get("failed") or 0)

        duration_seconds = (batch.completed_at - batch.created_at).total_seconds() if batch.completed_at else 0.0
        per_second = created / duration_seconds if duration_seconds > 0 else 0.0
        fast_enough = per_second >= MIN_BUSINESSES_PER_SECOND
        run.add_check(
            "Import Speed Performance",
            fast_enough,
            f"Import speed: {per_second:.2f} businesses/second"
            if fast_enough
            else f"Import speed slow: {per_second:.2f} businesses/second",
            points=50,
            duration_ms=int(duration_seconds * 1000),
            businesses_created=created,
            rate=f"{per_second:.2f}",
        )

        processed = created + failed
        error_rate = failed / processed * 100 if processed > 0 else 0.0
        low_error_rate = error_rate <= MAX_ERROR_RATE_PERCENT
        run.add_check(
            "Error Rate Analysis",
            low_error_rate,
            f"Low error rate: {error_rate:.1f}%" if low_error_rate else f"High error rate: {error_rate:.1f}%",
            points=50,
            total_processed=processed,
            failed=failed,
            error_rate=f"{error_rate:.1f}",
        )

    def _select_samples(self, db: Session, businesses: Sequence[Business]) -> list[SampleBusiness]:
        pool = list(businesses[:SAMPLE_POOL_SIZE])
        picked = self._rng.sample(pool, min(SAMPLE_SIZE, len(pool)))
        category_names = dict(db.execute(select(Category.id, Category.name)).all()) if picked else {}
        return [
            SampleBusiness(
                id=business.id,
                name=business.name,
                url_path=business.url_path or "",
                city=business.city,
                category=category_names.get(business.category_id, "Unknown"),
            )
            for business in picked
        ]


def generate_recommendations(categories: ValidationCategories, overall_score: int) -> list[str]:
    recommendations: list[str] = []
    if categories.database_integrity.score < 75:
        recommendations.append("Run database cleanup to fix integrity issues")
    if categories.data_quality.score < 75:
        recommendations.append("Review and clean up data format issues before next import")
    if categories.seo_compliance.score < 80:
        recommendations.append("Update URL generation logic to improve SEO compliance")
    if categories.performance.score < 75:
        recommendations.append("Consider optimizing import batch size for better performance")
    if not categories.sitemap_integration.passed:
        recommendations.append("Manually regenerate sitemap to include new businesses")

    if overall_score < 70:
        recommendations.append("Consider reviewing import process - multiple issues detected")
    elif overall_score >= 90:
        recommendations.append("Excellent import quality - ready for production use")
    return recommendations


def _store_results(db: Session, results: ValidationResults) -> ValidationResult:
    payload = results.model_dump(mode="json")
    row = ValidationResult(
        batch_id=results.batch_id,
        status=results.status,
        started_at=results.started_at,
        completed_at=results.completed_at,
        overall_score=results.overall_score,
        categories=payload["categories"],
        sample_businesses=payload["sample_businesses"],
        recommendations=payload["recommendations"],
        errors=payload["errors"],
        statistics=payload["statistics"],
        created_at=utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _to_results(row: ValidationResult) -> ValidationResults:
    return ValidationResults(
        id=row.id,
        batch_id=row.batch_id,
        status=row.status,
        started_at=row.started_at,
        completed_at=row.completed_at,
        overall_score=row.overall_score,
        categories=row.categories,
        sample_businesses=row.sample_businesses,
        recommendations=row.recommendations,
        errors=row.errors,
        statistics=row.statistics,
    )


def validate_import_batch(
    db: Session,
    batch_id: int,
    run_full_validation: bool = False,
    rng: random.Random | None = None,
) -> ValidationResults:
    return ImportValidator(rng=rng).validate(db, batch_id, run_full_validation=run_full_validation)


def get_validation_results(db: Session, batch_id: int) -> ValidationResults | None:
    stmt = (
        select(ValidationResult)
        .where(ValidationResult.batch_id == batch_id)
        .order_by(ValidationResult.created_at.desc(), ValidationResult.id.desc())
        .limit(1)
    )
    row = db.execute(stmt).scalar_one_or_none()
    return _to_results(row) if row is not None else None


def get_all_validation_results(db: Session, limit: int = 20) -> list[ValidationResultsWithBatch]:
    stmt = select(ValidationResult).order_by(ValidationResult.created_at.desc(), ValidationResult.id.desc()).limit(limit)
    enriched: list[ValidationResultsWithBatch] = []
    for row in db.execute(stmt).scalars():
        batch = db.get(ImportBatch, row.batch_id) if row.batch_id is not None else None
        batch_info = None
        if batch is not None:
            batch_info = BatchInfo(
                import_type=batch.import_type,
                source=batch.source,
                business_count=batch.business_count,
                imported_at=batch.imported_at,
            )
        enriched.append(ValidationResultsWithBatch(**_to_results(row).model_dump(), batch_info=batch_info))
    return enriched


def validate_business_batch(db: Session, business_ids: Sequence[int]) -> list[BusinessQuickValidation]:
    """Quick per-business audit; unknown ids are skipped."""
    validations: list[BusinessQuickValidation] = []
    for business_id in business_ids:
        business = db.get(Business, business_id)
        if business is None:
            continue

        has_content = db.execute(
            select(BusinessContent.id).where(BusinessContent.business_id == business_id).limit(1)
        ).first() is not None
        has_sources = db.execute(
            select(SourceRecord.id).where(SourceRecord.business_id == business_id).limit(1)
        ).first() is not None
        checks = {
            "has_required_fields": bool(business.name and business.slug and business.url_path),
            "has_valid_slug": bool(SLUG_RE.match(business.slug or "")),
            "has_valid_url_path": bool(URL_PATH_RE.match(business.url_path or "")),
            "has_business_content": has_content,
            "has_data_sources": has_sources,
        }
        validations.append(
            BusinessQuickValidation(
                business_id=business.id,
                name=business.name,
                checks=checks,
                score=sum(1 for passed in checks.values() if passed) / len(checks) * 100,
            )
        )
    return validations
