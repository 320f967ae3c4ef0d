import random

import pytest

from conftest import make_record
from listings.errors import BatchNotFoundError
from listings.schemas import BatchResults, ImportBatchCreate, ValidationCategories, ValidationCategory
from listings.services.import_batch_service import create_import_batch, delete_import_batch, update_import_batch
from listings.services.import_service import import_businesses
from listings.services.import_validation_service import (
    ImportValidator,
    generate_recommendations,
    get_all_validation_results,
    get_validation_results,
    round_half_up,
    validate_business_batch,
    validate_import_batch,
)
from listings.services.sitemap_service import invalidate_sitemap_cache


def _imported_batch(db, records, reported_created=None, invalidate=True):
    batch = create_import_batch(
        db, ImportBatchCreate(import_type="csv_import", source="admin_import", business_count=len(records))
    )
    result = import_businesses(db, records, import_batch_id=batch.id)
    created = result.successful if reported_created is None else reported_created
    update_import_batch(db, batch.id, "completed", results=BatchResults(created=created, failed=result.failed))
    if invalidate:
        invalidate_sitemap_cache(db, f"Import batch {batch.id}")
    return batch.id


def _check(category, name):
    return next(check for check in category.checks if check.name == name)


def test_round_half_up_matches_half_up_semantics():
    assert round_half_up(2.5) == 3
    assert round_half_up(85.7) == 86
    assert round_half_up(84.4) == 84


def test_clean_batch_scores_well(db, category):
    batch_id = _imported_batch(db, [make_record(f"Clean Co {index}", category_id=category.id) for index in range(3)])

    results = validate_import_batch(db, batch_id, run_full_validation=True, rng=random.Random(7))

    assert results.status == "completed"
    assert results.categories.database_integrity.score == 100
    assert results.categories.data_quality.score == 100
    assert results.categories.seo_compliance.score == 100
    assert results.categories.sitemap_integration.passed is True
    assert results.categories.functional_systems.score == 100
    assert results.statistics.total_businesses == 3
    assert len(results.sample_businesses) == 3
    assert {sample.category for sample in results.sample_businesses} == {"Plumbing"}


def test_overall_score_is_rounded_mean_and_bounded(db, category):
    batch_id = _imported_batch(db, [make_record("Only Co", category_id=category.id)], invalidate=False)

    results = validate_import_batch(db, batch_id)

    scores = results.categories.scores()
    assert all(0 <= score <= 100 for score in scores)
    assert results.overall_score == round_half_up(sum(scores) / 6)


def test_seo_skipped_without_full_validation(db, category):
    batch_id = _imported_batch(db, [make_record("Only Co", category_id=category.id)])

    seo = validate_import_batch(db, batch_id).categories.seo_compliance

    assert seo.score == 0
    assert seo.passed is False
    assert seo.checks[0].details == {"skipped": True}


def test_missing_phone_is_completeness_not_format(db, category):
    batch_id = _imported_batch(db, [make_record("No Phone Co", category_id=category.id, phone="")])

    quality = validate_import_batch(db, batch_id).categories.data_quality

    required = _check(quality, "Required Fields Completion")
    assert required.details["score"] < 100
    assert _check(quality, "Data Format Validation").details["issues"]["phone"] == 0


def test_count_mismatch_fails_count_verification(db, category):
    records = [make_record(f"Counted Co {index}", category_id=category.id) for index in range(10)]
    batch_id = _imported_batch(db, records, reported_created=8)

    integrity = validate_import_batch(db, batch_id).categories.database_integrity

    count_check = _check(integrity, "Business Count Verification")
    assert count_check.passed is False
    assert count_check.details == {"expected": 8, "actual": 10}
    assert integrity.score == 50


def test_missing_sitemap_invalidation_fails(db, category):
    batch_id = _imported_batch(db, [make_record("Only Co", category_id=category.id)], invalidate=False)

    results = validate_import_batch(db, batch_id)

    assert results.categories.sitemap_integration.score == 0
    assert "Manually regenerate sitemap to include new businesses" in results.recommendations


def test_category_error_becomes_failing_check(db, category, monkeypatch):
    def boom(run, db, context):
        raise RuntimeError("lookup failed")

    monkeypatch.setattr(ImportValidator, "_check_functional_systems", staticmethod(boom))
    batch_id = _imported_batch(db, [make_record("Only Co", category_id=category.id)])

    results = validate_import_batch(db, batch_id)

    functional = results.categories.functional_systems
    assert results.status == "completed"
    assert functional.score == 0
    assert functional.checks[-1].name == "Functional Systems Check"
    assert functional.checks[-1].message == "Error during validation: lookup failed"


def test_every_run_is_stored(db, category):
    batch_id = _imported_batch(db, [make_record("Only Co", category_id=category.id)])

    first = validate_import_batch(db, batch_id)
    second = validate_import_batch(db, batch_id, run_full_validation=True)

    assert first.id != second.id
    assert get_validation_results(db, batch_id).id == second.id
    history = get_all_validation_results(db)
    assert [entry.id for entry in history] == [second.id, first.id]
    assert history[0].batch_info.import_type == "csv_import"


def test_validation_history_outlives_its_batch(db, category):
    batch_id = _imported_batch(db, [make_record("Only Co", category_id=category.id)])
    run = validate_import_batch(db, batch_id)

    delete_import_batch(db, batch_id)

    history = get_all_validation_results(db)
    assert [entry.id for entry in history] == [run.id]
    assert history[0].batch_id is None
    assert history[0].batch_info is None
    assert history[0].overall_score == run.overall_score


def test_unknown_batch_raises(db):
    with pytest.raises(BatchNotFoundError):
        validate_import_batch(db, 404)
    assert get_validation_results(db, 404) is None


def test_recommendations_follow_thresholds():
    weak = generate_recommendations(ValidationCategories(), 0)
    assert weak[0] == "Run database cleanup to fix integrity issues"
    assert weak[-1] == "Consider reviewing import process - multiple issues detected"

    strong_category = ValidationCategory(passed=True, score=100)
    strong = ValidationCategories(
        database_integrity=strong_category,
        data_quality=strong_category,
        seo_compliance=strong_category,
        sitemap_integration=strong_category,
        functional_systems=strong_category,
        performance=strong_category,
    )
    assert generate_recommendations(strong, 100) == ["Excellent import quality - ready for production use"]


def test_quick_business_validation(db, category):
    import_businesses(db, [make_record("Quick Co", category_id=category.id, url_path="not-a-path")])

    [validation] = validate_business_batch(db, [1, 999])

    assert validation.checks["has_valid_url_path"] is False
    assert validation.checks["has_data_sources"] is True
    assert validation.score == 80
