from sqlalchemy import func, select

from conftest import make_record
from listings.models import Business, BusinessContent, SourceRecord
from listings.schemas import BusinessBulkUpdate, BusinessUrlUpdate
from listings.services.import_service import (
    bulk_update_businesses,
    check_businesses_by_slugs,
    cleanup_duplicate_businesses,
    delete_businesses,
    export_all_businesses,
    get_businesses_with_missing_data,
    get_import_stats,
    import_businesses,
    update_business_urls,
)


def test_reimporting_the_same_record_is_skipped(db, category):
    record = make_record("Joe's Plumbing", category_id=category.id)

    first = import_businesses(db, [record])
    second = import_businesses(db, [record])

    assert (first.successful, first.skipped) == (1, 0)
    assert (second.successful, second.skipped) == (0, 1)
    assert db.execute(select(func.count(Business.id))).scalar_one() == 1


def test_import_applies_defaults_and_side_records(db, category):
    result = import_businesses(db, [make_record("Joe's Plumbing", category_id=category.id)], import_source="csv_upload")
    assert result.successful == 1

    business = db.execute(select(Business)).scalar_one()
    assert business.plan_tier == "free"
    assert business.active is True
    assert business.claimed is False and business.verified is False and business.featured is False
    assert business.priority == 0
    assert business.data_source["primary"] == "csv_upload"
    assert db.execute(select(func.count(BusinessContent.id))).scalar_one() == 1

    records = list(db.execute(select(SourceRecord).where(SourceRecord.business_id == business.id)).scalars())
    fields = {record.field_name for record in records}
    assert {"name", "slug", "url_path", "phone", "address", "city", "category_id"} <= fields
    assert "email" not in fields
    assert all(record.current_source == "csv_upload" for record in records)
    assert all(record.sources[0]["confidence"] == 85 for record in records)


def test_duplicates_within_one_call_are_skipped(db, category):
    result = import_businesses(
        db,
        [
            make_record("Joe's Plumbing", category_id=category.id),
            make_record("Joe's Plumbing", category_id=category.id, slug="joes-plumbing-2"),
        ],
    )
    assert (result.successful, result.skipped) == (1, 1)


def test_failed_record_does_not_stop_the_batch(db, category):
    result = import_businesses(
        db,
        [
            make_record("First Co", category_id=category.id, url_path="/plumbing/mesa/shared"),
            make_record("Second Co", category_id=category.id, url_path="/plumbing/mesa/shared"),
            make_record("Third Co", category_id=category.id),
        ],
    )
    assert result.successful == 2
    assert result.failed == 1
    assert result.errors[0].startswith("Failed to import Second Co")


def test_skip_duplicates_disabled_surfaces_slug_conflicts_as_failures(db, category):
    record = make_record("Joe's Plumbing", category_id=category.id)
    import_businesses(db, [record])
    result = import_businesses(db, [record], skip_duplicates=False)
    assert result.failed == 1
    assert result.skipped == 0


def test_check_businesses_by_slugs_returns_existing_only(db, category):
    import_businesses(db, [make_record("Joe's Plumbing", category_id=category.id)])
    assert check_businesses_by_slugs(db, ["joes-plumbing", "nope"]) == ["joes-plumbing"]


def test_import_stats_counts(db, category):
    import_businesses(
        db,
        [
            make_record("Alpha", category_id=category.id, rating=4.0, review_count=10),
            make_record("Beta", category_id=category.id, city="Tempe", rating=5.0, review_count=2),
        ],
    )
    stats = get_import_stats(db)
    assert stats.total_businesses == 2
    assert stats.category_stats == {"Plumbing": 2}
    assert stats.city_stats == {"Mesa": 1, "Tempe": 1}
    assert stats.plan_tier_stats == {"free": 2}
    assert stats.average_rating == 4.5
    assert stats.total_reviews == 12


def test_bulk_operations_report_per_item_failures(db, category):
    import_businesses(db, [make_record("Alpha", category_id=category.id)])
    business_id = db.execute(select(Business.id)).scalar_one()

    urls = update_business_urls(db, [BusinessUrlUpdate(id=business_id, slug="alpha-co", url_path="/plumbing/mesa/alpha-co")])
    assert urls.successful == 1

    updates = bulk_update_businesses(
        db,
        [BusinessBulkUpdate(id=business_id, plan_tier="pro", featured=True), BusinessBulkUpdate(id=999, featured=True)],
    )
    assert (updates.successful, updates.failed) == (1, 1)
    assert "999" in updates.errors[0]

    business = db.get(Business, business_id)
    db.refresh(business)
    assert business.slug == "alpha-co"
    assert business.plan_tier == "pro"
    assert business.featured is True

    deleted = delete_businesses(db, [business_id])
    assert deleted.successful == 1
    assert db.execute(select(func.count(SourceRecord.id))).scalar_one() == 0


def test_missing_data_report(db, category):
    import_businesses(db, [make_record("Alpha", category_id=category.id, email="hi@alpha.test")])
    [row] = get_businesses_with_missing_data(db)
    assert row.missing_fields.email is False
    assert row.missing_fields.website is True
    assert row.missing_fields.rating is True


def test_cleanup_duplicate_businesses_keeps_first(db, category):
    import_businesses(
        db,
        [
            make_record("Alpha", category_id=category.id),
            make_record("Alpha", category_id=category.id, slug="alpha-2"),
        ],
        skip_duplicates=False,
    )
    result = cleanup_duplicate_businesses(db)
    assert result.duplicates_removed == 1
    assert result.remaining_businesses == 1
    assert check_businesses_by_slugs(db, ["alpha", "alpha-2"]) == ["alpha"]


def test_export_includes_category(db, category):
    import_businesses(db, [make_record("Alpha", category_id=category.id), make_record("Beta")])
    rows = export_all_businesses(db)
    assert [row["category_slug"] for row in rows] == ["plumbing", "unknown"]
    assert rows[1]["category_name"] == "Unknown"
