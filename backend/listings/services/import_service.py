from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..errors import BusinessNotFoundError
from ..models import Business, BusinessContent, Category, ImportBatch
from ..schemas import (
    BulkOperationResult,
    BusinessBulkUpdate,
    BusinessMissingData,
    BusinessUrlUpdate,
    DuplicateCleanupResult,
    ImportRecord,
    ImportResult,
    ImportStats,
    MissingFields,
)
from ..telemetry import instrument_stage, record_operation_summary
from .duplicate_service import DuplicateKey, match_index
from .source_priority import DataSource
from .source_record_service import seed_source_records

logger = logging.getLogger(__name__)


def _data_source_summary(
    import_source: str,
    import_batch_id: int | None,
    source_metadata: Mapping[str, Any] | None,
    synced_at: str,
) -> dict[str, Any]:
    metadata: dict[str, Any] = dict(source_metadata or {})
    metadata["importBatchId"] = import_batch_id
    return {
        "primary": import_source,
        "lastSyncAt": synced_at,
        "syncStatus": "synced",
        "metadata": metadata,
    }


def _record_values(record: ImportRecord) -> dict[str, Any]:
    values = record.model_dump()
    values["coordinates"] = record.coordinates.model_dump() if record.coordinates is not None else None
    return values


def _create_business(
    db: Session,
    record: ImportRecord,
    *,
    import_source: str,
    import_batch_id: int | None,
    linked_batch_id: int | None,
    source_metadata: Mapping[str, Any] | None,
) -> Business:
    now = utcnow()
    values = _record_values(record)
    business = Business(
        **values,
        plan_tier="free",
        claimed=False,
        verified=False,
        active=True,
        featured=False,
        priority=0,
        data_source=_data_source_summary(import_source, import_batch_id, source_metadata, now.isoformat()),
        import_batch_id=linked_batch_id,
        created_at=now,
        updated_at=now,
    )
    db.add(business)
    db.flush()

    contribution_metadata = {"importBatchId": import_batch_id}
    if source_metadata:
        contribution_metadata.update(source_metadata)
    seed_source_records(
        db,
        business,
        import_source,
        values,
        confidence=settings.import_confidence,
        metadata=contribution_metadata,
        now=now,
    )
    db.add(BusinessContent(business_id=business.id, created_at=now, updated_at=now))
    return business


def _existing_batch_id(db: Session, import_batch_id: int | None) -> int | None:
    """The batch key to link on the row, or None when that batch row is gone.

    The key is kept in the data source metadata either way.
    """
    if import_batch_id is None or db.get(ImportBatch, import_batch_id) is not None:
        return import_batch_id
    logger.warning("Import batch id=%s not found; businesses keep the id in metadata only", import_batch_id)
    return None


@instrument_stage("import")
def import_businesses(
    db: Session,
    records: Sequence[ImportRecord],
    *,
    skip_duplicates: bool = True,
    import_source: str = DataSource.ADMIN_IMPORT.value,
    import_batch_id: int | None = None,
    source_metadata: Mapping[str, Any] | None = None,
) -> ImportResult:
    """Create businesses from incoming records, one independent commit each.

    Duplicates of stored businesses, or of records created earlier in the
    same call, are skipped without side effects. A failing record is rolled
    back and reported; the rest of the list still imports.
    """
    result = ImportResult()
    known_keys = [DuplicateKey.from_listing(business) for business in db.execute(select(Business)).scalars()]
    linked_batch_id = _existing_batch_id(db, import_batch_id)

    for record in records:
        candidate_key = DuplicateKey.from_listing(record)
        if skip_duplicates and match_index(candidate_key, known_keys) is not None:
            result.skipped += 1
            continue

        try:
            _create_business(
                db,
                record,
                import_source=import_source,
                import_batch_id=import_batch_id,
                linked_batch_id=linked_batch_id,
                source_metadata=source_metadata,
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            result.failed += 1
            result.errors.append(f"Failed to import {record.name}: {exc}")
            logger.warning("Import of %r failed: %s", record.name, exc)
            continue

        known_keys.append(candidate_key)
        result.successful += 1

    logger.info(
        "Imported businesses source=%s batch=%s successful=%s failed=%s skipped=%s",
        import_source,
        import_batch_id,
        result.successful,
        result.failed,
        result.skipped,
    )
    record_operation_summary("import_businesses", len(records), result.failed)
    return result


def check_businesses_by_slugs(db: Session, slugs: Iterable[str]) -> list[str]:
    requested = list(slugs)
    if not requested:
        return []
    found = set(db.execute(select(Business.slug).where(Business.slug.in_(requested))).scalars())
    return [slug for slug in requested if slug in found]


def get_import_stats(db: Session) -> ImportStats:
    businesses = list(db.execute(select(Business)).scalars())
    category_names = dict(db.execute(select(Category.id, Category.name)).all())

    category_stats: dict[str, int] = {}
    city_stats: dict[str, int] = {}
    plan_tier_stats: dict[str, int] = {}
    for business in businesses:
        category_name = category_names.get(business.category_id)
        if category_name is not None:
            category_stats[category_name] = category_stats.get(category_name, 0) + 1
        city_stats[business.city] = city_stats.get(business.city, 0) + 1
        plan_tier_stats[business.plan_tier] = plan_tier_stats.get(business.plan_tier, 0) + 1

    total = len(businesses)
    return ImportStats(
        total_businesses=total,
        category_stats=category_stats,
        city_stats=city_stats,
        plan_tier_stats=plan_tier_stats,
        average_rating=sum(business.rating for business in businesses) / total if total else 0.0,
        total_reviews=sum(business.review_count for business in businesses),
        claimed_businesses=sum(1 for business in businesses if business.claimed),
        verified_businesses=sum(1 for business in businesses if business.verified),
        featured_businesses=sum(1 for business in businesses if business.featured),
    )


def _apply_per_business(
    db: Session,
    items: Iterable[Any],
    action_label: str,
    apply: Callable[[Business, Any], None],
) -> BulkOperationResult:
    result = BulkOperationResult()
    for item in items:
        business_id = getattr(item, "id", item)
        try:
            business = db.get(Business, business_id)
            if business is None:
                raise BusinessNotFoundError(business_id)
            apply(business, item)
            db.commit()
        except Exception as exc:
            db.rollback()
            result.failed += 1
            result.errors.append(f"Failed to {action_label} {business_id}: {exc}")
            continue
        result.successful += 1
    return result


def update_business_urls(db: Session, updates: Iterable[BusinessUrlUpdate]) -> BulkOperationResult:
    def apply(business: Business, update: BusinessUrlUpdate) -> None:
        business.slug = update.slug
        business.url_path = update.url_path
        business.updated_at = utcnow()

    return _apply_per_business(db, updates, "update", apply)


def bulk_update_businesses(db: Session, updates: Iterable[BusinessBulkUpdate]) -> BulkOperationResult:
    def apply(business: Business, update: BusinessBulkUpdate) -> None:
        for field_name, value in update.model_dump(exclude={"id"}, exclude_none=True).items():
            setattr(business, field_name, value)
        business.updated_at = utcnow()

    return _apply_per_business(db, updates, "update", apply)


def delete_businesses(db: Session, business_ids: Iterable[int]) -> BulkOperationResult:
    def apply(business: Business, _business_id: int) -> None:
        db.delete(business)

    return _apply_per_business(db, business_ids, "delete", apply)


def get_businesses_with_missing_data(db: Session) -> list[BusinessMissingData]:
    rows: list[BusinessMissingData] = []
    for business in db.execute(select(Business).order_by(Business.id)).scalars():
        missing = MissingFields(
            email=not business.email,
            website=not business.website,
            coordinates=not business.coordinates,
            social_links=not business.social_links,
            rating=business.rating == 0,
            review_count=business.review_count == 0,
        )
        if any(missing.model_dump().values()):
            rows.append(BusinessMissingData(id=business.id, name=business.name, city=business.city, missing_fields=missing))
    return rows


def cleanup_duplicate_businesses(db: Session) -> DuplicateCleanupResult:
    """Delete every business whose exact name, city and address repeat an earlier one."""
    businesses = list(db.execute(select(Business).order_by(Business.id)).scalars())
    seen: set[tuple[str, str, str]] = set()
    duplicates: list[Business] = []
    for business in businesses:
        key = (business.name, business.city, business.address)
        if key in seen:
            duplicates.append(business)
        else:
            seen.add(key)

    for business in duplicates:
        db.delete(business)
    db.commit()

    if duplicates:
        logger.info("Removed %s duplicate businesses", len(duplicates))
    return DuplicateCleanupResult(
        duplicates_removed=len(duplicates),
        remaining_businesses=len(businesses) - len(duplicates),
    )


def _business_row(business: Business) -> dict[str, Any]:
    return {
        column.key: getattr(business, column.key)
        for column in Business.__table__.columns
    }


def export_all_businesses(db: Session) -> list[dict[str, Any]]:
    categories = {category.id: category for category in db.execute(select(Category)).scalars()}
    rows: list[dict[str, Any]] = []
    for business in db.execute(select(Business).order_by(Business.id)).scalars():
        row = _business_row(business)
        category = categories.get(business.category_id)
        row["category_name"] = category.name if category is not None else "Unknown"
        row["category_slug"] = category.slug if category is not None else "unknown"
        rows.append(row)
    return rows
