from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..database import utcnow
from ..errors import BusinessNotFoundError
from ..models import Business, SourceRecord
from ..schemas import (
    ConflictResolution,
    DataSourceSummary,
    FieldPreferenceUpdate,
    FieldSourceSummary,
)
from .source_priority import best_contribution, outranks

logger = logging.getLogger(__name__)

# Business columns whose values are tracked per contributing source.
TRACKED_FIELDS: tuple[str, ...] = (
    "name",
    "slug",
    "url_path",
    "short_description",
    "description",
    "phone",
    "email",
    "website",
    "address",
    "city",
    "state",
    "zip",
    "coordinates",
    "category_id",
    "services",
    "hours",
    "rating",
    "review_count",
    "social_links",
    "image_url",
    "favicon",
    "review_url",
    "service_options",
    "from_the_business",
    "offerings",
    "planning",
)


def is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def _contribution(
    source: str,
    value: Any,
    updated_at: datetime,
    confidence: int | None,
    metadata: Mapping[str, Any] | None,
) -> dict[str, Any]:
    return {
        "source": source,
        "value": value,
        "updatedAt": updated_at.isoformat(),
        "confidence": confidence,
        "metadata": dict(metadata) if metadata else None,
    }


def _new_record(
    business_id: int,
    field_name: str,
    source: str,
    value: Any,
    now: datetime,
    confidence: int | None,
    metadata: Mapping[str, Any] | None,
) -> SourceRecord:
    return SourceRecord(
        business_id=business_id,
        field_name=field_name,
        current_value=value,
        current_source=source,
        current_updated_at=now,
        sources=[_contribution(source, value, now, confidence, metadata)],
        locked=False,
        created_at=now,
        updated_at=now,
    )


def _value_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _apply_to_business(business: Business, field_name: str, value: Any, now: datetime) -> None:
    if field_name not in TRACKED_FIELDS:
        return
    setattr(business, field_name, value)
    business.updated_at = now


def _should_replace_current(record: SourceRecord, new_source: str) -> bool:
    if record.locked:
        return False
    if record.preferred_source:
        return new_source == record.preferred_source
    # The active source may refresh its own value.
    if new_source == record.current_source:
        return True
    return outranks(new_source, record.current_source)


def get_source_record(db: Session, business_id: int, field_name: str) -> SourceRecord | None:
    stmt = select(SourceRecord).where(
        SourceRecord.business_id == business_id,
        SourceRecord.field_name == field_name,
    )
    return db.execute(stmt).scalar_one_or_none()


def record_contribution(
    db: Session,
    business: Business,
    field_name: str,
    source: str,
    value: Any,
    *,
    confidence: int | None = None,
    metadata: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> SourceRecord | None:
    """Add one source's value for a field without committing.

    Returns None when the field has no record yet and the value is empty.
    """
    now = now or utcnow()
    record = get_source_record(db, business.id, field_name)

    if record is None:
        if not is_populated(value):
            return None
        record = _new_record(business.id, field_name, source, value, now, confidence, metadata)
        db.add(record)
        return record

    contributions = [dict(item) for item in record.sources or []]
    entry = _contribution(source, value, now, confidence, metadata)
    for index, existing in enumerate(contributions):
        if existing.get("source") == source:
            contributions[index] = entry
            break
    else:
        contributions.append(entry)
    record.sources = contributions
    record.updated_at = now

    if _should_replace_current(record, source):
        record.current_value = value
        record.current_source = source
        record.current_updated_at = now
        _apply_to_business(business, field_name, value, now)
    return record


def seed_source_records(
    db: Session,
    business: Business,
    source: str,
    values: Mapping[str, Any],
    *,
    confidence: int | None = None,
    metadata: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> int:
    """Create the first record for every populated field of a new business."""
    now = now or utcnow()
    created = 0
    for field_name in TRACKED_FIELDS:
        value = values.get(field_name)
        if not is_populated(value):
            continue
        db.add(_new_record(business.id, field_name, source, value, now, confidence, metadata))
        created += 1
    return created


def add_field_data_source(
    db: Session,
    business_id: int,
    field_name: str,
    source: str,
    value: Any,
    *,
    confidence: int | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> SourceRecord | None:
    business = db.get(Business, business_id)
    if business is None:
        raise BusinessNotFoundError(business_id)

    record = record_contribution(
        db,
        business,
        field_name,
        source,
        value,
        confidence=confidence,
        metadata=metadata,
    )
    db.commit()
    if record is not None:
        logger.debug(
            "Recorded %s contribution for business=%s field=%s current_source=%s",
            source,
            business_id,
            field_name,
            record.current_source,
        )
    return record


def _records_for_business(db: Session, business_id: int) -> list[SourceRecord]:
    stmt = select(SourceRecord).where(SourceRecord.business_id == business_id).order_by(SourceRecord.id)
    return list(db.execute(stmt).scalars())


def resolve_business_data_conflicts(
    db: Session,
    business_id: int,
    *,
    force_update: bool = False,
) -> ConflictResolution:
    business = db.get(Business, business_id)
    if business is None:
        raise BusinessNotFoundError(business_id)

    now = utcnow()
    changes: list[str] = []
    for record in _records_for_business(db, business_id):
        if record.locked and not force_update:
            continue

        best = best_contribution(record.sources or [], record.preferred_source)
        if best is None:
            continue

        if record.current_source != best.get("source") or force_update:
            record.current_value = best.get("value")
            record.current_source = str(best.get("source"))
            updated_at = best.get("updatedAt")
            record.current_updated_at = datetime.fromisoformat(updated_at) if updated_at else now
            record.updated_at = now
            _apply_to_business(business, record.field_name, record.current_value, now)
            changes.append(record.field_name)

    db.commit()
    return ConflictResolution(updated_fields=len(changes), changes=changes)


def bulk_update_field_preferences(
    db: Session,
    business_id: int,
    updates: Iterable[FieldPreferenceUpdate],
) -> int:
    now = utcnow()
    updated_count = 0
    for update in updates:
        record = get_source_record(db, business_id, update.field_name)
        if record is None:
            continue
        if update.preferred_source is not None:
            record.preferred_source = update.preferred_source or None
        if update.locked is not None:
            record.locked = update.locked
        record.updated_at = now
        updated_count += 1

    db.commit()
    return updated_count


def _has_conflict(record: SourceRecord) -> bool:
    return len({_value_key(item.get("value")) for item in record.sources or []}) > 1


def get_business_data_source_summary(db: Session, business_id: int) -> DataSourceSummary:
    records = _records_for_business(db, business_id)
    fields_by_source: dict[str, int] = {}
    fields: list[FieldSourceSummary] = []
    locked_fields = 0
    conflicts = 0

    for record in records:
        fields_by_source[record.current_source] = fields_by_source.get(record.current_source, 0) + 1
        if record.locked:
            locked_fields += 1
        has_conflict = _has_conflict(record)
        if has_conflict:
            conflicts += 1
        fields.append(
            FieldSourceSummary(
                field_name=record.field_name,
                current_source=record.current_source,
                source_count=len(record.sources or []),
                has_conflict=has_conflict,
                locked=bool(record.locked),
                preferred_source=record.preferred_source,
            )
        )

    return DataSourceSummary(
        total_fields=len(records),
        fields_by_source=fields_by_source,
        locked_fields=locked_fields,
        fields_with_conflicts=conflicts,
        fields=fields,
    )


def export_data_source_audit(
    db: Session,
    business_id: int | None = None,
    *,
    include_metadata: bool = False,
) -> list[dict[str, Any]]:
    stmt = select(SourceRecord, Business.name).outerjoin(Business, Business.id == SourceRecord.business_id)
    if business_id is not None:
        stmt = stmt.where(SourceRecord.business_id == business_id)
    stmt = stmt.order_by(SourceRecord.business_id, SourceRecord.field_name)

    rows: list[dict[str, Any]] = []
    for record, business_name in db.execute(stmt).all():
        row: dict[str, Any] = {
            "business_id": record.business_id,
            "business_name": business_name or "Unknown",
            "field_name": record.field_name,
            "current_value": record.current_value,
            "current_source": record.current_source,
            "current_updated_at": record.current_updated_at.isoformat(),
            "source_count": len(record.sources or []),
            "locked": bool(record.locked),
            "preferred_source": record.preferred_source,
            "has_conflict": _has_conflict(record),
        }
        if include_metadata:
            row["sources"] = record.sources
        rows.append(row)
    return rows


def cleanup_orphaned_data_sources(db: Session) -> int:
    existing_ids = select(Business.id)
    result = db.execute(delete(SourceRecord).where(SourceRecord.business_id.not_in(existing_ids)))
    db.commit()
    cleaned = int(result.rowcount or 0)
    if cleaned:
        logger.info("Removed %s orphaned source records", cleaned)
    return cleaned
