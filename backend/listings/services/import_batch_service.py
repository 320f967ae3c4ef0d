from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..database import utcnow
from ..errors import BatchNotFoundError, InvalidBatchStatusError
from ..models import Business, ImportBatch
from ..schemas import BatchResults, FixPendingResponse, ImportBatchCreate

logger = logging.getLogger(__name__)

BATCH_STATUSES = ("pending", "completed", "failed")
TERMINAL_STATUSES = frozenset({"completed", "failed"})


def create_import_batch(db: Session, payload: ImportBatchCreate) -> ImportBatch:
    now = utcnow()
    batch = ImportBatch(
        import_type=payload.import_type,
        imported_by=payload.imported_by,
        imported_at=now,
        status="pending",
        business_count=payload.business_count,
        review_count=payload.review_count,
        source=payload.source,
        source_metadata=payload.source_metadata,
        created_at=now,
    )
    db.add(batch)
    db.commit()
    db.refresh(batch)
    logger.info("Created import batch id=%s type=%s source=%s", batch.id, batch.import_type, batch.source)
    return batch


def get_import_batch(db: Session, batch_id: int) -> ImportBatch:
    batch = db.get(ImportBatch, batch_id)
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


def update_import_batch(
    db: Session,
    batch_id: int,
    status: str,
    results: BatchResults | None = None,
    errors: Sequence[str] | None = None,
) -> ImportBatch:
    if status not in BATCH_STATUSES:
        raise InvalidBatchStatusError(f"Unsupported batch status: {status}")

    batch = get_import_batch(db, batch_id)
    if status in TERMINAL_STATUSES:
        if batch.status not in TERMINAL_STATUSES or batch.completed_at is None:
            batch.completed_at = utcnow()
    else:
        batch.completed_at = None

    batch.status = status
    if results is not None:
        batch.results = results.model_dump()
    if errors is not None:
        batch.errors = list(errors)

    db.commit()
    db.refresh(batch)
    return batch


def get_import_batches(db: Session, limit: int | None = None, status: str | None = None) -> list[ImportBatch]:
    stmt = select(ImportBatch).order_by(ImportBatch.imported_at.desc(), ImportBatch.id.desc())
    if status is not None:
        stmt = stmt.where(ImportBatch.status == status)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars())


def delete_import_batch(db: Session, batch_id: int) -> None:
    batch = get_import_batch(db, batch_id)
    db.delete(batch)
    db.commit()


def _count_linked_businesses(db: Session, batch: ImportBatch) -> int:
    stmt = select(func.count(Business.id)).where(Business.import_batch_id == batch.id)
    return int(db.execute(stmt).scalar_one())


def _count_window_businesses(db: Session, batch: ImportBatch) -> int:
    """Businesses without an explicit batch key, created near the batch from the same source."""
    window = timedelta(minutes=settings.pending_fix_window_minutes)
    stmt = select(Business).where(
        Business.import_batch_id.is_(None),
        Business.created_at >= batch.imported_at - window,
        Business.created_at <= batch.imported_at + window,
    )
    return sum(
        1
        for business in db.execute(stmt).scalars()
        if (business.data_source or {}).get("primary") == batch.source
    )


def fix_pending_imports(db: Session) -> FixPendingResponse:
    """Promote pending batches whose businesses evidently exist to completed."""
    pending = db.execute(select(ImportBatch).where(ImportBatch.status == "pending").order_by(ImportBatch.id)).scalars()

    fixed_ids: list[int] = []
    for batch in list(pending):
        created = _count_linked_businesses(db, batch)
        if created == 0:
            created = _count_window_businesses(db, batch)
        if created == 0:
            continue

        batch.status = "completed"
        batch.completed_at = utcnow()
        batch.results = BatchResults(created=created).model_dump()
        fixed_ids.append(batch.id)
        logger.info("Fixed pending import batch id=%s created=%s", batch.id, created)

    db.commit()
    return FixPendingResponse(fixed_count=len(fixed_ids), fixed_batch_ids=fixed_ids)


def cleanup_old_imports(db: Session) -> int:
    """Delete every failed or pending batch regardless of age."""
    stale = list(
        db.execute(select(ImportBatch).where(ImportBatch.status.in_(("failed", "pending")))).scalars()
    )
    for batch in stale:
        db.delete(batch)
    db.commit()
    if stale:
        logger.info("Removed %s failed or pending import batches", len(stale))
    return len(stale)
