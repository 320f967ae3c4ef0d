from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import (
    BulkOperationResult,
    BusinessBulkUpdate,
    BusinessIdList,
    BusinessMissingData,
    BusinessUrlUpdate,
    DuplicateCleanupResult,
    ImportRequest,
    ImportResult,
    ImportStats,
)
from ..services.import_service import (
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

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/businesses", response_model=ImportResult)
def import_business_batch(payload: ImportRequest, db: Session = Depends(get_db)) -> ImportResult:
    return import_businesses(
        db,
        payload.businesses,
        skip_duplicates=payload.skip_duplicates,
        import_source=payload.import_source,
        import_batch_id=payload.import_batch_id,
        source_metadata=payload.source_metadata,
    )


@router.get("/slugs", response_model=list[str])
def existing_slugs(slugs: list[str] = Query(default=[]), db: Session = Depends(get_db)) -> list[str]:
    return check_businesses_by_slugs(db, slugs)


@router.get("/stats", response_model=ImportStats)
def import_stats(db: Session = Depends(get_db)) -> ImportStats:
    return get_import_stats(db)


@router.get("/missing-data", response_model=list[BusinessMissingData])
def missing_data(db: Session = Depends(get_db)) -> list[BusinessMissingData]:
    return get_businesses_with_missing_data(db)


@router.post("/cleanup-duplicates", response_model=DuplicateCleanupResult)
def cleanup_duplicates(db: Session = Depends(get_db)) -> DuplicateCleanupResult:
    return cleanup_duplicate_businesses(db)


@router.post("/urls", response_model=BulkOperationResult)
def update_urls(updates: list[BusinessUrlUpdate], db: Session = Depends(get_db)) -> BulkOperationResult:
    return update_business_urls(db, updates)


@router.patch("/businesses", response_model=BulkOperationResult)
def bulk_update(updates: list[BusinessBulkUpdate], db: Session = Depends(get_db)) -> BulkOperationResult:
    return bulk_update_businesses(db, updates)


@router.post("/businesses/delete", response_model=BulkOperationResult)
def bulk_delete(payload: BusinessIdList, db: Session = Depends(get_db)) -> BulkOperationResult:
    return delete_businesses(db, payload.ids)


@router.get("/export")
def export_businesses(db: Session = Depends(get_db)) -> list[dict[str, Any]]:
    return export_all_businesses(db)
