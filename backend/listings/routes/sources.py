from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import BusinessNotFoundError
from ..models import Business
from ..schemas import (
    CleanupResponse,
    ConflictResolution,
    DataSourceSummary,
    FieldPreferencesRequest,
    FieldSourceContribution,
    SourceRecordView,
)
from ..services.source_record_service import (
    add_field_data_source,
    bulk_update_field_preferences,
    cleanup_orphaned_data_sources,
    export_data_source_audit,
    get_business_data_source_summary,
    resolve_business_data_conflicts,
)

router = APIRouter(tags=["sources"])


def _require_business(db: Session, business_id: int) -> None:
    if db.get(Business, business_id) is None:
        raise HTTPException(status_code=404, detail=f"Business {business_id} not found")


@router.post("/businesses/{business_id}/sources", response_model=SourceRecordView | None)
def add_source(
    business_id: int,
    payload: FieldSourceContribution,
    db: Session = Depends(get_db),
) -> SourceRecordView | None:
    try:
        record = add_field_data_source(
            db,
            business_id,
            payload.field_name,
            payload.source,
            payload.value,
            confidence=payload.confidence,
            metadata=payload.metadata,
        )
    except BusinessNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SourceRecordView.model_validate(record) if record is not None else None


@router.post("/businesses/{business_id}/sources/resolve", response_model=ConflictResolution)
def resolve_conflicts(
    business_id: int,
    force_update: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> ConflictResolution:
    try:
        return resolve_business_data_conflicts(db, business_id, force_update=force_update)
    except BusinessNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.patch("/businesses/{business_id}/sources/preferences")
def update_preferences(
    business_id: int,
    payload: FieldPreferencesRequest,
    db: Session = Depends(get_db),
) -> dict[str, int]:
    _require_business(db, business_id)
    return {"updated_count": bulk_update_field_preferences(db, business_id, payload.updates)}


@router.get("/businesses/{business_id}/sources/summary", response_model=DataSourceSummary)
def source_summary(business_id: int, db: Session = Depends(get_db)) -> DataSourceSummary:
    _require_business(db, business_id)
    return get_business_data_source_summary(db, business_id)


@router.get("/sources/audit")
def source_audit(
    business_id: int | None = Query(default=None),
    include_metadata: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return export_data_source_audit(db, business_id, include_metadata=include_metadata)


@router.post("/sources/cleanup-orphans", response_model=CleanupResponse)
def cleanup_orphans(db: Session = Depends(get_db)) -> CleanupResponse:
    return CleanupResponse(deleted_count=cleanup_orphaned_data_sources(db))
