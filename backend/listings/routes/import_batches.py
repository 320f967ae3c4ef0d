from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import BatchNotFoundError, InvalidBatchStatusError
from ..schemas import BatchStatus, CleanupResponse, FixPendingResponse, ImportBatchCreate, ImportBatchUpdate, ImportBatchView
from ..services.import_batch_service import (
    cleanup_old_imports,
    create_import_batch,
    delete_import_batch,
    fix_pending_imports,
    get_import_batch,
    get_import_batches,
    update_import_batch,
)

router = APIRouter(prefix="/import-batches", tags=["import-batches"])


@router.post("", response_model=ImportBatchView, status_code=201)
def create_batch(payload: ImportBatchCreate, db: Session = Depends(get_db)) -> ImportBatchView:
    return ImportBatchView.model_validate(create_import_batch(db, payload))


@router.get("", response_model=list[ImportBatchView])
def list_batches(
    limit: int | None = Query(default=None, ge=1, le=500),
    status: BatchStatus | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[ImportBatchView]:
    return [ImportBatchView.model_validate(batch) for batch in get_import_batches(db, limit=limit, status=status)]


@router.post("/fix-pending", response_model=FixPendingResponse)
def fix_pending(db: Session = Depends(get_db)) -> FixPendingResponse:
    return fix_pending_imports(db)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup(db: Session = Depends(get_db)) -> CleanupResponse:
    return CleanupResponse(deleted_count=cleanup_old_imports(db))


@router.get("/{batch_id}", response_model=ImportBatchView)
def get_batch(batch_id: int, db: Session = Depends(get_db)) -> ImportBatchView:
    try:
        return ImportBatchView.model_validate(get_import_batch(db, batch_id))
    except BatchNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.patch("/{batch_id}", response_model=ImportBatchView)
def update_batch(batch_id: int, payload: ImportBatchUpdate, db: Session = Depends(get_db)) -> ImportBatchView:
    try:
        batch = update_import_batch(db, batch_id, payload.status, results=payload.results, errors=payload.errors)
    except BatchNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidBatchStatusError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ImportBatchView.model_validate(batch)


@router.delete("/{batch_id}", status_code=204)
def delete_batch(batch_id: int, db: Session = Depends(get_db)) -> Response:
    try:
        delete_import_batch(db, batch_id)
    except BatchNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)
