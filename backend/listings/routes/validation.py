from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import BatchNotFoundError
from ..schemas import (
    BusinessIdsRequest,
    BusinessQuickValidation,
    ValidateBatchRequest,
    ValidationResults,
    ValidationResultsWithBatch,
)
from ..services.import_validation_service import (
    get_all_validation_results,
    get_validation_results,
    validate_business_batch,
    validate_import_batch,
)

router = APIRouter(prefix="/validation", tags=["validation"])


@router.post("/run", response_model=ValidationResults)
def run_validation(payload: ValidateBatchRequest, db: Session = Depends(get_db)) -> ValidationResults:
    try:
        return validate_import_batch(db, payload.batch_id, run_full_validation=payload.run_full_validation)
    except BatchNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("", response_model=list[ValidationResultsWithBatch])
def list_validation_results(
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[ValidationResultsWithBatch]:
    return get_all_validation_results(db, limit=limit)


@router.post("/businesses", response_model=list[BusinessQuickValidation])
def validate_businesses(payload: BusinessIdsRequest, db: Session = Depends(get_db)) -> list[BusinessQuickValidation]:
    return validate_business_batch(db, payload.business_ids)


@router.get("/{batch_id}", response_model=ValidationResults)
def latest_validation(batch_id: int, db: Session = Depends(get_db)) -> ValidationResults:
    results = get_validation_results(db, batch_id)
    if results is None:
        raise HTTPException(status_code=404, detail=f"No validation results for import batch {batch_id}")
    return results
