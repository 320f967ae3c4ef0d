from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import BusinessNotFoundError
from ..schemas import ReviewAnalysisOutcome, ReviewAnalysisRequest, ReviewAnalysisTagView
from ..services.review_analysis_service import get_analysis_tags_for_business, process_business_reviews
from ..services.review_analyzers import ReviewAnalyzer, get_shared_review_analyzer

router = APIRouter(tags=["reviews"])


@router.post("/reviews/analyze", response_model=ReviewAnalysisOutcome)
def analyze_reviews(
    payload: ReviewAnalysisRequest,
    db: Session = Depends(get_db),
    analyzer: ReviewAnalyzer = Depends(get_shared_review_analyzer),
) -> ReviewAnalysisOutcome:
    try:
        return process_business_reviews(
            db,
            payload.business_id,
            batch_size=payload.batch_size,
            skip_existing=payload.skip_existing,
            analyzer=analyzer,
        )
    except BusinessNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/businesses/{business_id}/analysis-tags", response_model=list[ReviewAnalysisTagView])
def analysis_tags(business_id: int, db: Session = Depends(get_db)) -> list[ReviewAnalysisTagView]:
    return [ReviewAnalysisTagView.model_validate(tag) for tag in get_analysis_tags_for_business(db, business_id)]
