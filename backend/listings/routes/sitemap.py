from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import SitemapCacheView
from ..services.sitemap_service import get_sitemap_cache_status, mark_sitemap_regenerated

router = APIRouter(prefix="/sitemap", tags=["sitemap"])


@router.get("/cache", response_model=SitemapCacheView | None)
def sitemap_cache_status(db: Session = Depends(get_db)) -> SitemapCacheView | None:
    entry = get_sitemap_cache_status(db)
    return SitemapCacheView.model_validate(entry) if entry is not None else None


@router.post("/cache/regenerated")
def sitemap_regenerated(db: Session = Depends(get_db)) -> dict[str, int]:
    return {"completed_count": mark_sitemap_regenerated(db)}
