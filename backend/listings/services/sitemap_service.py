from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import SitemapCacheEntry

logger = logging.getLogger(__name__)


def invalidate_sitemap_cache(db: Session, reason: str) -> SitemapCacheEntry:
    entry = SitemapCacheEntry(last_invalidated=utcnow(), reason=reason, status="pending")
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Sitemap cache invalidated: %s", reason)
    return entry


def get_sitemap_cache_status(db: Session) -> SitemapCacheEntry | None:
    stmt = select(SitemapCacheEntry).order_by(SitemapCacheEntry.last_invalidated.desc(), SitemapCacheEntry.id.desc())
    return db.execute(stmt.limit(1)).scalar_one_or_none()


def mark_sitemap_regenerated(db: Session) -> int:
    pending = db.execute(select(SitemapCacheEntry).where(SitemapCacheEntry.status == "pending")).scalars().all()
    for entry in pending:
        entry.status = "completed"
    db.commit()
    return len(pending)
