from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any


class DataSource(str, Enum):
    USER_MANUAL = "user_manual"
    GMB_API = "gmb_api"
    ADMIN_IMPORT = "admin_import"
    GMB_SCRAPED = "gmb_scraped"
    CSV_UPLOAD = "csv_upload"
    SYSTEM = "system"


# Highest priority first. Unknown sources rank below every entry.
SOURCE_PRIORITY: Mapping[str, int] = MappingProxyType(
    {
        DataSource.USER_MANUAL.value: 100,
        DataSource.GMB_API.value: 90,
        DataSource.ADMIN_IMPORT.value: 80,
        DataSource.GMB_SCRAPED.value: 70,
        DataSource.CSV_UPLOAD.value: 60,
        DataSource.SYSTEM.value: 10,
    }
)


def source_priority(source: str | None) -> int:
    if not source:
        return 0
    return SOURCE_PRIORITY.get(source, 0)


def outranks(candidate: str, current: str | None) -> bool:
    return source_priority(candidate) > source_priority(current)


def best_contribution(
    contributions: Iterable[Mapping[str, Any]],
    preferred_source: str | None = None,
) -> Mapping[str, Any] | None:
    """Pick the contribution that should be active for a field.

    A preferred source wins when it has contributed; otherwise the highest
    priority source wins and the earliest contribution breaks ties.
    """
    items = list(contributions)
    if not items:
        return None

    if preferred_source:
        for item in items:
            if item.get("source") == preferred_source:
                return item

    best = items[0]
    for item in items[1:]:
        if outranks(str(item.get("source") or ""), str(best.get("source") or "")):
            best = item
    return best
