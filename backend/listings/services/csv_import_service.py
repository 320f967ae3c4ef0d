from __future__ import annotations

import csv
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import settings
from ..schemas import BatchResults, CsvImportOutcome, ImportBatchCreate, ImportRecord, ImportResult
from .import_batch_service import create_import_batch, update_import_batch
from .import_service import import_businesses
from .sitemap_service import invalidate_sitemap_cache
from .source_priority import DataSource

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_SLUG = "general"

# Record field -> CSV headers tried in order. Google Maps exports come first.
DEFAULT_FIELD_MAPPING: Mapping[str, tuple[str, ...]] = {
    "name": ("Name", "Business Name", "name"),
    "address": ("Street_Address", "Full_Address", "Address", "address"),
    "city": ("City", "Municipality", "city"),
    "state": ("State", "state"),
    "zip": ("Zip", "Postal_Code", "zip"),
    "phone": ("Phone_Standard_format", "Phone_1", "Phone", "phone"),
    "email": ("Email_From_WEBSITE", "Email", "email"),
    "website": ("Website", "website"),
    "description": ("Description", "Meta_Description", "description"),
    "rating": ("Average_Rating", "Rating", "rating"),
    "review_count": ("Reviews_Count", "Review_Count", "review_count"),
    "latitude": ("Latitude", "latitude", "lat"),
    "longitude": ("Longitude", "longitude", "lng"),
    "image_url": ("Featured_Image", "image_url"),
    "review_url": ("Review_URL", "review_url"),
    "slug": ("slug",),
    "url_path": ("url_path", "urlPath"),
}

_TEXT_FIELDS = ("address", "city", "state", "zip", "phone", "email", "description", "image_url", "review_url")
_NUMERIC_FIELDS = ("rating", "review_count")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass
class CsvReadResult:
    headers: list[str] = field(default_factory=list)
    records: list[ImportRecord] = field(default_factory=list)
    rejected_rows: list[str] = field(default_factory=list)
    total_rows: int = 0


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


def strip_city_suffix(name: str, city: str) -> str:
    """Drop a trailing ", City", "- City" or " City" that scrapers append to names."""
    if not name or not city:
        return name
    pattern = re.compile(rf"\s*(?:[-–,]\s*|\s+){re.escape(city)}$", re.IGNORECASE)
    return pattern.sub("", name).strip()


def _first_value(row: Mapping[str, str | None], headers: Sequence[str]) -> str:
    for header in headers:
        value = (row.get(header) or "").strip()
        if value:
            return value
    return ""


def _looks_like_category_label(name: str) -> bool:
    lowered = name.lower()
    return " in " in lowered and ("service" in lowered or "cleaning" in lowered)


def _row_payload(
    row: Mapping[str, str | None],
    mapping: Mapping[str, Sequence[str]],
    category_slug: str,
) -> dict[str, Any]:
    values = {key: _first_value(row, headers) for key, headers in mapping.items()}
    city = values.get("city", "")
    name = strip_city_suffix(values.get("name", ""), city)

    payload: dict[str, Any] = {"name": name}
    for key in _TEXT_FIELDS:
        if values.get(key):
            payload[key] = values[key]
    for key in _NUMERIC_FIELDS:
        if values.get(key):
            payload[key] = values[key].replace(",", "")

    website = values.get("website", "")
    if website:
        payload["website"] = website if website.startswith("http") else f"https://{website}"

    if values.get("latitude") and values.get("longitude"):
        payload["coordinates"] = {"lat": values["latitude"], "lng": values["longitude"]}

    city_slug = slugify(city)
    slug = values.get("slug") or slugify(name)
    if city_slug and slug.endswith(f"-{city_slug}"):
        slug = slug[: -len(city_slug) - 1]
    payload["slug"] = slug
    path_parts = [category_slug, city_slug, slug]
    payload["url_path"] = values.get("url_path") or "/" + "/".join(part for part in path_parts if part)
    return payload


def _format_validation_error(row_number: int, exc: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return f"Row {row_number}: {problems}"


def read_import_records(
    csv_path: str | Path,
    field_mapping: Mapping[str, Sequence[str]] | None = None,
    *,
    category_slug: str = DEFAULT_CATEGORY_SLUG,
) -> CsvReadResult:
    """Parse a CSV export into import records.

    ``field_mapping`` overrides the header candidates for individual record
    fields. Rows that cannot become a valid record are reported by their
    1-based data row number and left out of ``records``.
    """
    mapping = {**DEFAULT_FIELD_MAPPING, **(field_mapping or {})}
    path = Path(csv_path)
    result = CsvReadResult()

    with path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        result.headers = [header.strip() for header in reader.fieldnames or []]
        for row_number, raw_row in enumerate(reader, start=1):
            result.total_rows += 1
            row = {(key or "").strip(): value for key, value in raw_row.items()}
            if _looks_like_category_label(_first_value(row, mapping["name"])):
                result.rejected_rows.append(f"Row {row_number}: name looks like a category label")
                continue
            try:
                result.records.append(ImportRecord.model_validate(_row_payload(row, mapping, category_slug)))
            except ValidationError as exc:
                result.rejected_rows.append(_format_validation_error(row_number, exc))

    logger.info(
        "Read %s CSV rows from %s: %s records, %s rejected",
        result.total_rows,
        path.name,
        len(result.records),
        len(result.rejected_rows),
    )
    return result


def _merge_results(total: ImportResult, chunk: ImportResult) -> None:
    total.successful += chunk.successful
    total.failed += chunk.failed
    total.skipped += chunk.skipped
    total.errors.extend(chunk.errors)


def run_csv_import(
    db: Session,
    csv_path: str | Path,
    *,
    source: str = DataSource.CSV_UPLOAD.value,
    imported_by: str | None = None,
    category_id: int | None = None,
    category_slug: str = DEFAULT_CATEGORY_SLUG,
    skip_duplicates: bool = True,
    field_mapping: Mapping[str, Sequence[str]] | None = None,
) -> CsvImportOutcome:
    """Import a CSV file as one tracked batch.

    The batch is created first and always ends ``completed`` or ``failed``.
    A completed batch that created businesses invalidates the sitemap cache.
    """
    path = Path(csv_path)
    parsed = read_import_records(path, field_mapping, category_slug=category_slug)
    records = parsed.records
    if category_id is not None:
        records = [
            record if record.category_id is not None else record.model_copy(update={"category_id": category_id})
            for record in records
        ]

    source_metadata = {
        "fileName": path.name,
        "csvType": "google",
        "totalRows": parsed.total_rows,
        "headers": parsed.headers,
    }
    batch = create_import_batch(
        db,
        ImportBatchCreate(
            import_type="csv_import",
            source=source,
            business_count=len(records),
            imported_by=imported_by,
            source_metadata=source_metadata,
        ),
    )
    outcome = CsvImportOutcome(
        batch_id=batch.id,
        status="pending",
        total_rows=parsed.total_rows,
        rejected_rows=parsed.rejected_rows,
    )

    try:
        if not records:
            raise ValueError(f"No valid businesses found in CSV. {len(parsed.rejected_rows)} rows had errors.")
        chunk_size = max(1, settings.import_chunk_size)
        for start in range(0, len(records), chunk_size):
            chunk_result = import_businesses(
                db,
                records[start : start + chunk_size],
                skip_duplicates=skip_duplicates,
                import_source=source,
                import_batch_id=batch.id,
                source_metadata={"fileName": path.name},
            )
            _merge_results(outcome.result, chunk_result)
    except Exception as exc:
        db.rollback()
        logger.exception("CSV import batch id=%s failed", batch.id)
        update_import_batch(db, batch.id, "failed", errors=[str(exc)])
        outcome.status = "failed"
        return outcome

    result = outcome.result
    update_import_batch(
        db,
        batch.id,
        "completed",
        results=BatchResults(created=result.successful, failed=result.failed, duplicates=result.skipped),
        errors=result.errors,
    )
    outcome.status = "completed"
    if result.successful > 0:
        invalidate_sitemap_cache(db, f"CSV import created {result.successful} businesses (batch {batch.id})")
    return outcome
