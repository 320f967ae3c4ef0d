from sqlalchemy import select

from listings.models import Business, SitemapCacheEntry
from listings.services.csv_import_service import read_import_records, run_csv_import, slugify, strip_city_suffix
from listings.services.import_batch_service import get_import_batch

GMB_HEADERS = "Keyword,Category,City,Category+City,Name,Full_Address,Street_Address,Zip,State,Phone_Standard_format,Website,Email_From_WEBSITE,Average_Rating,Reviews_Count"


def _write_csv(tmp_path, *rows):
    path = tmp_path / "export.csv"
    path.write_text("\n".join([GMB_HEADERS, *rows]) + "\n", encoding="utf-8")
    return path


def test_slug_helpers():
    assert slugify("Joe's Plumbing & Drain") == "joe-s-plumbing-drain"
    assert strip_city_suffix("Joe's Plumbing - Mesa", "Mesa") == "Joe's Plumbing"
    assert strip_city_suffix("Joe's Plumbing, mesa", "Mesa") == "Joe's Plumbing"
    assert strip_city_suffix("Mesa Plumbing", "Mesa") == "Mesa Plumbing"


def test_read_maps_google_export_columns(tmp_path):
    path = _write_csv(
        tmp_path,
        'plumber,Plumbing,Mesa,Plumbing in Mesa,Desert Pipes Mesa,"1 Main St, Mesa, AZ",1 Main St,85201,AZ,(480) 555-0100,desertpipes.test,,4.8,"1,204"',
    )

    parsed = read_import_records(path, category_slug="plumbing")

    assert parsed.total_rows == 1
    assert parsed.rejected_rows == []
    [record] = parsed.records
    assert record.name == "Desert Pipes"
    assert record.slug == "desert-pipes"
    assert record.url_path == "/plumbing/mesa/desert-pipes"
    assert record.phone == "(480) 555-0100"
    assert record.website == "https://desertpipes.test"
    assert record.email is None
    assert record.rating == 4.8
    assert record.review_count == 1204


def test_read_reports_unusable_rows(tmp_path):
    path = _write_csv(
        tmp_path,
        "plumber,Plumbing,Mesa,,,,,,AZ,,,,,",
        "plumber,Plumbing,Mesa,,Plumbing Service in Mesa,,,,AZ,,,,,",
        "plumber,Plumbing,Mesa,,Good Name,,,,AZ,,,,not-a-number,",
    )

    parsed = read_import_records(path)

    assert parsed.records == []
    assert len(parsed.rejected_rows) == 3
    assert parsed.rejected_rows[0].startswith("Row 1:")
    assert parsed.rejected_rows[1] == "Row 2: name looks like a category label"
    assert "rating" in parsed.rejected_rows[2]


def test_custom_field_mapping(tmp_path):
    path = tmp_path / "custom.csv"
    path.write_text("Company,Town\nAcme Rooter,Tempe\n", encoding="utf-8")

    parsed = read_import_records(path, {"name": ("Company",), "city": ("Town",)})

    assert parsed.records[0].name == "Acme Rooter"
    assert parsed.records[0].url_path == "/general/tempe/acme-rooter"


def test_run_csv_import_tracks_batch_and_invalidates_sitemap(db, category, tmp_path):
    path = _write_csv(
        tmp_path,
        "plumber,Plumbing,Mesa,,Desert Pipes,,1 Main St,85201,AZ,(480) 555-0100,,,,",
        "plumber,Plumbing,Mesa,,Desert Pipes,,1 Main St,85201,AZ,(480) 555-0100,,,,",
        "plumber,Plumbing,Tempe,,Valley Drains,,9 Mill Ave,85281,AZ,(480) 555-0200,,,,",
    )

    outcome = run_csv_import(db, path, imported_by="ops", category_id=category.id, category_slug=category.slug)

    assert outcome.status == "completed"
    assert (outcome.result.successful, outcome.result.skipped) == (2, 1)
    batch = get_import_batch(db, outcome.batch_id)
    assert batch.status == "completed"
    assert batch.results == {"created": 2, "updated": 0, "failed": 0, "duplicates": 1}
    assert batch.source_metadata["fileName"] == "export.csv"
    assert batch.source_metadata["totalRows"] == 3

    businesses = list(db.execute(select(Business).order_by(Business.id)).scalars())
    assert [business.import_batch_id for business in businesses] == [batch.id, batch.id]
    assert all(business.category_id == category.id for business in businesses)
    assert all(business.data_source["primary"] == "csv_upload" for business in businesses)
    assert db.execute(select(SitemapCacheEntry)).scalar_one().status == "pending"


def test_run_csv_import_without_valid_rows_fails_batch(db, tmp_path):
    path = _write_csv(tmp_path, "plumber,Plumbing,Mesa,,,,,,AZ,,,,,")

    outcome = run_csv_import(db, path)

    assert outcome.status == "failed"
    batch = get_import_batch(db, outcome.batch_id)
    assert batch.status == "failed"
    assert batch.errors[0].startswith("No valid businesses found in CSV")
    assert db.execute(select(SitemapCacheEntry)).first() is None
