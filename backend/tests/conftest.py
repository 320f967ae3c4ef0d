import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["AI_PROVIDER"] = "heuristic"
os.environ["TELEMETRY_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listings.database import Base, build_engine, get_db
from listings.main import app
from listings.models import Category
from listings.schemas import ImportRecord


@pytest.fixture()
def engine():
    engine = build_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def category(db):
    category = Category(name="Plumbing", slug="plumbing")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def make_record(name: str, category_id: int | None = None, **overrides) -> ImportRecord:
    slug = overrides.pop("slug", None) or name.lower().replace("'", "").replace(" ", "-")
    city = overrides.pop("city", "Mesa")
    payload = {
        "name": name,
        "slug": slug,
        "url_path": f"/plumbing/{city.lower()}/{slug}",
        "phone": "(480) 555-0100",
        "address": "123 Main St",
        "city": city,
        "state": "AZ",
        "zip": "85201",
        "category_id": category_id,
    }
    payload.update(overrides)
    return ImportRecord(**payload)
