import sys
from pathlib import Path

from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from listings.database import Base, SessionLocal, engine
from listings.models import Category

CATEGORIES = [
    ("Cleaning Services", "cleaning-services"),
    ("HVAC Services", "hvac-services"),
    ("Landscaping", "landscaping"),
    ("Plumbing", "plumbing"),
    ("Electrical", "electrical"),
]


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        existing = set(session.execute(select(Category.slug)).scalars())
        for name, slug in CATEGORIES:
            if slug not in existing:
                session.add(Category(name=name, slug=slug))
        session.commit()
    print("Database initialized with listings schema and default categories.")


if __name__ == "__main__":
    main()
