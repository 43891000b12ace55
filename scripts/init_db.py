"""
Create the schema directly (local development, no Alembic history).

Usage:
  python scripts/init_db.py
"""

import sys
from pathlib import Path
import os

from sqlalchemy import create_engine

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.lms.models import Base


def create_schema(*, database_url: str | None = None) -> list[str]:
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///lms.db").strip()
    engine = create_engine(db_url, future=True)
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()
    return sorted(Base.metadata.tables)


def main() -> None:
    tables = create_schema(database_url=None)
    print(f"Initialized database ({len(tables)} tables).")


if __name__ == "__main__":
    main()
