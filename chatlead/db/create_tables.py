"""Create (or recreate) the database schema.

Usage:
    python -m chatlead.db.create_tables [--reset]
"""
from __future__ import annotations

import argparse

from sqlalchemy.exc import SQLAlchemyError

from .session import Base, get_engine
from . import models  # noqa: F401  # ensure models are imported for metadata


def create_all(*, reset: bool = False) -> None:
    engine = get_engine()
    if reset:
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create ChatLead tables on DATABASE_URL.")
    parser.add_argument("--reset", action="store_true", help="drop every table before creating it again")
    args = parser.parse_args(argv)
    try:
        create_all(reset=args.reset)
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
    print("Database tables created successfully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
