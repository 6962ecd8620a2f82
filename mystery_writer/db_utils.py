"""Database helper utilities for ensuring schema consistency."""
from __future__ import annotations

from typing import Iterable, Set

from sqlalchemy import inspect, text

from .extensions import db


_LATE_COLUMNS = {
    "chapters": {
        "critique": "ALTER TABLE chapters ADD COLUMN critique TEXT",
        "revision_count": "ALTER TABLE chapters ADD COLUMN revision_count INTEGER NOT NULL DEFAULT 0",
    },
    "characters": {
        "secret": "ALTER TABLE characters ADD COLUMN secret TEXT",
    },
}


def _get_column_names(table_name: str) -> Set[str]:
    inspector = inspect(db.engine)
    return {column["name"] for column in inspector.get_columns(table_name)}


def ensure_database_schema() -> None:
    """Create missing tables and add columns introduced after the first release.

    Runs on every application start, so it only issues DDL when something is
    actually missing.
    """

    inspector = inspect(db.engine)
    table_names: Iterable[str] = inspector.get_table_names()

    if "novels" not in table_names:
        db.create_all()
        return

    # Import locally to avoid circular import issues during application setup.
    from .models import Chapter, Character

    for table in (Character.__table__, Chapter.__table__):
        if table.name not in table_names:
            table.create(bind=db.engine)

    for table_name, statements in _LATE_COLUMNS.items():
        existing = _get_column_names(table_name)
        for column, statement in statements.items():
            if column in existing:
                continue
            with db.engine.begin() as connection:
                connection.execute(text(statement))
