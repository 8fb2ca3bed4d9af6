"""Record Store backed by SQLAlchemy.

Rows go in and come out as plain dicts keyed by column name, addressed by
table name, so services never handle ORM entities or sessions.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chatlead.db.models import (
    Client,
    Company,
    Contact,
    ContactCompany,
    User,
)
from chatlead.db.session import get_session

logger = logging.getLogger(__name__)

TABLES = {
    model.__tablename__: model
    for model in (Client, User, Contact, Company, ContactCompany)
}


class RecordStoreError(Exception):
    """A Record Store call failed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RecordConflictError(RecordStoreError):
    """Insert rejected by a uniqueness (or other integrity) constraint."""


def _as_dict(entity) -> dict[str, Any]:
    return {attr.key: getattr(entity, attr.key) for attr in inspect(entity).mapper.column_attrs}


class SQLRepository:
    """insert / delete_by_id / select_one_by over the onboarding tables."""

    def _model(self, table: str):
        model = TABLES.get(table)
        if model is None:
            raise RecordStoreError(f"Unknown table: {table}")
        return model

    def _column(self, model, field: str):
        column = getattr(model, field, None)
        if column is None or field not in model.__table__.columns.keys():
            raise RecordStoreError(f"Unknown field {field!r} for table {model.__tablename__}")
        return column

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        model = self._model(table)
        unknown = set(row) - set(model.__table__.columns.keys())
        if unknown:
            raise RecordStoreError(f"Unknown fields for table {table}: {', '.join(sorted(unknown))}")
        entity = model(**row)
        with get_session() as session:
            try:
                session.add(entity)
                session.commit()
                session.refresh(entity)
            except IntegrityError as exc:
                session.rollback()
                logger.warning("integrity error on %s insert: %s", table, exc.orig)
                raise RecordConflictError(f"A {table} record with the same data already exists.") from exc
            except SQLAlchemyError as exc:
                session.rollback()
                logger.warning("insert into %s failed: %s", table, exc)
                raise RecordStoreError(f"Failed to insert into {table}.") from exc
            return _as_dict(entity)

    def delete_by_id(self, table: str, record_id: str) -> None:
        model = self._model(table)
        with get_session() as session:
            try:
                session.execute(delete(model).where(model.id == record_id))
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise RecordStoreError(f"Failed to delete {table}/{record_id}: {exc}") from exc
        logger.debug("deleted %s/%s", table, record_id)

    def select_one_by(self, table: str, field: str, value: Any) -> Optional[dict[str, Any]]:
        """Return the single row where ``field == value``, or None."""
        model = self._model(table)
        column = self._column(model, field)
        with get_session() as session:
            try:
                rows = session.execute(select(model).where(column == value).limit(2)).scalars().all()
            except SQLAlchemyError as exc:
                raise RecordStoreError(f"Failed to query {table}: {exc}") from exc
        if len(rows) != 1:
            return None
        return _as_dict(rows[0])

    def count(self, table: str, **filters: Any) -> int:
        model = self._model(table)
        stmt = select(func.count()).select_from(model)
        for field, value in filters.items():
            stmt = stmt.where(self._column(model, field) == value)
        with get_session() as session:
            return session.execute(stmt).scalar_one()
