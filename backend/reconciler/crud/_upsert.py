"""Dialect-specific insert-if-absent"""
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, SQLModel

from reconciler.core.db import dialect_name


def insert_if_absent(*, session: Session, model: type[SQLModel], values: dict[str, Any]) -> None:
    """
    Insert a row unless its key already exists

    Uses ``INSERT ... ON CONFLICT DO NOTHING`` so concurrent callers never
    fail on the primary key; other dialects fall back to get-then-add.
    """
    dialect = dialect_name(session)
    if dialect == "postgresql":
        session.exec(pg_insert(model).values(**values).on_conflict_do_nothing())  # type: ignore[call-overload]
        return
    if dialect == "sqlite":
        session.exec(sqlite_insert(model).values(**values).on_conflict_do_nothing())  # type: ignore[call-overload]
        return
    key = values[model.__table__.primary_key.columns.keys()[0]]  # type: ignore[attr-defined]
    if session.get(model, key) is None:
        session.add(model(**values))
        session.flush()
