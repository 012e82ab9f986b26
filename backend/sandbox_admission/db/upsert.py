"""Conflict-ignoring inserts for natural-key bootstrap rows."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

if TYPE_CHECKING:
    from sqlmodel import SQLModel
    from sqlmodel.ext.asyncio.session import AsyncSession


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def insert_ignore(
    session: AsyncSession,
    model: type[SQLModel],
    rows: Sequence[Mapping[str, Any]],
    *,
    conflict_columns: Sequence[str],
) -> int:
    """Insert rows, silently skipping any that hit a uniqueness conflict.

    Returns the number of rows actually inserted. The caller owns the commit.
    """
    if not rows:
        return 0
    table = model.__table__  # type: ignore[attr-defined]
    values = [dict(row) for row in rows]
    dialect = dialect_name(session)
    if dialect == "postgresql":
        statement = pg_insert(table).values(values).on_conflict_do_nothing(
            index_elements=list(conflict_columns),
        )
        return (await session.exec(statement)).rowcount or 0
    if dialect == "sqlite":
        statement = sqlite_insert(table).values(values).on_conflict_do_nothing(
            index_elements=list(conflict_columns),
        )
        return (await session.exec(statement)).rowcount or 0

    inserted = 0
    for row in values:
        try:
            async with session.begin_nested():
                await session.exec(insert(table).values(row))
        except IntegrityError:
            continue
        inserted += 1
    return inserted
