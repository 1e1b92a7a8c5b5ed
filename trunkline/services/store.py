from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession


def new_id() -> str:
    return str(uuid4())


def row_values(row: Any, fields: Iterable[str]) -> dict[str, Any]:
    return {name: getattr(row, name) for name in fields}


def merge_patch(current: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    # Last-write-wins overlay; keys absent from the patch keep their stored values.
    merged = dict(current)
    merged.update(patch)
    return merged


def apply_values(row: Any, values: Mapping[str, Any], fields: Iterable[str]) -> None:
    for name in fields:
        if name in values:
            setattr(row, name, values[name])


async def commit_or_raise(
    session: AsyncSession,
    on_conflict: Callable[[IntegrityError], Exception],
) -> None:
    # Constraint violations roll back and surface as domain errors instead of raw SQL failures.
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise on_conflict(exc) from exc
