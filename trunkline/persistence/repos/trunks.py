from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import Trunk


async def get_trunk(session: AsyncSession, trunk_id: str) -> Trunk | None:
    result = await session.execute(select(Trunk).where(Trunk.id == trunk_id))
    return result.scalar_one_or_none()


async def lock_trunk(session: AsyncSession, trunk_id: str) -> Trunk | None:
    # Row lock serializes deletes against concurrent profile writes; SQLite ignores FOR UPDATE.
    result = await session.execute(select(Trunk).where(Trunk.id == trunk_id).with_for_update())
    return result.scalar_one_or_none()


async def list_trunks(
    session: AsyncSession,
    *,
    provider: str | None = None,
    trunk_type: str | None = None,
    direction: str | None = None,
    status: str | None = None,
) -> list[Trunk]:
    stmt = select(Trunk)
    if provider:
        stmt = stmt.where(Trunk.provider == provider)
    if trunk_type:
        stmt = stmt.where(Trunk.type == trunk_type)
    if direction:
        stmt = stmt.where(Trunk.direction == direction)
    if status:
        stmt = stmt.where(Trunk.status == status)
    result = await session.execute(stmt.order_by(Trunk.name, Trunk.id))
    return list(result.scalars().all())


async def trunk_directions(session: AsyncSession, trunk_ids: set[str] | None = None) -> dict[str, str]:
    # Lookup table for validation: trunk id -> direction.
    stmt = select(Trunk.id, Trunk.direction)
    if trunk_ids is not None:
        if not trunk_ids:
            return {}
        stmt = stmt.where(Trunk.id.in_(trunk_ids))
    result = await session.execute(stmt)
    return {row.id: row.direction for row in result}


async def count_trunks_using_credential_list(session: AsyncSession, sid: str) -> int:
    count = await session.scalar(
        select(func.count()).select_from(Trunk).where(Trunk.credential_list_sid == sid)
    )
    return int(count or 0)
