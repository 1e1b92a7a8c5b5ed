from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import PlanRoutingProfile, RoutingProfile


async def get_routing_profile(session: AsyncSession, profile_id: str) -> RoutingProfile | None:
    result = await session.execute(select(RoutingProfile).where(RoutingProfile.id == profile_id))
    return result.scalar_one_or_none()


async def list_routing_profiles(session: AsyncSession, *, country: str | None = None) -> list[RoutingProfile]:
    stmt = select(RoutingProfile)
    if country:
        stmt = stmt.where(RoutingProfile.country == country)
    result = await session.execute(stmt.order_by(RoutingProfile.name, RoutingProfile.id))
    return list(result.scalars().all())


async def existing_profile_ids(session: AsyncSession, profile_ids: set[str]) -> frozenset[str]:
    if not profile_ids:
        return frozenset()
    result = await session.execute(select(RoutingProfile.id).where(RoutingProfile.id.in_(profile_ids)))
    return frozenset(result.scalars().all())


async def count_profile_mappings(session: AsyncSession, profile_id: str) -> int:
    count = await session.scalar(
        select(func.count())
        .select_from(PlanRoutingProfile)
        .where(PlanRoutingProfile.routing_profile_id == profile_id)
    )
    return int(count or 0)
