from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import PlanRoutingProfile


async def get_mapping(session: AsyncSession, mapping_id: str) -> PlanRoutingProfile | None:
    result = await session.execute(select(PlanRoutingProfile).where(PlanRoutingProfile.id == mapping_id))
    return result.scalar_one_or_none()


async def list_mappings(session: AsyncSession, *, plan_code: str | None = None) -> list[PlanRoutingProfile]:
    stmt = select(PlanRoutingProfile)
    if plan_code:
        stmt = stmt.where(PlanRoutingProfile.plan_code == plan_code)
    result = await session.execute(
        stmt.order_by(PlanRoutingProfile.plan_code, PlanRoutingProfile.created_at, PlanRoutingProfile.id)
    )
    return list(result.scalars().all())


async def find_locality_conflict(
    session: AsyncSession,
    *,
    plan_code: str,
    country: str | None,
    region: str | None,
    exclude_id: str | None = None,
) -> PlanRoutingProfile | None:
    # At most one mapping per (plan, country) and per (plan, region).
    stmt = select(PlanRoutingProfile).where(PlanRoutingProfile.plan_code == plan_code)
    if country:
        stmt = stmt.where(PlanRoutingProfile.country == country)
    else:
        stmt = stmt.where(PlanRoutingProfile.region == region)
    if exclude_id:
        stmt = stmt.where(PlanRoutingProfile.id != exclude_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none()
