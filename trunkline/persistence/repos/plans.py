from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import Plan, PlanRoutingProfile


async def get_plan(session: AsyncSession, plan_id: str) -> Plan | None:
    result = await session.execute(select(Plan).where(Plan.id == plan_id))
    return result.scalar_one_or_none()


async def get_plan_by_code(session: AsyncSession, code: str) -> Plan | None:
    result = await session.execute(select(Plan).where(Plan.code == code))
    return result.scalar_one_or_none()


async def list_plans(session: AsyncSession) -> list[Plan]:
    # Stable ordering keeps console listings deterministic.
    result = await session.execute(select(Plan).order_by(Plan.code, Plan.id))
    return list(result.scalars().all())


async def count_plan_mappings(session: AsyncSession, code: str) -> int:
    count = await session.scalar(
        select(func.count()).select_from(PlanRoutingProfile).where(PlanRoutingProfile.plan_code == code)
    )
    return int(count or 0)


async def count_plans_using_template(session: AsyncSession, routing_profile_id: str) -> int:
    count = await session.scalar(
        select(func.count())
        .select_from(Plan)
        .where(Plan.default_routing_profile_template_id == routing_profile_id)
    )
    return int(count or 0)
