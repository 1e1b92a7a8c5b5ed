from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import DispatchRule, RoutingProfile


async def get_dispatch_rule(session: AsyncSession, rule_id: str) -> DispatchRule | None:
    result = await session.execute(select(DispatchRule).where(DispatchRule.id == rule_id))
    return result.scalar_one_or_none()


async def list_dispatch_rules(session: AsyncSession) -> list[DispatchRule]:
    result = await session.execute(select(DispatchRule).order_by(DispatchRule.name, DispatchRule.id))
    return list(result.scalars().all())


async def dispatch_rule_coverage(session: AsyncSession, rule_ids: set[str]) -> dict[str, tuple[str, ...]]:
    # Lookup table for validation: rule id -> covered trunk ids.
    if not rule_ids:
        return {}
    result = await session.execute(
        select(DispatchRule.id, DispatchRule.trunk_ids).where(DispatchRule.id.in_(rule_ids))
    )
    return {row.id: tuple(row.trunk_ids or ()) for row in result}


async def count_profiles_using_rule(session: AsyncSession, rule_id: str) -> int:
    count = await session.scalar(
        select(func.count()).select_from(RoutingProfile).where(RoutingProfile.dispatch_rule_id == rule_id)
    )
    return int(count or 0)


async def list_rules_covering_trunk(session: AsyncSession, trunk_id: str) -> list[DispatchRule]:
    # trunk_ids is a JSON array; match in Python so SQLite and Postgres agree.
    rules = await list_dispatch_rules(session)
    return [rule for rule in rules if trunk_id in (rule.trunk_ids or [])]
