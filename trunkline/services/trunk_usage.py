from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import RoutingProfile


class _TrunkReferrer(Protocol):
    outbound_trunk_id: str | None
    inbound_trunk_id: str | None


@dataclass(frozen=True)
class TrunkUsage:
    # Routing profile reference counts for one trunk, per leg.
    outbound: int
    inbound: int

    @property
    def total(self) -> int:
        return self.outbound + self.inbound

    @property
    def in_use(self) -> bool:
        return self.total > 0

    def as_dict(self) -> dict[str, int]:
        return {"outbound": self.outbound, "inbound": self.inbound}


def count_trunk_usage(profiles: Iterable[_TrunkReferrer], trunk_id: str) -> TrunkUsage:
    # Pure counterpart of trunk_usage() for in-memory snapshots.
    outbound = 0
    inbound = 0
    for profile in profiles:
        if profile.outbound_trunk_id == trunk_id:
            outbound += 1
        if profile.inbound_trunk_id == trunk_id:
            inbound += 1
    return TrunkUsage(outbound=outbound, inbound=inbound)


async def trunk_usage(session: AsyncSession, trunk_id: str) -> TrunkUsage:
    # Scan on demand; a maintained counter could drift and undercount under concurrent edits.
    outbound = await session.scalar(
        select(func.count()).select_from(RoutingProfile).where(RoutingProfile.outbound_trunk_id == trunk_id)
    )
    inbound = await session.scalar(
        select(func.count()).select_from(RoutingProfile).where(RoutingProfile.inbound_trunk_id == trunk_id)
    )
    return TrunkUsage(outbound=int(outbound or 0), inbound=int(inbound or 0))


async def routing_profiles_by_trunk(
    session: AsyncSession, trunk_id: str
) -> dict[str, list[RoutingProfile]]:
    # Explain a blocked delete by listing the referencing profiles per leg.
    outbound = await session.execute(
        select(RoutingProfile)
        .where(RoutingProfile.outbound_trunk_id == trunk_id)
        .order_by(RoutingProfile.name, RoutingProfile.id)
    )
    inbound = await session.execute(
        select(RoutingProfile)
        .where(RoutingProfile.inbound_trunk_id == trunk_id)
        .order_by(RoutingProfile.name, RoutingProfile.id)
    )
    return {
        "outbound": list(outbound.scalars().all()),
        "inbound": list(inbound.scalars().all()),
    }
