from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope
from trunkline.services.routing import resolve_route, route_to_dict


router = APIRouter(prefix="/routing", tags=["routing"], responses=DEFAULT_ERROR_RESPONSES)


class ResolveRequest(BaseModel):
    plan_code: str
    direction: str
    country: str | None = None
    region: str | None = None

    model_config = {"extra": "forbid"}


class ResolvedTrunk(BaseModel):
    id: str
    name: str
    type: str
    direction: str
    status: str
    external_id: str | None


class ResolvedDispatchRule(BaseModel):
    id: str
    name: str
    type: str
    trunk_ids: list[str]
    room_prefix: str | None
    room_name: str | None
    pin: str | None
    randomize: bool | None
    agent_name: str | None
    auto_dispatch: bool
    hide_phone_number: bool


class ResolveResponse(BaseModel):
    plan_code: str
    direction: str
    routing_profile_id: str
    matched_by: str
    trunk: ResolvedTrunk
    dispatch_rule: ResolvedDispatchRule | None


@router.post("/resolve", response_model=SuccessEnvelope[ResolveResponse] | ResolveResponse)
async def resolve(payload: ResolveRequest, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    # Call-path lookup: read-only, never commits.
    route = await resolve_route(
        db,
        plan_code=payload.plan_code,
        direction=payload.direction,
        country=payload.country,
        region=payload.region,
    )
    return route_to_dict(route)
