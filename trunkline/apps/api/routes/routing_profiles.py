from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope, isoformat
from trunkline.services import routing_profiles as profile_service


router = APIRouter(prefix="/routing-profiles", tags=["routing-profiles"], responses=DEFAULT_ERROR_RESPONSES)


class RoutingProfileFields(BaseModel):
    country: str | None = None
    region: str | None = None
    outbound_trunk_id: str | None = None
    outbound_provider_config: dict[str, Any] | None = None
    inbound_provider: str | None = None
    inbound_trunk_id: str | None = None
    inbound_provider_config: dict[str, Any] | None = None
    dispatch_provider: str | None = None
    dispatch_rule_id: str | None = None
    dispatch_metadata: dict[str, Any] | None = None
    compliance_requirements: dict[str, Any] | None = None
    recording_policy: dict[str, Any] | None = None

    model_config = {"extra": "forbid"}


class RoutingProfileCreateRequest(RoutingProfileFields):
    name: str
    outbound_provider: str
    # Also maps the new profile to this plan for the same locality.
    plan_code: str | None = None


class RoutingProfileUpdateRequest(RoutingProfileFields):
    name: str | None = None
    outbound_provider: str | None = None


class RoutingProfileResponse(BaseModel):
    id: str
    name: str
    country: str | None
    region: str | None
    outbound_provider: str
    outbound_trunk_id: str | None
    outbound_provider_config: dict[str, Any] | None
    inbound_provider: str | None
    inbound_trunk_id: str | None
    inbound_provider_config: dict[str, Any] | None
    dispatch_provider: str | None
    dispatch_rule_id: str | None
    dispatch_metadata: dict[str, Any] | None
    compliance_requirements: dict[str, Any] | None
    recording_policy: dict[str, Any] | None
    created_at: str | None
    updated_at: str | None


def _to_response(profile) -> RoutingProfileResponse:
    return RoutingProfileResponse(
        id=profile.id,
        name=profile.name,
        country=profile.country,
        region=profile.region,
        outbound_provider=profile.outbound_provider,
        outbound_trunk_id=profile.outbound_trunk_id,
        outbound_provider_config=profile.outbound_provider_config,
        inbound_provider=profile.inbound_provider,
        inbound_trunk_id=profile.inbound_trunk_id,
        inbound_provider_config=profile.inbound_provider_config,
        dispatch_provider=profile.dispatch_provider,
        dispatch_rule_id=profile.dispatch_rule_id,
        dispatch_metadata=profile.dispatch_metadata,
        compliance_requirements=profile.compliance_requirements,
        recording_policy=profile.recording_policy,
        created_at=isoformat(profile.created_at),
        updated_at=isoformat(profile.updated_at),
    )


@router.get("", response_model=SuccessEnvelope[list[RoutingProfileResponse]] | list[RoutingProfileResponse])
async def list_routing_profiles(
    country: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[RoutingProfileResponse]:
    profiles = await profile_service.list_routing_profiles(db, country=country)
    return [_to_response(profile) for profile in profiles]


@router.post("", status_code=201, response_model=SuccessEnvelope[RoutingProfileResponse] | RoutingProfileResponse)
async def create_routing_profile(
    payload: RoutingProfileCreateRequest, db: AsyncSession = Depends(get_db)
) -> RoutingProfileResponse:
    profile = await profile_service.create_routing_profile(db, payload.model_dump())
    return _to_response(profile)


@router.get("/{profile_id}", response_model=SuccessEnvelope[RoutingProfileResponse] | RoutingProfileResponse)
async def get_routing_profile(profile_id: str, db: AsyncSession = Depends(get_db)) -> RoutingProfileResponse:
    return _to_response(await profile_service.get_routing_profile(db, profile_id))


@router.put("/{profile_id}", response_model=SuccessEnvelope[RoutingProfileResponse] | RoutingProfileResponse)
async def update_routing_profile(
    profile_id: str, payload: RoutingProfileUpdateRequest, db: AsyncSession = Depends(get_db)
) -> RoutingProfileResponse:
    changes = payload.model_dump(exclude_unset=True)
    return _to_response(await profile_service.update_routing_profile(db, profile_id, changes))


@router.delete("/{profile_id}", status_code=204)
async def delete_routing_profile(profile_id: str, db: AsyncSession = Depends(get_db)) -> Response:
    await profile_service.delete_routing_profile(db, profile_id)
    return Response(status_code=204)
