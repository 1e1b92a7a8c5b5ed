from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db, get_provisioner
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope, isoformat
from trunkline.providers.provisioning.base import ProvisioningProvider
from trunkline.services import trunks as trunk_service
from trunkline.services.trunk_usage import routing_profiles_by_trunk


router = APIRouter(prefix="/trunks", tags=["trunks"], responses=DEFAULT_ERROR_RESPONSES)


class TrunkCreateRequest(BaseModel):
    # Enumerated fields stay plain strings so the validation engine reports them per field.
    id: str | None = None
    name: str
    type: str
    direction: str | None = None
    status: str | None = None
    provider: str | None = None
    external_id: str | None = None
    address: str | None = None
    numbers: list[str] | None = None
    auth_username: str | None = None
    auth_password: str | None = None
    allowed_numbers: list[str] | None = None
    allowed_addresses: list[str] | None = None
    krisp_enabled: bool | None = None
    termination_sip_domain: str | None = None
    credential_mode: str | None = None
    credential_list_sid: str | None = None
    credential_list_name: str | None = None
    username: str | None = None
    password: str | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"extra": "forbid"}


class TrunkUpdateRequest(BaseModel):
    name: str | None = None
    type: str | None = None
    direction: str | None = None
    status: str | None = None
    provider: str | None = None
    external_id: str | None = None
    address: str | None = None
    numbers: list[str] | None = None
    auth_username: str | None = None
    allowed_numbers: list[str] | None = None
    allowed_addresses: list[str] | None = None
    krisp_enabled: bool | None = None
    termination_sip_domain: str | None = None
    credential_list_sid: str | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"extra": "forbid"}


class TrunkResponse(BaseModel):
    id: str
    name: str
    type: str
    direction: str
    status: str
    provider: str
    external_id: str | None
    address: str | None
    numbers: list[str]
    auth_username: str | None
    allowed_numbers: list[str] | None
    allowed_addresses: list[str] | None
    krisp_enabled: bool | None
    termination_sip_domain: str | None
    credential_list_sid: str | None
    metadata: dict[str, Any] | None
    created_at: str | None
    updated_at: str | None


class TrunkUsageResponse(BaseModel):
    trunk_id: str
    outbound: int
    inbound: int
    total: int
    in_use: bool


class ProfileReference(BaseModel):
    id: str
    name: str
    country: str | None
    region: str | None


class TrunkProfilesResponse(BaseModel):
    trunk_id: str
    outbound: list[ProfileReference]
    inbound: list[ProfileReference]


def _to_service_payload(values: dict[str, Any]) -> dict[str, Any]:
    if "metadata" in values:
        values["metadata_json"] = values.pop("metadata")
    return values


def _to_response(trunk) -> TrunkResponse:
    return TrunkResponse(
        id=trunk.id,
        name=trunk.name,
        type=trunk.type,
        direction=trunk.direction,
        status=trunk.status,
        provider=trunk.provider,
        external_id=trunk.external_id,
        address=trunk.address,
        numbers=list(trunk.numbers or []),
        auth_username=trunk.auth_username,
        allowed_numbers=trunk.allowed_numbers,
        allowed_addresses=trunk.allowed_addresses,
        krisp_enabled=trunk.krisp_enabled,
        termination_sip_domain=trunk.termination_sip_domain,
        credential_list_sid=trunk.credential_list_sid,
        metadata=trunk.metadata_json,
        created_at=isoformat(trunk.created_at),
        updated_at=isoformat(trunk.updated_at),
    )


def _profile_reference(profile) -> ProfileReference:
    return ProfileReference(id=profile.id, name=profile.name, country=profile.country, region=profile.region)


@router.get("", response_model=SuccessEnvelope[list[TrunkResponse]] | list[TrunkResponse])
async def list_trunks(
    provider: str | None = Query(default=None),
    trunk_type: str | None = Query(default=None, alias="type"),
    direction: str | None = Query(default=None),
    status: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[TrunkResponse]:
    trunks = await trunk_service.list_trunks(
        db, provider=provider, trunk_type=trunk_type, direction=direction, status=status
    )
    return [_to_response(trunk) for trunk in trunks]


@router.post("", status_code=201, response_model=SuccessEnvelope[TrunkResponse] | TrunkResponse)
async def create_trunk(
    payload: TrunkCreateRequest,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> TrunkResponse:
    values = _to_service_payload(payload.model_dump(exclude_none=True))
    trunk = await trunk_service.create_trunk(db, provisioner, values)
    return _to_response(trunk)


@router.get("/{trunk_id}", response_model=SuccessEnvelope[TrunkResponse] | TrunkResponse)
async def get_trunk(trunk_id: str, db: AsyncSession = Depends(get_db)) -> TrunkResponse:
    return _to_response(await trunk_service.get_trunk(db, trunk_id))


@router.put("/{trunk_id}", response_model=SuccessEnvelope[TrunkResponse] | TrunkResponse)
async def update_trunk(
    trunk_id: str, payload: TrunkUpdateRequest, db: AsyncSession = Depends(get_db)
) -> TrunkResponse:
    changes = _to_service_payload(payload.model_dump(exclude_unset=True))
    return _to_response(await trunk_service.update_trunk(db, trunk_id, changes))


@router.delete("/{trunk_id}", status_code=204)
async def delete_trunk(
    trunk_id: str,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> Response:
    await trunk_service.delete_trunk(db, provisioner, trunk_id)
    return Response(status_code=204)


@router.get("/{trunk_id}/usage", response_model=SuccessEnvelope[TrunkUsageResponse] | TrunkUsageResponse)
async def get_trunk_usage(trunk_id: str, db: AsyncSession = Depends(get_db)) -> TrunkUsageResponse:
    usage = await trunk_service.get_trunk_usage(db, trunk_id)
    return TrunkUsageResponse(
        trunk_id=trunk_id,
        outbound=usage.outbound,
        inbound=usage.inbound,
        total=usage.total,
        in_use=usage.in_use,
    )


@router.get(
    "/{trunk_id}/routing-profiles",
    response_model=SuccessEnvelope[TrunkProfilesResponse] | TrunkProfilesResponse,
)
async def list_trunk_routing_profiles(trunk_id: str, db: AsyncSession = Depends(get_db)) -> TrunkProfilesResponse:
    # Lets operators see which profiles block a delete.
    await trunk_service.get_trunk(db, trunk_id)
    profiles = await routing_profiles_by_trunk(db, trunk_id)
    return TrunkProfilesResponse(
        trunk_id=trunk_id,
        outbound=[_profile_reference(profile) for profile in profiles["outbound"]],
        inbound=[_profile_reference(profile) for profile in profiles["inbound"]],
    )
