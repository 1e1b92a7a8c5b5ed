from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope, isoformat
from trunkline.services import plan_routing_profiles as mapping_service


router = APIRouter(
    prefix="/plan-routing-profiles", tags=["plan-routing-profiles"], responses=DEFAULT_ERROR_RESPONSES
)


class MappingCreateRequest(BaseModel):
    plan_code: str
    routing_profile_id: str
    country: str | None = None
    region: str | None = None

    model_config = {"extra": "forbid"}


class MappingUpdateRequest(BaseModel):
    plan_code: str | None = None
    routing_profile_id: str | None = None
    country: str | None = None
    region: str | None = None

    model_config = {"extra": "forbid"}


class MappingResponse(BaseModel):
    id: str
    plan_code: str
    routing_profile_id: str
    country: str | None
    region: str | None
    created_at: str | None
    updated_at: str | None


def _to_response(mapping) -> MappingResponse:
    return MappingResponse(
        id=mapping.id,
        plan_code=mapping.plan_code,
        routing_profile_id=mapping.routing_profile_id,
        country=mapping.country,
        region=mapping.region,
        created_at=isoformat(mapping.created_at),
        updated_at=isoformat(mapping.updated_at),
    )


@router.get("", response_model=SuccessEnvelope[list[MappingResponse]] | list[MappingResponse])
async def list_mappings(
    plan_code: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[MappingResponse]:
    return [_to_response(mapping) for mapping in await mapping_service.list_mappings(db, plan_code=plan_code)]


@router.post("", status_code=201, response_model=SuccessEnvelope[MappingResponse] | MappingResponse)
async def create_mapping(payload: MappingCreateRequest, db: AsyncSession = Depends(get_db)) -> MappingResponse:
    return _to_response(await mapping_service.create_mapping(db, payload.model_dump()))


@router.get("/{mapping_id}", response_model=SuccessEnvelope[MappingResponse] | MappingResponse)
async def get_mapping(mapping_id: str, db: AsyncSession = Depends(get_db)) -> MappingResponse:
    return _to_response(await mapping_service.get_mapping(db, mapping_id))


@router.put("/{mapping_id}", response_model=SuccessEnvelope[MappingResponse] | MappingResponse)
async def update_mapping(
    mapping_id: str, payload: MappingUpdateRequest, db: AsyncSession = Depends(get_db)
) -> MappingResponse:
    changes = payload.model_dump(exclude_unset=True)
    return _to_response(await mapping_service.update_mapping(db, mapping_id, changes))


@router.delete("/{mapping_id}", status_code=204)
async def delete_mapping(mapping_id: str, db: AsyncSession = Depends(get_db)) -> Response:
    await mapping_service.delete_mapping(db, mapping_id)
    return Response(status_code=204)
