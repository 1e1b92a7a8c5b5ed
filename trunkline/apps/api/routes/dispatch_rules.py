from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope, isoformat
from trunkline.services import dispatch_rules as rule_service


router = APIRouter(prefix="/dispatch-rules", tags=["dispatch-rules"], responses=DEFAULT_ERROR_RESPONSES)


class TrunkIdsPatch(BaseModel):
    set: list[str] | None = None
    add: list[str] | None = None
    remove: list[str] | None = None

    model_config = {"extra": "forbid"}


class DispatchRuleCreateRequest(BaseModel):
    name: str
    type: str
    rule_id: str | None = None
    trunk_ids: list[str] = Field(default_factory=list)
    room_prefix: str | None = None
    room_name: str | None = None
    pin: str | None = None
    randomize: bool | None = None
    agent_name: str | None = None
    auto_dispatch: bool = False
    hide_phone_number: bool = False
    attributes: dict[str, str] | None = None
    metadata: str | None = None
    status: str | None = None

    model_config = {"extra": "forbid"}


class DispatchRuleUpdateRequest(BaseModel):
    name: str | None = None
    type: str | None = None
    rule_id: str | None = None
    trunk_ids: list[str] | TrunkIdsPatch | None = None
    room_prefix: str | None = None
    room_name: str | None = None
    pin: str | None = None
    randomize: bool | None = None
    agent_name: str | None = None
    auto_dispatch: bool | None = None
    hide_phone_number: bool | None = None
    attributes: dict[str, str] | None = None
    metadata: str | None = None
    status: str | None = None

    model_config = {"extra": "forbid"}


class DispatchRuleResponse(BaseModel):
    id: str
    name: str
    type: str
    rule_id: str | None
    trunk_ids: list[str]
    room_prefix: str | None
    room_name: str | None
    pin: str | None
    randomize: bool | None
    agent_name: str | None
    auto_dispatch: bool
    hide_phone_number: bool
    attributes: dict[str, str] | None
    metadata: str | None
    status: str | None
    created_at: str | None
    updated_at: str | None


def _to_service_payload(values: dict[str, Any]) -> dict[str, Any]:
    if "metadata" in values:
        values["metadata_text"] = values.pop("metadata")
    for flag in ("auto_dispatch", "hide_phone_number"):
        # Boolean flags are NOT NULL; null means "leave unchanged".
        if flag in values and values[flag] is None:
            values.pop(flag)
    return values


def _to_response(rule) -> DispatchRuleResponse:
    return DispatchRuleResponse(
        id=rule.id,
        name=rule.name,
        type=rule.type,
        rule_id=rule.rule_id,
        trunk_ids=list(rule.trunk_ids or []),
        room_prefix=rule.room_prefix,
        room_name=rule.room_name,
        pin=rule.pin,
        randomize=rule.randomize,
        agent_name=rule.agent_name,
        auto_dispatch=bool(rule.auto_dispatch),
        hide_phone_number=bool(rule.hide_phone_number),
        attributes=rule.attributes,
        metadata=rule.metadata_text,
        status=rule.status,
        created_at=isoformat(rule.created_at),
        updated_at=isoformat(rule.updated_at),
    )


@router.get("", response_model=SuccessEnvelope[list[DispatchRuleResponse]] | list[DispatchRuleResponse])
async def list_dispatch_rules(db: AsyncSession = Depends(get_db)) -> list[DispatchRuleResponse]:
    return [_to_response(rule) for rule in await rule_service.list_dispatch_rules(db)]


@router.post("", status_code=201, response_model=SuccessEnvelope[DispatchRuleResponse] | DispatchRuleResponse)
async def create_dispatch_rule(
    payload: DispatchRuleCreateRequest, db: AsyncSession = Depends(get_db)
) -> DispatchRuleResponse:
    rule = await rule_service.create_dispatch_rule(db, _to_service_payload(payload.model_dump()))
    return _to_response(rule)


@router.get("/{rule_id}", response_model=SuccessEnvelope[DispatchRuleResponse] | DispatchRuleResponse)
async def get_dispatch_rule(rule_id: str, db: AsyncSession = Depends(get_db)) -> DispatchRuleResponse:
    return _to_response(await rule_service.get_dispatch_rule(db, rule_id))


@router.put("/{rule_id}", response_model=SuccessEnvelope[DispatchRuleResponse] | DispatchRuleResponse)
async def update_dispatch_rule(
    rule_id: str, payload: DispatchRuleUpdateRequest, db: AsyncSession = Depends(get_db)
) -> DispatchRuleResponse:
    changes = _to_service_payload(payload.model_dump(exclude_unset=True))
    return _to_response(await rule_service.update_dispatch_rule(db, rule_id, changes))


@router.delete("/{rule_id}", status_code=204)
async def delete_dispatch_rule(rule_id: str, db: AsyncSession = Depends(get_db)) -> Response:
    await rule_service.delete_dispatch_rule(db, rule_id)
    return Response(status_code=204)
