from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope, isoformat
from trunkline.services import plans as plan_service


router = APIRouter(prefix="/plans", tags=["plans"], responses=DEFAULT_ERROR_RESPONSES)


class PlanCreateRequest(BaseModel):
    code: str
    name: str | None = None
    billing_product_id: str | None = None
    monthly_price_cents: int = 0
    per_number_monthly_price_cents: int = 0
    included_phone_numbers: int = 0
    included_ai_minutes: int = 0
    included_pstn_minutes: int = 0
    included_realtime_minutes: int = 0
    included_transcription_minutes: int = 0
    allowed_countries: list[str] = Field(default_factory=list)
    default_routing_profile_template_id: str | None = None
    default_recording_policy: dict[str, Any] | None = None
    compliance_features: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"extra": "forbid"}


class PlanUpdateRequest(BaseModel):
    # code is accepted only so a change can be rejected with a field-scoped violation.
    code: str | None = None
    name: str | None = None
    billing_product_id: str | None = None
    monthly_price_cents: int | None = None
    per_number_monthly_price_cents: int | None = None
    included_phone_numbers: int | None = None
    included_ai_minutes: int | None = None
    included_pstn_minutes: int | None = None
    included_realtime_minutes: int | None = None
    included_transcription_minutes: int | None = None
    allowed_countries: list[str] | None = None
    default_routing_profile_template_id: str | None = None
    default_recording_policy: dict[str, Any] | None = None
    compliance_features: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"extra": "forbid"}


class PlanResponse(BaseModel):
    id: str
    code: str
    name: str | None
    billing_product_id: str | None
    monthly_price_cents: int
    per_number_monthly_price_cents: int
    included_phone_numbers: int
    included_ai_minutes: int
    included_pstn_minutes: int
    included_realtime_minutes: int
    included_transcription_minutes: int
    allowed_countries: list[str]
    default_routing_profile_template_id: str | None
    default_recording_policy: dict[str, Any] | None
    compliance_features: dict[str, Any] | None
    metadata: dict[str, Any] | None
    created_at: str | None
    updated_at: str | None


def _to_service_payload(values: dict[str, Any]) -> dict[str, Any]:
    if "metadata" in values:
        values["metadata_json"] = values.pop("metadata")
    return values


def _to_response(plan) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        code=plan.code,
        name=plan.name,
        billing_product_id=plan.billing_product_id,
        monthly_price_cents=plan.monthly_price_cents,
        per_number_monthly_price_cents=plan.per_number_monthly_price_cents,
        included_phone_numbers=plan.included_phone_numbers,
        included_ai_minutes=plan.included_ai_minutes,
        included_pstn_minutes=plan.included_pstn_minutes,
        included_realtime_minutes=plan.included_realtime_minutes,
        included_transcription_minutes=plan.included_transcription_minutes,
        allowed_countries=list(plan.allowed_countries or []),
        default_routing_profile_template_id=plan.default_routing_profile_template_id,
        default_recording_policy=plan.default_recording_policy,
        compliance_features=plan.compliance_features,
        metadata=plan.metadata_json,
        created_at=isoformat(plan.created_at),
        updated_at=isoformat(plan.updated_at),
    )


# Allow legacy unwrapped responses; v1 middleware wraps envelopes.
@router.get("", response_model=SuccessEnvelope[list[PlanResponse]] | list[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db)) -> list[PlanResponse]:
    return [_to_response(plan) for plan in await plan_service.list_plans(db)]


@router.post("", status_code=201, response_model=SuccessEnvelope[PlanResponse] | PlanResponse)
async def create_plan(payload: PlanCreateRequest, db: AsyncSession = Depends(get_db)) -> PlanResponse:
    plan = await plan_service.create_plan(db, _to_service_payload(payload.model_dump()))
    return _to_response(plan)


@router.get("/{plan_id}", response_model=SuccessEnvelope[PlanResponse] | PlanResponse)
async def get_plan(plan_id: str, db: AsyncSession = Depends(get_db)) -> PlanResponse:
    return _to_response(await plan_service.get_plan(db, plan_id))


@router.put("/{plan_id}", response_model=SuccessEnvelope[PlanResponse] | PlanResponse)
async def update_plan(
    plan_id: str, payload: PlanUpdateRequest, db: AsyncSession = Depends(get_db)
) -> PlanResponse:
    # Only fields present in the body are applied.
    changes = _to_service_payload(payload.model_dump(exclude_unset=True))
    return _to_response(await plan_service.update_plan(db, plan_id, changes))


@router.delete("/{plan_id}", status_code=204)
async def delete_plan(plan_id: str, db: AsyncSession = Depends(get_db)) -> Response:
    await plan_service.delete_plan(db, plan_id)
    return Response(status_code=204)
