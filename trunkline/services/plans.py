from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.errors import DuplicateEntity, EntityInUse, EntityNotFound
from trunkline.domain.countries import normalize_country
from trunkline.domain.models import Plan
from trunkline.persistence.repos import plans as plans_repo
from trunkline.persistence.repos import routing_profiles as profiles_repo
from trunkline.services.store import apply_values, commit_or_raise, merge_patch, new_id, row_values
from trunkline.services.validation import PLAN_AMOUNT_FIELDS, ValidationContext, validate


logger = logging.getLogger(__name__)

PLAN_FIELDS = (
    "code",
    "name",
    "billing_product_id",
    *PLAN_AMOUNT_FIELDS,
    "allowed_countries",
    "default_routing_profile_template_id",
    "default_recording_policy",
    "compliance_features",
    "metadata_json",
)


def normalize_plan_payload(payload: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(payload)
    if isinstance(normalized.get("code"), str):
        normalized["code"] = normalized["code"].strip().upper()
    if "allowed_countries" in normalized:
        # Upper-case and de-duplicate while keeping operator order.
        seen: list[str] = []
        for value in normalized.get("allowed_countries") or []:
            code = normalize_country(value) if isinstance(value, str) else value
            if code is not None and code not in seen:
                seen.append(code)
        normalized["allowed_countries"] = seen
    if normalized.get("default_routing_profile_template_id") == "":
        normalized["default_routing_profile_template_id"] = None
    for name in PLAN_AMOUNT_FIELDS:
        # Counters are NOT NULL; an explicit null leaves the stored value alone.
        if name in normalized and normalized[name] is None:
            normalized.pop(name)
    return normalized


async def _context(session: AsyncSession, payload: dict[str, Any], existing: dict[str, Any] | None) -> ValidationContext:
    template_id = payload.get("default_routing_profile_template_id")
    known = await profiles_repo.existing_profile_ids(session, {template_id} if template_id else set())
    return ValidationContext(existing=existing, routing_profile_ids=known)


async def list_plans(session: AsyncSession) -> list[Plan]:
    return await plans_repo.list_plans(session)


async def get_plan(session: AsyncSession, plan_id: str) -> Plan:
    plan = await plans_repo.get_plan(session, plan_id)
    if plan is None:
        raise EntityNotFound("plan", plan_id)
    return plan


async def create_plan(session: AsyncSession, payload: dict[str, Any]) -> Plan:
    values = normalize_plan_payload(payload)
    validate("plan", values, await _context(session, values, None)).raise_for_violations()
    code = values["code"]
    if await plans_repo.get_plan_by_code(session, code) is not None:
        raise DuplicateEntity("plan", "code", code)

    plan = Plan(id=new_id(), allowed_countries=[])
    apply_values(plan, values, PLAN_FIELDS)
    session.add(plan)
    await commit_or_raise(session, lambda _exc: DuplicateEntity("plan", "code", code))
    logger.info("plan_created plan_id=%s code=%s", plan.id, code)
    return plan


async def update_plan(session: AsyncSession, plan_id: str, patch: dict[str, Any]) -> Plan:
    plan = await get_plan(session, plan_id)
    current = row_values(plan, PLAN_FIELDS)
    changes = normalize_plan_payload(patch)
    merged = merge_patch(current, changes)
    validate("plan", merged, await _context(session, merged, {"code": plan.code})).raise_for_violations()

    apply_values(plan, changes, PLAN_FIELDS)
    await commit_or_raise(session, lambda _exc: DuplicateEntity("plan", "code", plan.code))
    logger.info("plan_updated plan_id=%s fields=%s", plan_id, ",".join(sorted(changes)))
    return plan


async def delete_plan(session: AsyncSession, plan_id: str) -> None:
    plan = await get_plan(session, plan_id)
    mappings = await plans_repo.count_plan_mappings(session, plan.code)
    if mappings:
        raise EntityInUse("plan", plan_id, {"mappings": mappings})
    await session.delete(plan)
    try:
        await session.commit()
    except IntegrityError as exc:
        # A mapping was added between the count and the delete.
        await session.rollback()
        mappings = await plans_repo.count_plan_mappings(session, plan.code)
        raise EntityInUse("plan", plan_id, {"mappings": mappings}) from exc
    logger.info("plan_deleted plan_id=%s code=%s", plan_id, plan.code)
