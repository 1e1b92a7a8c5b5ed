from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.errors import DuplicateEntity, EntityNotFound, UnknownPlan
from trunkline.domain.countries import normalize_country, normalize_region
from trunkline.domain.models import PlanRoutingProfile
from trunkline.persistence.repos import plan_routing_profiles as mappings_repo
from trunkline.persistence.repos import plans as plans_repo
from trunkline.persistence.repos import routing_profiles as profiles_repo
from trunkline.services.store import apply_values, commit_or_raise, merge_patch, new_id, row_values
from trunkline.services.validation import ValidationContext, validate


logger = logging.getLogger(__name__)

MAPPING_FIELDS = ("plan_code", "routing_profile_id", "country", "region")


def normalize_locality(payload: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(payload)
    if "country" in normalized:
        normalized["country"] = normalize_country(normalized["country"])
    if "region" in normalized:
        normalized["region"] = normalize_region(normalized["region"])
    return normalized


def _conflict(values: dict[str, Any]) -> DuplicateEntity:
    if values.get("country"):
        return DuplicateEntity("plan_routing_profile", "country", f"{values['plan_code']}/{values['country']}")
    return DuplicateEntity("plan_routing_profile", "region", f"{values['plan_code']}/{values['region']}")


async def _validate(session: AsyncSession, values: dict[str, Any], exclude_id: str | None = None) -> None:
    # Unknown plans fail before field validation so callers see the typed error.
    if await plans_repo.get_plan_by_code(session, values.get("plan_code") or "") is None:
        raise UnknownPlan(values.get("plan_code") or "")
    profile_id = values.get("routing_profile_id")
    known = await profiles_repo.existing_profile_ids(session, {profile_id} if profile_id else set())
    validate("plan_routing_profile", values, ValidationContext(routing_profile_ids=known)).raise_for_violations()
    conflict = await mappings_repo.find_locality_conflict(
        session,
        plan_code=values["plan_code"],
        country=values.get("country"),
        region=values.get("region"),
        exclude_id=exclude_id,
    )
    if conflict is not None:
        raise _conflict(values)


async def list_mappings(session: AsyncSession, *, plan_code: str | None = None) -> list[PlanRoutingProfile]:
    return await mappings_repo.list_mappings(session, plan_code=(plan_code or "").strip().upper() or None)


async def get_mapping(session: AsyncSession, mapping_id: str) -> PlanRoutingProfile:
    mapping = await mappings_repo.get_mapping(session, mapping_id)
    if mapping is None:
        raise EntityNotFound("plan_routing_profile", mapping_id)
    return mapping


async def add_mapping(session: AsyncSession, payload: dict[str, Any]) -> PlanRoutingProfile:
    """Validate and stage a mapping without committing."""
    values = normalize_locality(payload)
    values["plan_code"] = str(values.get("plan_code") or "").strip().upper()
    await _validate(session, values)
    mapping = PlanRoutingProfile(id=new_id())
    apply_values(mapping, values, MAPPING_FIELDS)
    session.add(mapping)
    return mapping


async def create_mapping(session: AsyncSession, payload: dict[str, Any]) -> PlanRoutingProfile:
    mapping = await add_mapping(session, payload)
    values = row_values(mapping, MAPPING_FIELDS)
    await commit_or_raise(session, lambda _exc: _conflict(values))
    logger.info(
        "plan_routing_profile_created mapping_id=%s plan_code=%s country=%s region=%s",
        mapping.id,
        mapping.plan_code,
        mapping.country,
        mapping.region,
    )
    return mapping


async def update_mapping(session: AsyncSession, mapping_id: str, patch: dict[str, Any]) -> PlanRoutingProfile:
    mapping = await get_mapping(session, mapping_id)
    changes = normalize_locality(patch)
    if "plan_code" in changes:
        changes["plan_code"] = str(changes["plan_code"] or "").strip().upper()
    merged = merge_patch(row_values(mapping, MAPPING_FIELDS), changes)
    await _validate(session, merged, exclude_id=mapping_id)
    apply_values(mapping, merged, MAPPING_FIELDS)
    await commit_or_raise(session, lambda _exc: _conflict(merged))
    logger.info("plan_routing_profile_updated mapping_id=%s fields=%s", mapping_id, ",".join(sorted(changes)))
    return mapping


async def delete_mapping(session: AsyncSession, mapping_id: str) -> None:
    mapping = await get_mapping(session, mapping_id)
    await session.delete(mapping)
    await session.commit()
    logger.info("plan_routing_profile_deleted mapping_id=%s", mapping_id)
