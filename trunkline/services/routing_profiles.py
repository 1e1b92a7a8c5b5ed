from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.errors import DuplicateEntity, EntityInUse, EntityNotFound, TrunklineError
from trunkline.domain.countries import normalize_country
from trunkline.domain.models import RoutingProfile
from trunkline.persistence.repos import dispatch_rules as rules_repo
from trunkline.persistence.repos import plans as plans_repo
from trunkline.persistence.repos import routing_profiles as profiles_repo
from trunkline.persistence.repos import trunks as trunks_repo
from trunkline.services.plan_routing_profiles import add_mapping, normalize_locality
from trunkline.services.store import apply_values, commit_or_raise, merge_patch, new_id, row_values
from trunkline.services.validation import ValidationContext, validate


logger = logging.getLogger(__name__)

ROUTING_PROFILE_FIELDS = (
    "name",
    "country",
    "region",
    "outbound_provider",
    "outbound_trunk_id",
    "outbound_provider_config",
    "inbound_provider",
    "inbound_trunk_id",
    "inbound_provider_config",
    "dispatch_provider",
    "dispatch_rule_id",
    "dispatch_metadata",
    "compliance_requirements",
    "recording_policy",
)

_REFERENCE_FIELDS = ("outbound_trunk_id", "inbound_trunk_id", "dispatch_rule_id")


def _blank_references(values: dict[str, Any]) -> dict[str, Any]:
    # "" clears a reference; store NULL so the foreign keys stay satisfiable.
    cleaned = dict(values)
    for name in _REFERENCE_FIELDS:
        if name in cleaned and not cleaned[name]:
            cleaned[name] = None
    return cleaned


async def _context(session: AsyncSession, values: dict[str, Any]) -> ValidationContext:
    trunk_ids = {values[name] for name in ("outbound_trunk_id", "inbound_trunk_id") if values.get(name)}
    rule_ids = {values["dispatch_rule_id"]} if values.get("dispatch_rule_id") else set()
    return ValidationContext(
        trunks=await trunks_repo.trunk_directions(session, trunk_ids),
        dispatch_rules=await rules_repo.dispatch_rule_coverage(session, rule_ids),
    )


async def list_routing_profiles(session: AsyncSession, *, country: str | None = None) -> list[RoutingProfile]:
    return await profiles_repo.list_routing_profiles(session, country=normalize_country(country))


async def get_routing_profile(session: AsyncSession, profile_id: str) -> RoutingProfile:
    profile = await profiles_repo.get_routing_profile(session, profile_id)
    if profile is None:
        raise EntityNotFound("routing_profile", profile_id)
    return profile


async def create_routing_profile(session: AsyncSession, payload: dict[str, Any]) -> RoutingProfile:
    """Create a profile; a ``plan_code`` also maps it to that plan for the same locality."""
    values = _blank_references(normalize_locality(payload))
    plan_code = values.pop("plan_code", None)
    validate("routing_profile", values, await _context(session, values)).raise_for_violations()

    profile = RoutingProfile(id=new_id())
    apply_values(profile, values, ROUTING_PROFILE_FIELDS)
    session.add(profile)
    mapping = None
    if plan_code:
        await session.flush()
        try:
            mapping = await add_mapping(
                session,
                {
                    "plan_code": plan_code,
                    "routing_profile_id": profile.id,
                    "country": profile.country,
                    "region": profile.region,
                },
            )
        except TrunklineError:
            # The profile and its mapping are created together or not at all.
            await session.rollback()
            raise
    await commit_or_raise(
        session,
        lambda _exc: DuplicateEntity("plan_routing_profile", "plan_code", str(plan_code)),
    )
    logger.info(
        "routing_profile_created profile_id=%s country=%s region=%s mapping_id=%s",
        profile.id,
        profile.country,
        profile.region,
        mapping.id if mapping else None,
    )
    return profile


async def update_routing_profile(session: AsyncSession, profile_id: str, patch: dict[str, Any]) -> RoutingProfile:
    profile = await get_routing_profile(session, profile_id)
    changes = _blank_references(normalize_locality(patch))
    merged = merge_patch(row_values(profile, ROUTING_PROFILE_FIELDS), changes)
    validate("routing_profile", merged, await _context(session, merged)).raise_for_violations()
    apply_values(profile, merged, ROUTING_PROFILE_FIELDS)
    await session.commit()
    logger.info("routing_profile_updated profile_id=%s fields=%s", profile_id, ",".join(sorted(changes)))
    return profile


async def _usage(session: AsyncSession, profile_id: str) -> dict[str, int]:
    return {
        "mappings": await profiles_repo.count_profile_mappings(session, profile_id),
        "plans": await plans_repo.count_plans_using_template(session, profile_id),
    }


async def delete_routing_profile(session: AsyncSession, profile_id: str) -> None:
    profile = await get_routing_profile(session, profile_id)
    usage = await _usage(session, profile_id)
    if any(usage.values()):
        raise EntityInUse("routing_profile", profile_id, usage)
    await session.delete(profile)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise EntityInUse("routing_profile", profile_id, await _usage(session, profile_id)) from exc
    logger.info("routing_profile_deleted profile_id=%s", profile_id)
