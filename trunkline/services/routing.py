from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.errors import (
    CountryNotAllowedForPlan,
    DispatchRuleTrunkMismatch,
    NoRoutingProfileForLocality,
    ResolutionError,
    RoutingProfileMissingTrunkForDirection,
    UnknownPlan,
)
from trunkline.domain.countries import normalize_country, normalize_region
from trunkline.domain.models import DispatchRule, Plan, PlanRoutingProfile, RoutingProfile, Trunk
from trunkline.domain.telephony import CALL_DIRECTIONS
from trunkline.services.validation import (
    INVALID_CHOICE,
    ValidationResult,
    Violation,
    check_country_code,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanRecord:
    code: str
    allowed_countries: tuple[str, ...] = ()
    default_routing_profile_template_id: str | None = None


@dataclass(frozen=True)
class MappingRecord:
    id: str
    plan_code: str
    routing_profile_id: str
    country: str | None = None
    region: str | None = None


@dataclass(frozen=True)
class ProfileRecord:
    id: str
    name: str
    outbound_trunk_id: str | None = None
    inbound_trunk_id: str | None = None
    dispatch_rule_id: str | None = None


@dataclass(frozen=True)
class TrunkRecord:
    id: str
    name: str
    type: str
    direction: str
    status: str = "active"
    external_id: str | None = None


@dataclass(frozen=True)
class DispatchRuleRecord:
    id: str
    name: str
    type: str
    trunk_ids: tuple[str, ...] = ()
    room_prefix: str | None = None
    room_name: str | None = None
    pin: str | None = None
    randomize: bool | None = None
    agent_name: str | None = None
    auto_dispatch: bool = False
    hide_phone_number: bool = False


@dataclass(frozen=True)
class RoutingSnapshot:
    """Immutable view of every row a resolution may read.

    Resolving against the same snapshot always yields the same result, so
    the engine can be tested without a database.
    """

    plans: dict[str, PlanRecord] = field(default_factory=dict)
    mappings: tuple[MappingRecord, ...] = ()
    profiles: dict[str, ProfileRecord] = field(default_factory=dict)
    trunks: dict[str, TrunkRecord] = field(default_factory=dict)
    dispatch_rules: dict[str, DispatchRuleRecord] = field(default_factory=dict)


@dataclass(frozen=True)
class Locality:
    country: str | None = None
    region: str | None = None

    @classmethod
    def build(cls, country: str | None = None, region: str | None = None) -> "Locality":
        return cls(country=normalize_country(country), region=normalize_region(region))


@dataclass(frozen=True)
class ResolvedRoute:
    plan_code: str
    direction: str
    routing_profile_id: str
    matched_by: str
    trunk: TrunkRecord
    dispatch_rule: DispatchRuleRecord | None = None


def _check_inputs(direction: str, locality: Locality) -> None:
    violations: list[Violation] = []
    if direction not in CALL_DIRECTIONS:
        violations.append(
            Violation(INVALID_CHOICE, "direction", "direction must be one of inbound, outbound", {"value": direction})
        )
    violations.extend(check_country_code(locality.country))
    ValidationResult(violations=tuple(violations)).raise_for_violations()


def _first_mapping(mappings: list[MappingRecord]) -> MappingRecord | None:
    # Unique constraints allow at most one row per tier; order by id anyway so stale data stays deterministic.
    if not mappings:
        return None
    return sorted(mappings, key=lambda mapping: mapping.id)[0]


def _select_profile_id(
    snapshot: RoutingSnapshot, plan: PlanRecord, locality: Locality
) -> tuple[str, str] | None:
    plan_mappings = [m for m in snapshot.mappings if m.plan_code == plan.code]
    # Country precision outranks region, and both outrank the plan-level template.
    if locality.country:
        mapping = _first_mapping([m for m in plan_mappings if m.country == locality.country])
        if mapping is not None:
            return mapping.routing_profile_id, "country"
    if locality.region:
        mapping = _first_mapping([m for m in plan_mappings if m.region == locality.region])
        if mapping is not None:
            return mapping.routing_profile_id, "region"
    if plan.default_routing_profile_template_id:
        return plan.default_routing_profile_template_id, "plan_default"
    return None


def resolve(
    snapshot: RoutingSnapshot,
    plan_code: str,
    direction: str,
    locality: Locality,
) -> ResolvedRoute:
    """Select the trunk (and, for inbound calls, the dispatch rule) for a call.

    Raises ``UnknownPlan`` or a ``ResolutionError`` subclass when no usable
    route exists; callers on the call path should treat those as "no route".
    """
    _check_inputs(direction, locality)
    code = (plan_code or "").strip().upper()
    plan = snapshot.plans.get(code)
    if plan is None:
        raise UnknownPlan(code)

    if plan.allowed_countries and locality.country and locality.country not in plan.allowed_countries:
        raise CountryNotAllowedForPlan(
            f"Country {locality.country} is not allowed for plan {code}",
            details={"plan_code": code, "country": locality.country},
        )

    selected = _select_profile_id(snapshot, plan, locality)
    profile = snapshot.profiles.get(selected[0]) if selected else None
    if selected is None or profile is None:
        raise NoRoutingProfileForLocality(
            f"No routing profile for plan {code} at the requested locality",
            details={"plan_code": code, "country": locality.country, "region": locality.region},
        )
    _profile_id, matched_by = selected

    trunk_id = profile.outbound_trunk_id if direction == "outbound" else profile.inbound_trunk_id
    trunk = snapshot.trunks.get(trunk_id) if trunk_id else None
    if trunk is None:
        raise RoutingProfileMissingTrunkForDirection(
            f"Routing profile {profile.id} has no {direction} trunk",
            details={"routing_profile_id": profile.id, "direction": direction, "trunk_id": trunk_id},
        )

    dispatch_rule = None
    if direction == "inbound":
        dispatch_rule = (
            snapshot.dispatch_rules.get(profile.dispatch_rule_id) if profile.dispatch_rule_id else None
        )
        if dispatch_rule is None or trunk.id not in dispatch_rule.trunk_ids:
            raise DispatchRuleTrunkMismatch(
                f"Dispatch rule of routing profile {profile.id} does not cover trunk {trunk.id}",
                details={
                    "routing_profile_id": profile.id,
                    "dispatch_rule_id": profile.dispatch_rule_id,
                    "trunk_id": trunk.id,
                },
            )

    return ResolvedRoute(
        plan_code=code,
        direction=direction,
        routing_profile_id=profile.id,
        matched_by=matched_by,
        trunk=trunk,
        dispatch_rule=dispatch_rule,
    )


def _plan_record(plan: Plan) -> PlanRecord:
    return PlanRecord(
        code=plan.code,
        allowed_countries=tuple(plan.allowed_countries or ()),
        default_routing_profile_template_id=plan.default_routing_profile_template_id,
    )


def _profile_record(profile: RoutingProfile) -> ProfileRecord:
    return ProfileRecord(
        id=profile.id,
        name=profile.name,
        outbound_trunk_id=profile.outbound_trunk_id,
        inbound_trunk_id=profile.inbound_trunk_id,
        dispatch_rule_id=profile.dispatch_rule_id,
    )


def trunk_record(trunk: Trunk) -> TrunkRecord:
    return TrunkRecord(
        id=trunk.id,
        name=trunk.name,
        type=trunk.type,
        direction=trunk.direction,
        status=trunk.status,
        external_id=trunk.external_id,
    )


def dispatch_rule_record(rule: DispatchRule) -> DispatchRuleRecord:
    return DispatchRuleRecord(
        id=rule.id,
        name=rule.name,
        type=rule.type,
        trunk_ids=tuple(rule.trunk_ids or ()),
        room_prefix=rule.room_prefix,
        room_name=rule.room_name,
        pin=rule.pin,
        randomize=rule.randomize,
        agent_name=rule.agent_name,
        auto_dispatch=bool(rule.auto_dispatch),
        hide_phone_number=bool(rule.hide_phone_number),
    )


async def load_routing_snapshot(session: AsyncSession, plan_code: str) -> RoutingSnapshot:
    # All reads share the session's transaction so the snapshot is internally consistent.
    code = (plan_code or "").strip().upper()
    plan = (await session.execute(select(Plan).where(Plan.code == code))).scalar_one_or_none()
    if plan is None:
        return RoutingSnapshot()

    mappings = (
        await session.execute(
            select(PlanRoutingProfile)
            .where(PlanRoutingProfile.plan_code == code)
            .order_by(PlanRoutingProfile.id)
        )
    ).scalars().all()
    profile_ids = {mapping.routing_profile_id for mapping in mappings}
    if plan.default_routing_profile_template_id:
        profile_ids.add(plan.default_routing_profile_template_id)

    profiles: list[RoutingProfile] = []
    if profile_ids:
        profiles = list(
            (
                await session.execute(select(RoutingProfile).where(RoutingProfile.id.in_(profile_ids)))
            ).scalars().all()
        )

    trunk_ids = {
        trunk_id
        for profile in profiles
        for trunk_id in (profile.outbound_trunk_id, profile.inbound_trunk_id)
        if trunk_id
    }
    trunks: list[Trunk] = []
    if trunk_ids:
        trunks = list((await session.execute(select(Trunk).where(Trunk.id.in_(trunk_ids)))).scalars().all())

    rule_ids = {profile.dispatch_rule_id for profile in profiles if profile.dispatch_rule_id}
    rules: list[DispatchRule] = []
    if rule_ids:
        rules = list(
            (await session.execute(select(DispatchRule).where(DispatchRule.id.in_(rule_ids)))).scalars().all()
        )

    return RoutingSnapshot(
        plans={plan.code: _plan_record(plan)},
        mappings=tuple(
            MappingRecord(
                id=mapping.id,
                plan_code=mapping.plan_code,
                routing_profile_id=mapping.routing_profile_id,
                country=mapping.country,
                region=mapping.region,
            )
            for mapping in mappings
        ),
        profiles={profile.id: _profile_record(profile) for profile in profiles},
        trunks={trunk.id: trunk_record(trunk) for trunk in trunks},
        dispatch_rules={rule.id: dispatch_rule_record(rule) for rule in rules},
    )


async def resolve_route(
    session: AsyncSession,
    *,
    plan_code: str,
    direction: str,
    country: str | None = None,
    region: str | None = None,
) -> ResolvedRoute:
    # Load and resolve inside one session so the decision sees a single read snapshot.
    locality = Locality.build(country=country, region=region)
    snapshot = await load_routing_snapshot(session, plan_code)
    try:
        route = resolve(snapshot, plan_code, direction, locality)
    except (ResolutionError, UnknownPlan) as exc:
        logger.info(
            "route_resolution_failed plan_code=%s direction=%s country=%s region=%s code=%s",
            plan_code,
            direction,
            locality.country,
            locality.region,
            exc.code,
        )
        raise
    logger.info(
        "route_resolved plan_code=%s direction=%s profile_id=%s matched_by=%s trunk_id=%s",
        route.plan_code,
        route.direction,
        route.routing_profile_id,
        route.matched_by,
        route.trunk.id,
    )
    return route


def route_to_dict(route: ResolvedRoute) -> dict[str, Any]:
    # Stable serialization for API responses and CLI output.
    rule = route.dispatch_rule
    return {
        "plan_code": route.plan_code,
        "direction": route.direction,
        "routing_profile_id": route.routing_profile_id,
        "matched_by": route.matched_by,
        "trunk": {
            "id": route.trunk.id,
            "name": route.trunk.name,
            "type": route.trunk.type,
            "direction": route.trunk.direction,
            "status": route.trunk.status,
            "external_id": route.trunk.external_id,
        },
        "dispatch_rule": None
        if rule is None
        else {
            "id": rule.id,
            "name": rule.name,
            "type": rule.type,
            "trunk_ids": list(rule.trunk_ids),
            "room_prefix": rule.room_prefix,
            "room_name": rule.room_name,
            "pin": rule.pin,
            "randomize": rule.randomize,
            "agent_name": rule.agent_name,
            "auto_dispatch": rule.auto_dispatch,
            "hide_phone_number": rule.hide_phone_number,
        },
    }
