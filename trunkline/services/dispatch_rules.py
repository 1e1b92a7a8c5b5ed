from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.errors import EntityInUse, EntityNotFound
from trunkline.domain.models import DispatchRule
from trunkline.domain.telephony import DISPATCH_VARIANT_FIELDS
from trunkline.persistence.repos import dispatch_rules as rules_repo
from trunkline.persistence.repos import trunks as trunks_repo
from trunkline.services.store import apply_values, merge_patch, new_id, row_values
from trunkline.services.validation import ValidationContext, validate


logger = logging.getLogger(__name__)

DISPATCH_RULE_FIELDS = (
    "name",
    "rule_id",
    "type",
    "trunk_ids",
    "room_prefix",
    "room_name",
    "pin",
    "randomize",
    "agent_name",
    "auto_dispatch",
    "hide_phone_number",
    "attributes",
    "metadata_text",
    "status",
)


def _dedupe(values: list[str]) -> list[str]:
    result: list[str] = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


def apply_trunk_ids_patch(current: list[str], patch: Any) -> list[str]:
    """Resolve a ``trunk_ids`` update.

    A plain list replaces the selection; a mapping may carry ``set``,
    ``add`` and ``remove`` lists, applied in that order.
    """
    if patch is None:
        return []
    if isinstance(patch, (list, tuple)):
        return _dedupe(list(patch))
    selected = list(patch["set"]) if patch.get("set") is not None else list(current)
    selected.extend(patch.get("add") or [])
    removed = set(patch.get("remove") or [])
    return _dedupe([trunk_id for trunk_id in selected if trunk_id not in removed])


def clear_foreign_variant_fields(rule_type: str, values: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    # A type switch drops fields the new variant cannot carry unless the caller set them explicitly.
    cleared = dict(values)
    for name, allowed in DISPATCH_VARIANT_FIELDS.items():
        if rule_type not in allowed and name not in patch:
            cleared[name] = None
    return cleared


async def _context(session: AsyncSession, payload: dict[str, Any]) -> ValidationContext:
    trunk_ids = set(payload.get("trunk_ids") or [])
    return ValidationContext(trunks=await trunks_repo.trunk_directions(session, trunk_ids))


async def list_dispatch_rules(session: AsyncSession) -> list[DispatchRule]:
    return await rules_repo.list_dispatch_rules(session)


async def get_dispatch_rule(session: AsyncSession, rule_id: str) -> DispatchRule:
    rule = await rules_repo.get_dispatch_rule(session, rule_id)
    if rule is None:
        raise EntityNotFound("dispatch_rule", rule_id)
    return rule


async def create_dispatch_rule(session: AsyncSession, payload: dict[str, Any]) -> DispatchRule:
    values = dict(payload)
    values["trunk_ids"] = apply_trunk_ids_patch([], values.get("trunk_ids"))
    validate("dispatch_rule", values, await _context(session, values)).raise_for_violations()

    rule = DispatchRule(id=new_id(), auto_dispatch=False, hide_phone_number=False)
    apply_values(rule, values, DISPATCH_RULE_FIELDS)
    session.add(rule)
    await session.commit()
    logger.info("dispatch_rule_created rule_id=%s type=%s trunks=%s", rule.id, rule.type, len(rule.trunk_ids))
    return rule


async def update_dispatch_rule(session: AsyncSession, rule_id: str, patch: dict[str, Any]) -> DispatchRule:
    rule = await get_dispatch_rule(session, rule_id)
    changes = dict(patch)
    if "trunk_ids" in changes:
        changes["trunk_ids"] = apply_trunk_ids_patch(list(rule.trunk_ids or []), changes["trunk_ids"])
    merged = merge_patch(row_values(rule, DISPATCH_RULE_FIELDS), changes)
    if changes.get("type") and changes["type"] != rule.type:
        merged = clear_foreign_variant_fields(changes["type"], merged, changes)
    validate("dispatch_rule", merged, await _context(session, merged)).raise_for_violations()

    apply_values(rule, merged, DISPATCH_RULE_FIELDS)
    await session.commit()
    logger.info("dispatch_rule_updated rule_id=%s fields=%s", rule_id, ",".join(sorted(changes)))
    return rule


async def delete_dispatch_rule(session: AsyncSession, rule_id: str) -> None:
    rule = await get_dispatch_rule(session, rule_id)
    profiles = await rules_repo.count_profiles_using_rule(session, rule_id)
    if profiles:
        raise EntityInUse("dispatch_rule", rule_id, {"routing_profiles": profiles})
    await session.delete(rule)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        profiles = await rules_repo.count_profiles_using_rule(session, rule_id)
        raise EntityInUse("dispatch_rule", rule_id, {"routing_profiles": profiles}) from exc
    logger.info("dispatch_rule_deleted rule_id=%s", rule_id)
