from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.config import get_settings
from trunkline.core.errors import (
    DuplicateEntity,
    EntityInUse,
    EntityNotFound,
    ProviderProvisioningFailed,
    ValidationFailed,
)
from trunkline.domain.models import Credential, CredentialList, Trunk
from trunkline.domain.telephony import (
    FIXED_TRUNK_DIRECTIONS,
    INBOUND_CAPABLE,
    OUTBOUND_CAPABLE,
    PROVIDER_FOR_TRUNK_TYPE,
)
from trunkline.persistence.repos import credentials as credentials_repo
from trunkline.persistence.repos import dispatch_rules as dispatch_rules_repo
from trunkline.persistence.repos import trunks as trunks_repo
from trunkline.providers.provisioning.base import ProvisioningProvider
from trunkline.services import credentials as credential_service
from trunkline.services.store import apply_values, merge_patch, new_id, row_values
from trunkline.services.trunk_usage import TrunkUsage, trunk_usage
from trunkline.services.validation import (
    TRUNK_DIRECTION_MISMATCH,
    ValidationContext,
    Violation,
    validate,
)


logger = logging.getLogger(__name__)

TRUNK_FIELDS = (
    "name",
    "type",
    "direction",
    "status",
    "provider",
    "external_id",
    "address",
    "numbers",
    "auth_username",
    "allowed_numbers",
    "allowed_addresses",
    "krisp_enabled",
    "termination_sip_domain",
    "credential_list_sid",
    "metadata_json",
)

# Write-only inputs: forwarded to the provider, never stored.
_SECRET_FIELDS = ("auth_password", "password")


def normalize_trunk_payload(payload: dict[str, Any]) -> dict[str, Any]:
    normalized = {key: value for key, value in payload.items()}
    trunk_type = normalized.get("type")
    if not normalized.get("provider") and trunk_type in PROVIDER_FOR_TRUNK_TYPE:
        normalized["provider"] = PROVIDER_FOR_TRUNK_TYPE[trunk_type]
    if not normalized.get("direction") and trunk_type in FIXED_TRUNK_DIRECTIONS:
        normalized["direction"] = FIXED_TRUNK_DIRECTIONS[trunk_type]
    if "numbers" in normalized and normalized["numbers"] is None:
        normalized["numbers"] = []
    return normalized


async def _context(
    session: AsyncSession, payload: dict[str, Any], existing: dict[str, Any] | None = None
) -> ValidationContext:
    sid = payload.get("credential_list_sid")
    known = await credentials_repo.live_credential_list_sids(session, {sid} if sid else set())
    return ValidationContext(
        existing=existing,
        credential_list_sids=known,
        credential_min_length=get_settings().credential_min_length,
    )


def _provider_request(values: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    request = {name: values.get(name) for name in TRUNK_FIELDS if values.get(name) is not None}
    request.pop("metadata_json", None)
    if payload.get("auth_password"):
        request["auth_password"] = payload["auth_password"]
    return request


async def list_trunks(
    session: AsyncSession,
    *,
    provider: str | None = None,
    trunk_type: str | None = None,
    direction: str | None = None,
    status: str | None = None,
) -> list[Trunk]:
    return await trunks_repo.list_trunks(
        session, provider=provider, trunk_type=trunk_type, direction=direction, status=status
    )


async def get_trunk(session: AsyncSession, trunk_id: str) -> Trunk:
    trunk = await trunks_repo.get_trunk(session, trunk_id)
    if trunk is None:
        raise EntityNotFound("trunk", trunk_id)
    return trunk


async def get_trunk_usage(session: AsyncSession, trunk_id: str) -> TrunkUsage:
    await get_trunk(session, trunk_id)
    return await trunk_usage(session, trunk_id)


async def create_trunk(
    session: AsyncSession, provisioner: ProvisioningProvider, payload: dict[str, Any]
) -> Trunk:
    """Validate, provision at the SIP provider, then persist a trunk.

    With ``credential_mode="create"`` the credential list and its first
    credential are provisioned as one unit before the trunk. Every provider
    object created here is released again if a later step fails.
    """
    values = normalize_trunk_payload(payload)
    validate("trunk", values, await _context(session, values)).raise_for_violations()
    trunk_id = values.get("id") or new_id()
    if await trunks_repo.get_trunk(session, trunk_id) is not None:
        raise DuplicateEntity("trunk", "id", trunk_id)

    provisioned: tuple[CredentialList, Credential] | None = None
    if values.get("credential_mode") == "create":
        provisioned = await credential_service.provision_list_with_credential(
            session,
            provisioner,
            friendly_name=values["credential_list_name"],
            username=values["username"],
            password=values["password"],
        )
        values["credential_list_sid"] = provisioned[0].sid

    provisioned_external_id: str | None = None
    if not values.get("external_id"):
        try:
            provisioned_external_id = await provisioner.create_trunk(_provider_request(values, payload))
        except ProviderProvisioningFailed:
            await session.rollback()
            if provisioned is not None:
                await credential_service.release_provisioned_list(provisioner, *provisioned)
            raise
        values["external_id"] = provisioned_external_id

    trunk = Trunk(id=trunk_id, status="active", numbers=[])
    apply_values(trunk, values, TRUNK_FIELDS)
    session.add(trunk)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if provisioned_external_id:
            await _release_trunk(provisioner, provisioned_external_id)
        if provisioned is not None:
            await credential_service.release_provisioned_list(provisioner, *provisioned)
        raise DuplicateEntity("trunk", "id", trunk_id) from exc
    logger.info(
        "trunk_created trunk_id=%s type=%s direction=%s external_id=%s",
        trunk.id,
        trunk.type,
        trunk.direction,
        trunk.external_id,
    )
    return trunk


async def _release_trunk(provisioner: ProvisioningProvider, external_id: str) -> None:
    try:
        await provisioner.delete_trunk(external_id)
    except ProviderProvisioningFailed as exc:
        logger.error("trunk_rollback_failed external_id=%s error=%s", external_id, exc.message)


async def _check_direction_change(session: AsyncSession, trunk_id: str, direction: str) -> None:
    # Profiles and dispatch rules already using the trunk must still be able to route through it.
    usage = await trunk_usage(session, trunk_id)
    violations = []
    if usage.outbound and direction not in OUTBOUND_CAPABLE:
        violations.append(
            Violation(
                TRUNK_DIRECTION_MISMATCH,
                "direction",
                "Trunk is the outbound trunk of existing routing profiles",
                {"outbound": usage.outbound},
            )
        )
    if usage.inbound and direction not in INBOUND_CAPABLE:
        violations.append(
            Violation(
                TRUNK_DIRECTION_MISMATCH,
                "direction",
                "Trunk is the inbound trunk of existing routing profiles",
                {"inbound": usage.inbound},
            )
        )
    if direction not in INBOUND_CAPABLE:
        rules = await dispatch_rules_repo.list_rules_covering_trunk(session, trunk_id)
        if rules:
            violations.append(
                Violation(
                    TRUNK_DIRECTION_MISMATCH,
                    "direction",
                    "Trunk is selected by existing dispatch rules",
                    {"dispatch_rules": [rule.id for rule in rules]},
                )
            )
    if violations:
        raise ValidationFailed(violations)


async def update_trunk(session: AsyncSession, trunk_id: str, patch: dict[str, Any]) -> Trunk:
    trunk = await get_trunk(session, trunk_id)
    changes = {key: value for key, value in patch.items() if key not in _SECRET_FIELDS}
    if "status" in changes and changes["status"] is None:
        changes.pop("status")
    merged = normalize_trunk_payload(merge_patch(row_values(trunk, TRUNK_FIELDS), changes))
    validate("trunk", merged, await _context(session, merged, row_values(trunk, TRUNK_FIELDS))).raise_for_violations()
    if merged.get("direction") != trunk.direction:
        await _check_direction_change(session, trunk_id, merged["direction"])
    apply_values(trunk, merged, [name for name in TRUNK_FIELDS if name in changes or name == "provider"])
    await session.commit()
    logger.info("trunk_updated trunk_id=%s fields=%s", trunk_id, ",".join(sorted(changes)))
    return trunk


async def delete_trunk(session: AsyncSession, provisioner: ProvisioningProvider, trunk_id: str) -> None:
    trunk = await trunks_repo.lock_trunk(session, trunk_id)
    if trunk is None:
        raise EntityNotFound("trunk", trunk_id)
    usage = await trunk_usage(session, trunk_id)
    if usage.in_use:
        logger.info(
            "trunk_delete_blocked trunk_id=%s outbound=%s inbound=%s", trunk_id, usage.outbound, usage.inbound
        )
        raise EntityInUse("trunk", trunk_id, usage.as_dict())

    # Rules drop the trunk in the same transaction; a rule left without trunks blocks the delete.
    rules = await dispatch_rules_repo.list_rules_covering_trunk(session, trunk_id)
    stranded = [rule.id for rule in rules if not [item for item in rule.trunk_ids if item != trunk_id]]
    if stranded:
        logger.info("trunk_delete_blocked trunk_id=%s dispatch_rules=%s", trunk_id, ",".join(stranded))
        raise EntityInUse("trunk", trunk_id, {**usage.as_dict(), "dispatch_rules": len(stranded)})
    for rule in rules:
        rule.trunk_ids = [item for item in rule.trunk_ids if item != trunk_id]

    external_id = trunk.external_id
    await session.delete(trunk)
    try:
        await session.flush()
    except IntegrityError as exc:
        # The FK backstop fired: a profile gained the reference after the scan.
        await session.rollback()
        usage = await trunk_usage(session, trunk_id)
        raise EntityInUse("trunk", trunk_id, usage.as_dict()) from exc

    if external_id:
        try:
            await provisioner.delete_trunk(external_id)
        except ProviderProvisioningFailed:
            await session.rollback()
            raise
    await session.commit()
    logger.info("trunk_deleted trunk_id=%s external_id=%s", trunk_id, external_id)
