from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.core.config import get_settings
from trunkline.core.errors import (
    DuplicateEntity,
    EntityInUse,
    EntityNotFound,
    InvalidCredentialTransition,
    ProviderProvisioningFailed,
    ValidationFailed,
)
from trunkline.domain.models import Credential, CredentialEvent, CredentialList
from trunkline.persistence.repos import credentials as credentials_repo
from trunkline.persistence.repos import trunks as trunks_repo
from trunkline.providers.provisioning.base import ProvisioningProvider
from trunkline.services.store import commit_or_raise
from trunkline.services.validation import ValidationContext, validate


logger = logging.getLogger(__name__)

# (state, action) -> next state; anything absent is rejected.
CREDENTIAL_TRANSITIONS: dict[tuple[str, str], str] = {
    ("draft", "activate"): "active",
    ("active", "rotate"): "active",
    ("active", "revoke"): "revoked",
}

_ACTION_EVENTS = {"activate": "created", "rotate": "rotated", "revoke": "revoked"}


def next_credential_state(current: str, action: str) -> str:
    to_state = CREDENTIAL_TRANSITIONS.get((current, action))
    if to_state is None:
        raise InvalidCredentialTransition(
            f"Cannot {action} a credential in state {current}",
            details={"from_state": current, "action": action},
        )
    return to_state


def apply_transition(session: AsyncSession, credential: Credential, action: str) -> CredentialEvent:
    """Move ``credential`` through one lifecycle step and append the event row."""
    from_state = credential.status
    to_state = next_credential_state(from_state, action)
    now = datetime.now(timezone.utc)
    credential.status = to_state
    if action == "rotate":
        credential.rotation_count = (credential.rotation_count or 0) + 1
        credential.last_rotated_at = now
    elif action == "revoke":
        credential.revoked_at = now
    event = CredentialEvent(
        credential_sid=credential.sid,
        event=_ACTION_EVENTS[action],
        from_state=from_state,
        to_state=to_state,
    )
    session.add(event)
    return event


def _context(existing: dict[str, Any] | None = None) -> ValidationContext:
    return ValidationContext(existing=existing, credential_min_length=get_settings().credential_min_length)


async def _add_credential(
    session: AsyncSession, list_sid: str, credential_sid: str, username: str
) -> Credential:
    credential = Credential(
        sid=credential_sid,
        credential_list_sid=list_sid,
        username=username,
        status="draft",
        rotation_count=0,
    )
    session.add(credential)
    # Flush the credential row first; events reference it without an ORM relationship.
    await session.flush()
    apply_transition(session, credential, "activate")
    return credential


async def _discard_provider_list(
    provisioner: ProvisioningProvider, list_sid: str, credential_sids: tuple[str, ...] = ()
) -> None:
    # Compensation must not mask the error that triggered it; failures are logged for manual cleanup.
    try:
        for credential_sid in credential_sids:
            await provisioner.delete_credential(list_sid, credential_sid)
        await provisioner.delete_credential_list(list_sid)
    except ProviderProvisioningFailed as exc:
        logger.error("credential_list_rollback_failed sid=%s error=%s", list_sid, exc.message)
        return
    logger.info("credential_list_rolled_back sid=%s", list_sid)


async def provision_list_with_credential(
    session: AsyncSession,
    provisioner: ProvisioningProvider,
    *,
    friendly_name: str,
    username: str,
    password: str,
) -> tuple[CredentialList, Credential]:
    """Create a provider credential list and its first credential as one unit.

    Rows are added to ``session`` but not committed; the caller commits and
    calls :func:`release_provisioned_list` if its own commit fails.
    """
    violations = list(validate("credential_list", {"friendly_name": friendly_name}).violations)
    violations.extend(
        validate("credential", {"username": username, "password": password}, _context()).violations
    )
    if violations:
        raise ValidationFailed(violations)

    list_sid = await provisioner.create_credential_list(friendly_name)
    try:
        credential_sid = await provisioner.create_credential(list_sid, username, password)
    except ProviderProvisioningFailed:
        await _discard_provider_list(provisioner, list_sid)
        raise

    credential_list = CredentialList(sid=list_sid, friendly_name=friendly_name)
    session.add(credential_list)
    try:
        await session.flush()
        credential = await _add_credential(session, list_sid, credential_sid, username)
    except IntegrityError as exc:
        await session.rollback()
        await _discard_provider_list(provisioner, list_sid, (credential_sid,))
        raise DuplicateEntity("credential_list", "sid", list_sid) from exc
    logger.info("credential_list_provisioned sid=%s credential_sid=%s", list_sid, credential_sid)
    return credential_list, credential


async def release_provisioned_list(
    provisioner: ProvisioningProvider, credential_list: CredentialList, credential: Credential
) -> None:
    await _discard_provider_list(provisioner, credential_list.sid, (credential.sid,))


async def list_credential_lists(session: AsyncSession) -> list[CredentialList]:
    return await credentials_repo.list_credential_lists(session)


async def get_credential_list(session: AsyncSession, sid: str) -> CredentialList:
    credential_list = await credentials_repo.get_credential_list(session, sid)
    if credential_list is None:
        raise EntityNotFound("credential_list", sid)
    return credential_list


async def create_credential_list(
    session: AsyncSession,
    provisioner: ProvisioningProvider,
    *,
    friendly_name: str,
    username: str | None = None,
    password: str | None = None,
) -> CredentialList:
    if username is not None or password is not None:
        credential_list, credential = await provision_list_with_credential(
            session,
            provisioner,
            friendly_name=friendly_name,
            username=username or "",
            password=password or "",
        )
        try:
            await commit_or_raise(
                session, lambda _exc: DuplicateEntity("credential_list", "sid", credential_list.sid)
            )
        except DuplicateEntity:
            await release_provisioned_list(provisioner, credential_list, credential)
            raise
        return credential_list

    validate("credential_list", {"friendly_name": friendly_name}).raise_for_violations()
    list_sid = await provisioner.create_credential_list(friendly_name)
    credential_list = CredentialList(sid=list_sid, friendly_name=friendly_name)
    session.add(credential_list)
    await commit_or_raise(session, lambda _exc: DuplicateEntity("credential_list", "sid", list_sid))
    logger.info("credential_list_created sid=%s", list_sid)
    return credential_list


async def update_credential_list(
    session: AsyncSession, provisioner: ProvisioningProvider, sid: str, *, friendly_name: str
) -> CredentialList:
    credential_list = await get_credential_list(session, sid)
    validate("credential_list", {"friendly_name": friendly_name}).raise_for_violations()
    await provisioner.update_credential_list(sid, friendly_name)
    credential_list.friendly_name = friendly_name
    await session.commit()
    logger.info("credential_list_updated sid=%s", sid)
    return credential_list


async def delete_credential_list(session: AsyncSession, provisioner: ProvisioningProvider, sid: str) -> None:
    credential_list = await get_credential_list(session, sid)
    trunk_count = await trunks_repo.count_trunks_using_credential_list(session, sid)
    if trunk_count:
        raise EntityInUse("credential_list", sid, {"trunks": trunk_count})

    credentials = await credentials_repo.list_credentials(session, sid)
    for credential in credentials:
        apply_transition(session, credential, "revoke")
    credential_list.deleted_at = datetime.now(timezone.utc)
    await session.flush()
    try:
        await provisioner.delete_credential_list(sid)
    except ProviderProvisioningFailed:
        await session.rollback()
        raise
    await session.commit()
    logger.info("credential_list_deleted sid=%s revoked=%s", sid, len(credentials))


async def list_credentials(session: AsyncSession, list_sid: str) -> list[Credential]:
    await get_credential_list(session, list_sid)
    return await credentials_repo.list_credentials(session, list_sid)


async def get_credential(session: AsyncSession, list_sid: str, sid: str) -> Credential:
    await get_credential_list(session, list_sid)
    credential = await credentials_repo.get_credential(session, list_sid, sid)
    if credential is None:
        raise EntityNotFound("credential", sid)
    return credential


async def create_credential(
    session: AsyncSession,
    provisioner: ProvisioningProvider,
    list_sid: str,
    *,
    username: str,
    password: str,
) -> Credential:
    await get_credential_list(session, list_sid)
    validate("credential", {"username": username, "password": password}, _context()).raise_for_violations()
    credential_sid = await provisioner.create_credential(list_sid, username, password)
    credential = await _add_credential(session, list_sid, credential_sid, username)
    await session.commit()
    logger.info("credential_created list_sid=%s sid=%s", list_sid, credential_sid)
    return credential


async def update_credential(
    session: AsyncSession,
    provisioner: ProvisioningProvider,
    list_sid: str,
    sid: str,
    patch: dict[str, Any],
) -> Credential:
    """Apply a credential patch; a password change is a rotation."""
    credential = await get_credential(session, list_sid, sid)
    merged = {"username": credential.username, **patch}
    validate("credential", merged, _context({"username": credential.username})).raise_for_violations()
    if "password" not in patch:
        return credential

    # Check the transition before touching the provider.
    next_credential_state(credential.status, "rotate")
    await provisioner.update_credential(list_sid, sid, patch["password"])
    apply_transition(session, credential, "rotate")
    await session.commit()
    logger.info("credential_rotated list_sid=%s sid=%s rotation_count=%s", list_sid, sid, credential.rotation_count)
    return credential


async def revoke_credential(
    session: AsyncSession, provisioner: ProvisioningProvider, list_sid: str, sid: str
) -> Credential:
    credential = await get_credential(session, list_sid, sid)
    next_credential_state(credential.status, "revoke")
    await provisioner.delete_credential(list_sid, sid)
    apply_transition(session, credential, "revoke")
    await session.commit()
    logger.info("credential_revoked list_sid=%s sid=%s", list_sid, sid)
    return credential
