from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.domain.models import Credential, CredentialEvent, CredentialList


async def get_credential_list(
    session: AsyncSession, sid: str, *, include_deleted: bool = False
) -> CredentialList | None:
    stmt = select(CredentialList).where(CredentialList.sid == sid)
    if not include_deleted:
        stmt = stmt.where(CredentialList.deleted_at.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_credential_lists(session: AsyncSession) -> list[CredentialList]:
    # Soft-deleted lists stay in the table so their sids are never reused.
    result = await session.execute(
        select(CredentialList)
        .where(CredentialList.deleted_at.is_(None))
        .order_by(CredentialList.created_at, CredentialList.sid)
    )
    return list(result.scalars().all())


async def live_credential_list_sids(session: AsyncSession, sids: set[str]) -> frozenset[str]:
    if not sids:
        return frozenset()
    result = await session.execute(
        select(CredentialList.sid).where(CredentialList.sid.in_(sids), CredentialList.deleted_at.is_(None))
    )
    return frozenset(result.scalars().all())


async def get_credential(session: AsyncSession, list_sid: str, sid: str) -> Credential | None:
    result = await session.execute(
        select(Credential).where(Credential.sid == sid, Credential.credential_list_sid == list_sid)
    )
    return result.scalar_one_or_none()


async def list_credentials(
    session: AsyncSession, list_sid: str, *, include_revoked: bool = False
) -> list[Credential]:
    stmt = select(Credential).where(Credential.credential_list_sid == list_sid)
    if not include_revoked:
        stmt = stmt.where(Credential.status != "revoked")
    result = await session.execute(stmt.order_by(Credential.created_at, Credential.sid))
    return list(result.scalars().all())


async def list_credential_events(session: AsyncSession, credential_sid: str) -> list[CredentialEvent]:
    result = await session.execute(
        select(CredentialEvent)
        .where(CredentialEvent.credential_sid == credential_sid)
        .order_by(CredentialEvent.id)
    )
    return list(result.scalars().all())
