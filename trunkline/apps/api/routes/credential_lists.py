from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db, get_provisioner
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope, isoformat
from trunkline.persistence.repos import credentials as credentials_repo
from trunkline.providers.provisioning.base import ProvisioningProvider
from trunkline.services import credentials as credential_service


router = APIRouter(
    prefix="/twilio/credential-lists", tags=["credential-lists"], responses=DEFAULT_ERROR_RESPONSES
)


class CredentialListCreateRequest(BaseModel):
    friendly_name: str
    # Supplying both creates the list and its first credential as one unit.
    username: str | None = None
    password: str | None = None

    model_config = {"extra": "forbid"}


class CredentialListUpdateRequest(BaseModel):
    friendly_name: str

    model_config = {"extra": "forbid"}


class CredentialCreateRequest(BaseModel):
    username: str
    password: str

    model_config = {"extra": "forbid"}


class CredentialUpdateRequest(BaseModel):
    # username may be echoed back but never changed.
    username: str | None = None
    password: str | None = None

    model_config = {"extra": "forbid"}


class CredentialListResponse(BaseModel):
    sid: str
    friendly_name: str
    created_at: str | None
    updated_at: str | None


class CredentialResponse(BaseModel):
    sid: str
    credential_list_sid: str
    username: str
    status: str
    rotation_count: int
    last_rotated_at: str | None
    revoked_at: str | None
    created_at: str | None
    updated_at: str | None


class CredentialEventResponse(BaseModel):
    event: str
    from_state: str | None
    to_state: str
    created_at: str | None


def _list_response(credential_list) -> CredentialListResponse:
    return CredentialListResponse(
        sid=credential_list.sid,
        friendly_name=credential_list.friendly_name,
        created_at=isoformat(credential_list.created_at),
        updated_at=isoformat(credential_list.updated_at),
    )


def _credential_response(credential) -> CredentialResponse:
    # Passwords never leave the provider; responses carry metadata only.
    return CredentialResponse(
        sid=credential.sid,
        credential_list_sid=credential.credential_list_sid,
        username=credential.username,
        status=credential.status,
        rotation_count=credential.rotation_count,
        last_rotated_at=isoformat(credential.last_rotated_at),
        revoked_at=isoformat(credential.revoked_at),
        created_at=isoformat(credential.created_at),
        updated_at=isoformat(credential.updated_at),
    )


@router.get("", response_model=SuccessEnvelope[list[CredentialListResponse]] | list[CredentialListResponse])
async def list_credential_lists(db: AsyncSession = Depends(get_db)) -> list[CredentialListResponse]:
    return [_list_response(item) for item in await credential_service.list_credential_lists(db)]


@router.post("", status_code=201, response_model=SuccessEnvelope[CredentialListResponse] | CredentialListResponse)
async def create_credential_list(
    payload: CredentialListCreateRequest,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> CredentialListResponse:
    credential_list = await credential_service.create_credential_list(
        db,
        provisioner,
        friendly_name=payload.friendly_name,
        username=payload.username,
        password=payload.password,
    )
    return _list_response(credential_list)


@router.get("/{sid}", response_model=SuccessEnvelope[CredentialListResponse] | CredentialListResponse)
async def get_credential_list(sid: str, db: AsyncSession = Depends(get_db)) -> CredentialListResponse:
    return _list_response(await credential_service.get_credential_list(db, sid))


@router.put("/{sid}", response_model=SuccessEnvelope[CredentialListResponse] | CredentialListResponse)
async def update_credential_list(
    sid: str,
    payload: CredentialListUpdateRequest,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> CredentialListResponse:
    credential_list = await credential_service.update_credential_list(
        db, provisioner, sid, friendly_name=payload.friendly_name
    )
    return _list_response(credential_list)


@router.delete("/{sid}", status_code=204)
async def delete_credential_list(
    sid: str,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> Response:
    await credential_service.delete_credential_list(db, provisioner, sid)
    return Response(status_code=204)


@router.get(
    "/{sid}/credentials",
    response_model=SuccessEnvelope[list[CredentialResponse]] | list[CredentialResponse],
)
async def list_credentials(sid: str, db: AsyncSession = Depends(get_db)) -> list[CredentialResponse]:
    return [_credential_response(item) for item in await credential_service.list_credentials(db, sid)]


@router.post(
    "/{sid}/credentials",
    status_code=201,
    response_model=SuccessEnvelope[CredentialResponse] | CredentialResponse,
)
async def create_credential(
    sid: str,
    payload: CredentialCreateRequest,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> CredentialResponse:
    credential = await credential_service.create_credential(
        db, provisioner, sid, username=payload.username, password=payload.password
    )
    return _credential_response(credential)


@router.get(
    "/{sid}/credentials/{credential_sid}",
    response_model=SuccessEnvelope[CredentialResponse] | CredentialResponse,
)
async def get_credential(sid: str, credential_sid: str, db: AsyncSession = Depends(get_db)) -> CredentialResponse:
    return _credential_response(await credential_service.get_credential(db, sid, credential_sid))


@router.put(
    "/{sid}/credentials/{credential_sid}",
    response_model=SuccessEnvelope[CredentialResponse] | CredentialResponse,
)
async def update_credential(
    sid: str,
    credential_sid: str,
    payload: CredentialUpdateRequest,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> CredentialResponse:
    credential = await credential_service.update_credential(
        db, provisioner, sid, credential_sid, payload.model_dump(exclude_unset=True)
    )
    return _credential_response(credential)


@router.delete("/{sid}/credentials/{credential_sid}", status_code=204)
async def delete_credential(
    sid: str,
    credential_sid: str,
    db: AsyncSession = Depends(get_db),
    provisioner: ProvisioningProvider = Depends(get_provisioner),
) -> Response:
    # Revokes rather than deletes so the sid is never reused.
    await credential_service.revoke_credential(db, provisioner, sid, credential_sid)
    return Response(status_code=204)


@router.get(
    "/{sid}/credentials/{credential_sid}/events",
    response_model=SuccessEnvelope[list[CredentialEventResponse]] | list[CredentialEventResponse],
)
async def list_credential_events(
    sid: str, credential_sid: str, db: AsyncSession = Depends(get_db)
) -> list[CredentialEventResponse]:
    await credential_service.get_credential(db, sid, credential_sid)
    events = await credentials_repo.list_credential_events(db, credential_sid)
    return [
        CredentialEventResponse(
            event=event.event,
            from_state=event.from_state,
            to_state=event.to_state,
            created_at=isoformat(event.created_at),
        )
        for event in events
    ]
