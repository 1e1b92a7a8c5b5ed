from __future__ import annotations

import pytest

from trunkline.core.errors import (
    DuplicateEntity,
    InvalidCredentialTransition,
    ProviderProvisioningFailed,
    ValidationFailed,
)
from trunkline.domain.models import CredentialList
from trunkline.persistence.db import SessionLocal
from trunkline.persistence.repos import credentials as credentials_repo
from trunkline.providers.provisioning.fake import FakeProvisioningProvider
from trunkline.services import credentials as credential_service
from trunkline.services.credentials import next_credential_state


STRONG = "Str0ngPass!!"


@pytest.mark.parametrize(
    ("current", "action", "expected"),
    [
        ("draft", "activate", "active"),
        ("active", "rotate", "active"),
        ("active", "revoke", "revoked"),
    ],
)
def test_allowed_transitions(current: str, action: str, expected: str) -> None:
    assert next_credential_state(current, action) == expected


@pytest.mark.parametrize(
    ("current", "action"),
    [("revoked", "rotate"), ("revoked", "revoke"), ("revoked", "activate"), ("draft", "rotate")],
)
def test_rejected_transitions(current: str, action: str) -> None:
    with pytest.raises(InvalidCredentialTransition) as exc_info:
        next_credential_state(current, action)
    assert exc_info.value.details == {"from_state": current, "action": action}


@pytest.mark.asyncio
async def test_list_and_credential_are_created_together(session) -> None:
    provisioner = FakeProvisioningProvider()
    credential_list = await credential_service.create_credential_list(
        session, provisioner, friendly_name="Carrier A", username="sip1", password=STRONG
    )
    credentials = await credential_service.list_credentials(session, credential_list.sid)
    assert [credential.status for credential in credentials] == ["active"]
    assert [name for name, _args in provisioner.calls] == ["create_credential_list", "create_credential"]


@pytest.mark.asyncio
async def test_credential_failure_rolls_back_provider_list(session) -> None:
    provisioner = FakeProvisioningProvider(fail_on={"create_credential"})
    with pytest.raises(ProviderProvisioningFailed):
        await credential_service.create_credential_list(
            session, provisioner, friendly_name="Carrier A", username="sip1", password=STRONG
        )
    assert provisioner.credential_lists == {}
    assert [name for name, _args in provisioner.calls][-1] == "delete_credential_list"
    assert await credentials_repo.list_credential_lists(session) == []


class _ReusedSidProvider(FakeProvisioningProvider):
    async def create_credential_list(self, friendly_name: str) -> str:
        self._record("create_credential_list", friendly_name)
        self.credential_lists["CLtaken"] = friendly_name
        return "CLtaken"


@pytest.mark.asyncio
async def test_row_conflict_releases_provider_objects(session) -> None:
    async with SessionLocal() as other:
        other.add(CredentialList(sid="CLtaken", friendly_name="Existing"))
        await other.commit()

    provisioner = _ReusedSidProvider()
    with pytest.raises(DuplicateEntity):
        await credential_service.provision_list_with_credential(
            session, provisioner, friendly_name="Carrier B", username="sip1", password=STRONG
        )
    assert provisioner.credential_lists == {}
    assert provisioner.credentials == {}
    assert [name for name, _args in provisioner.calls][-2:] == ["delete_credential", "delete_credential_list"]


@pytest.mark.asyncio
async def test_weak_secret_never_reaches_the_provider(session) -> None:
    provisioner = FakeProvisioningProvider()
    with pytest.raises(ValidationFailed) as exc_info:
        await credential_service.create_credential_list(
            session, provisioner, friendly_name="Carrier A", username="sip1", password="short"
        )
    assert exc_info.value.codes == ["WEAK_CREDENTIAL_SECRET"]
    assert provisioner.calls == []


@pytest.mark.asyncio
async def test_rotation_keeps_username_and_records_events(session) -> None:
    provisioner = FakeProvisioningProvider()
    credential_list = await credential_service.create_credential_list(session, provisioner, friendly_name="Carrier A")
    credential = await credential_service.create_credential(
        session, provisioner, credential_list.sid, username="sip1", password=STRONG
    )

    with pytest.raises(ValidationFailed) as exc_info:
        await credential_service.update_credential(
            session, provisioner, credential_list.sid, credential.sid, {"username": "sip2"}
        )
    assert exc_info.value.codes == ["IMMUTABLE_FIELD"]

    rotated = await credential_service.update_credential(
        session, provisioner, credential_list.sid, credential.sid, {"password": "An0therStrongOne"}
    )
    assert rotated.username == "sip1"
    assert rotated.status == "active"
    assert rotated.rotation_count == 1
    assert rotated.last_rotated_at is not None

    events = await credentials_repo.list_credential_events(session, credential.sid)
    assert [(event.event, event.from_state, event.to_state) for event in events] == [
        ("created", "draft", "active"),
        ("rotated", "active", "active"),
    ]


@pytest.mark.asyncio
async def test_revoked_credential_cannot_rotate(session) -> None:
    provisioner = FakeProvisioningProvider()
    credential_list = await credential_service.create_credential_list(
        session, provisioner, friendly_name="Carrier A", username="sip1", password=STRONG
    )
    [credential] = await credential_service.list_credentials(session, credential_list.sid)
    revoked = await credential_service.revoke_credential(session, provisioner, credential_list.sid, credential.sid)
    assert revoked.status == "revoked"
    assert revoked.revoked_at is not None

    calls_before = len(provisioner.calls)
    with pytest.raises(InvalidCredentialTransition):
        await credential_service.update_credential(
            session, provisioner, credential_list.sid, credential.sid, {"password": "An0therStrongOne"}
        )
    assert len(provisioner.calls) == calls_before
