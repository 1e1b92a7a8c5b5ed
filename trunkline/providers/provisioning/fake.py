from __future__ import annotations

from typing import Any
from uuid import uuid4

from trunkline.core.errors import ProviderProvisioningFailed


class FakeProvisioningProvider:
    """In-memory provider for local development and tests.

    ``fail_on`` names operations that should fail, which lets tests exercise
    rollback paths without a real SIP provider.
    """

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.trunks: dict[str, dict[str, Any]] = {}
        self.credential_lists: dict[str, str] = {}
        self.credentials: dict[str, tuple[str, str]] = {}

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if operation in self.fail_on:
            raise ProviderProvisioningFailed(operation, "fake provider failure")

    async def create_trunk(self, trunk: dict[str, Any]) -> str:
        self._record("create_trunk", trunk.get("name"))
        prefix = "TK" if trunk.get("type") == "twilio" else "ST_"
        external_id = f"{prefix}{uuid4().hex}"
        self.trunks[external_id] = dict(trunk)
        return external_id

    async def delete_trunk(self, external_id: str) -> None:
        self._record("delete_trunk", external_id)
        self.trunks.pop(external_id, None)

    async def create_credential_list(self, friendly_name: str) -> str:
        self._record("create_credential_list", friendly_name)
        sid = f"CL{uuid4().hex}"
        self.credential_lists[sid] = friendly_name
        return sid

    async def update_credential_list(self, sid: str, friendly_name: str) -> None:
        self._record("update_credential_list", sid, friendly_name)
        self.credential_lists[sid] = friendly_name

    async def delete_credential_list(self, sid: str) -> None:
        self._record("delete_credential_list", sid)
        self.credential_lists.pop(sid, None)

    async def create_credential(self, list_sid: str, username: str, password: str) -> str:
        self._record("create_credential", list_sid, username)
        sid = f"CR{uuid4().hex}"
        self.credentials[sid] = (list_sid, username)
        return sid

    async def update_credential(self, list_sid: str, sid: str, password: str) -> None:
        # Passwords are write-only; only the call is recorded.
        self._record("update_credential", list_sid, sid)

    async def delete_credential(self, list_sid: str, sid: str) -> None:
        self._record("delete_credential", list_sid, sid)
        self.credentials.pop(sid, None)
