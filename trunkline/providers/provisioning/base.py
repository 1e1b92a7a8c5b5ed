from __future__ import annotations

from typing import Any, Protocol


class ProvisioningProvider(Protocol):
    async def create_trunk(self, trunk: dict[str, Any]) -> str:
        ...

    async def delete_trunk(self, external_id: str) -> None:
        ...

    async def create_credential_list(self, friendly_name: str) -> str:
        ...

    async def update_credential_list(self, sid: str, friendly_name: str) -> None:
        ...

    async def delete_credential_list(self, sid: str) -> None:
        ...

    async def create_credential(self, list_sid: str, username: str, password: str) -> str:
        ...

    async def update_credential(self, list_sid: str, sid: str, password: str) -> None:
        ...

    async def delete_credential(self, list_sid: str, sid: str) -> None:
        ...
