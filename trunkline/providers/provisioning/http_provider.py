from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from trunkline.core.config import get_settings
from trunkline.core.errors import ProviderConfigError, ProviderProvisioningFailed


logger = logging.getLogger(__name__)


class HttpProvisioningProvider:
    """Provisioning adapter for the platform's SIP provisioning API.

    Calls are never retried here: the provider offers no idempotency keys, so
    a blind retry could create duplicate trunks or credentials.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._settings = get_settings()
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        base_url = self._settings.provisioning_base_url
        token = self._settings.provisioning_api_token
        if not base_url or not token:
            raise ProviderConfigError(
                "PROVISIONING_BASE_URL and PROVISIONING_API_TOKEN are required for the http provider"
            )
        # Reuse a single client per provider for connection pooling.
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=self._settings.provisioning_timeout_ms / 1000.0,
            headers={"Authorization": f"Bearer {token}"},
        )
        return self._client

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("provisioning_request_failed operation=%s error=%s", operation, type(exc).__name__)
            raise ProviderProvisioningFailed(operation, str(exc) or type(exc).__name__) from exc
        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            logger.warning(
                "provisioning_request_rejected operation=%s status=%s latency_ms=%.1f",
                operation,
                response.status_code,
                latency_ms,
            )
            raise ProviderProvisioningFailed(operation, f"provider returned HTTP {response.status_code}")
        logger.info("provisioning_request_ok operation=%s latency_ms=%.1f", operation, latency_ms)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderProvisioningFailed(operation, "provider returned a non-JSON body") from exc
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _require(body: dict[str, Any], key: str, operation: str) -> str:
        value = body.get(key)
        if not value:
            raise ProviderProvisioningFailed(operation, f"provider response missing {key}")
        return str(value)

    async def create_trunk(self, trunk: dict[str, Any]) -> str:
        body = await self._request("create_trunk", "POST", "/trunks", trunk)
        return self._require(body, "id", "create_trunk")

    async def delete_trunk(self, external_id: str) -> None:
        await self._request("delete_trunk", "DELETE", f"/trunks/{external_id}")

    async def create_credential_list(self, friendly_name: str) -> str:
        body = await self._request(
            "create_credential_list", "POST", "/credential-lists", {"friendly_name": friendly_name}
        )
        return self._require(body, "sid", "create_credential_list")

    async def update_credential_list(self, sid: str, friendly_name: str) -> None:
        await self._request(
            "update_credential_list", "POST", f"/credential-lists/{sid}", {"friendly_name": friendly_name}
        )

    async def delete_credential_list(self, sid: str) -> None:
        await self._request("delete_credential_list", "DELETE", f"/credential-lists/{sid}")

    async def create_credential(self, list_sid: str, username: str, password: str) -> str:
        body = await self._request(
            "create_credential",
            "POST",
            f"/credential-lists/{list_sid}/credentials",
            {"username": username, "password": password},
        )
        return self._require(body, "sid", "create_credential")

    async def update_credential(self, list_sid: str, sid: str, password: str) -> None:
        await self._request(
            "update_credential",
            "POST",
            f"/credential-lists/{list_sid}/credentials/{sid}",
            {"password": password},
        )

    async def delete_credential(self, list_sid: str, sid: str) -> None:
        await self._request("delete_credential", "DELETE", f"/credential-lists/{list_sid}/credentials/{sid}")
