from __future__ import annotations

import json

import httpx
import pytest

from trunkline.core.config import get_settings
from trunkline.core.errors import ProviderConfigError, ProviderProvisioningFailed
from trunkline.providers.provisioning.factory import get_provisioning_provider
from trunkline.providers.provisioning.fake import FakeProvisioningProvider
from trunkline.providers.provisioning.http_provider import HttpProvisioningProvider


def _http_provider(handler) -> HttpProvisioningProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://provisioning.test")
    return HttpProvisioningProvider(client=client)


@pytest.mark.asyncio
async def test_fake_provider_records_calls_and_fails_on_demand() -> None:
    provider = FakeProvisioningProvider(fail_on={"create_credential"})
    list_sid = await provider.create_credential_list("Carrier A")
    assert list_sid.startswith("CL")
    with pytest.raises(ProviderProvisioningFailed) as exc_info:
        await provider.create_credential(list_sid, "sip1", "Str0ngPass!!")
    assert exc_info.value.operation == "create_credential"
    assert [name for name, _args in provider.calls] == ["create_credential_list", "create_credential"]


@pytest.mark.asyncio
async def test_fake_provider_trunk_ids_follow_type() -> None:
    provider = FakeProvisioningProvider()
    assert (await provider.create_trunk({"name": "T", "type": "twilio"})).startswith("TK")
    assert (await provider.create_trunk({"name": "T", "type": "livekit_inbound"})).startswith("ST_")


@pytest.mark.asyncio
async def test_http_provider_creates_trunk() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "ST_abc"})

    provider = _http_provider(handler)
    external_id = await provider.create_trunk({"name": "Outbound", "type": "livekit_outbound"})
    assert external_id == "ST_abc"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/trunks"
    assert json.loads(seen[0].content) == {"name": "Outbound", "type": "livekit_outbound"}


@pytest.mark.asyncio
async def test_http_provider_wraps_error_status() -> None:
    provider = _http_provider(lambda request: httpx.Response(503, json={"error": "down"}))
    with pytest.raises(ProviderProvisioningFailed) as exc_info:
        await provider.delete_trunk("ST_abc")
    assert exc_info.value.operation == "delete_trunk"
    assert "503" in exc_info.value.message


@pytest.mark.asyncio
async def test_http_provider_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _http_provider(handler)
    with pytest.raises(ProviderProvisioningFailed) as exc_info:
        await provider.create_credential_list("Carrier A")
    assert exc_info.value.operation == "create_credential_list"


@pytest.mark.asyncio
async def test_http_provider_requires_identifier_in_response() -> None:
    provider = _http_provider(lambda request: httpx.Response(200, json={}))
    with pytest.raises(ProviderProvisioningFailed):
        await provider.create_credential("CL1", "sip1", "Str0ngPass!!")


@pytest.mark.asyncio
async def test_http_provider_without_configuration_fails_fast() -> None:
    provider = HttpProvisioningProvider()
    with pytest.raises(ProviderConfigError):
        await provider.delete_credential_list("CL1")


def test_factory_rejects_unknown_provider(monkeypatch) -> None:
    monkeypatch.setenv("PROVISIONING_PROVIDER", "carrier-pigeon")
    get_settings.cache_clear()
    try:
        with pytest.raises(ProviderConfigError):
            get_provisioning_provider()
    finally:
        get_settings.cache_clear()


def test_factory_defaults_to_fake() -> None:
    assert isinstance(get_provisioning_provider(), FakeProvisioningProvider)
