from __future__ import annotations

import pytest

from trunkline.services import trunks as trunk_service
from trunkline.services.trunk_usage import TrunkUsage
from trunkline.tests.utils.builders import (
    create_inbound_trunk,
    create_profile,
    create_trunk,
    error_codes,
    post_data,
)


STRONG = "Str0ngPass!!"


@pytest.mark.asyncio
async def test_create_trunk_provisions_and_fills_derived_fields(client, provisioner) -> None:
    response = await client.post(
        "/v1/trunks",
        json={"name": "LK out", "type": "livekit_outbound", "address": "sip.example.com"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["meta"]["api_version"] == "v1"
    assert response.headers["X-Request-Id"] == body["meta"]["request_id"]
    trunk = body["data"]
    assert trunk["direction"] == "outbound"
    assert trunk["provider"] == "livekit"
    assert trunk["status"] == "active"
    assert trunk["external_id"] in provisioner.trunks


@pytest.mark.asyncio
async def test_supplied_external_id_skips_provisioning(client, provisioner) -> None:
    trunk = await create_trunk(client, external_id="ST_existing")
    assert trunk["external_id"] == "ST_existing"
    assert provisioner.calls == []


@pytest.mark.asyncio
async def test_incoherent_trunk_payload_is_rejected(client, provisioner) -> None:
    response = await client.post(
        "/v1/trunks",
        json={"name": "Bad", "type": "livekit_inbound", "direction": "outbound", "address": "sip.example.com"},
    )
    assert response.status_code == 422
    assert error_codes(response) == ["INCOHERENT_TRUNK_PAYLOAD", "INCOHERENT_TRUNK_PAYLOAD"]
    assert provisioner.calls == []


@pytest.mark.asyncio
async def test_delete_guard_blocks_until_profile_is_repointed(client, provisioner) -> None:
    t1 = await create_trunk(client, name="T1")
    t2 = await create_trunk(client, name="T2")
    profile = await create_profile(client, outbound_trunk_id=t1["id"])

    blocked = await client.delete(f"/v1/trunks/{t1['id']}")
    assert blocked.status_code == 409
    error = blocked.json()["error"]
    assert error["code"] == "ENTITY_IN_USE"
    assert error["details"]["outbound"] == 1
    assert error["details"]["inbound"] == 0
    assert "delete_trunk" not in [name for name, _args in provisioner.calls]

    usage = (await client.get(f"/v1/trunks/{t1['id']}/usage")).json()["data"]
    assert usage == {"trunk_id": t1["id"], "outbound": 1, "inbound": 0, "total": 1, "in_use": True}
    referrers = (await client.get(f"/v1/trunks/{t1['id']}/routing-profiles")).json()["data"]
    assert [item["id"] for item in referrers["outbound"]] == [profile["id"]]

    repointed = await client.put(f"/v1/routing-profiles/{profile['id']}", json={"outbound_trunk_id": t2["id"]})
    assert repointed.status_code == 200

    deleted = await client.delete(f"/v1/trunks/{t1['id']}")
    assert deleted.status_code == 204
    assert t1["external_id"] not in provisioner.trunks
    assert (await client.get(f"/v1/trunks/{t1['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_provider_failure_keeps_trunk(client, provisioner) -> None:
    trunk = await create_trunk(client)
    provisioner.fail_on.add("delete_trunk")
    response = await client.delete(f"/v1/trunks/{trunk['id']}")
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "PROVIDER_PROVISIONING_FAILED"
    assert (await client.get(f"/v1/trunks/{trunk['id']}")).status_code == 200


@pytest.mark.asyncio
async def test_list_filters(client) -> None:
    await create_trunk(client, name="Out")
    await create_inbound_trunk(client, name="In")
    await create_trunk(client, name="Custom", type="custom", direction="bidirectional", external_id="c-1")

    inbound = (await client.get("/v1/trunks", params={"direction": "inbound"})).json()["data"]
    assert [trunk["name"] for trunk in inbound] == ["In"]
    livekit = (await client.get("/v1/trunks", params={"provider": "livekit"})).json()["data"]
    assert sorted(trunk["name"] for trunk in livekit) == ["In", "Out"]
    custom = (await client.get("/v1/trunks", params={"type": "custom"})).json()["data"]
    assert [trunk["direction"] for trunk in custom] == ["bidirectional"]


@pytest.mark.asyncio
async def test_direction_change_blocked_by_profile_usage(client) -> None:
    trunk = await create_trunk(client, name="Custom", type="custom", direction="bidirectional", external_id="c-1")
    await create_profile(client, outbound_trunk_id=trunk["id"])
    response = await client.put(f"/v1/trunks/{trunk['id']}", json={"direction": "inbound"})
    assert response.status_code == 422
    assert error_codes(response) == ["TRUNK_DIRECTION_MISMATCH"]


@pytest.mark.asyncio
async def test_direction_change_blocked_by_dispatch_rule(client) -> None:
    trunk = await create_trunk(client, name="Custom", type="custom", direction="bidirectional", external_id="c-1")
    rule = await post_data(client, "/dispatch-rules", {"name": "R", "type": "individual", "trunk_ids": [trunk["id"]]})

    blocked = await client.put(f"/v1/trunks/{trunk['id']}", json={"direction": "outbound"})
    assert blocked.status_code == 422
    violation = blocked.json()["error"]["details"]["violations"][0]
    assert violation["code"] == "TRUNK_DIRECTION_MISMATCH"
    assert violation["details"] == {"dispatch_rules": [rule["id"]]}
    stored = (await client.get(f"/v1/trunks/{trunk['id']}")).json()["data"]
    assert stored["direction"] == "bidirectional"

    narrowed = await client.put(f"/v1/trunks/{trunk['id']}", json={"direction": "inbound"})
    assert narrowed.status_code == 200


@pytest.mark.asyncio
async def test_delete_backstop_catches_reference_added_after_scan(client, provisioner, monkeypatch) -> None:
    trunk = await create_trunk(client)
    await create_profile(client, outbound_trunk_id=trunk["id"])
    real_usage = trunk_service.trunk_usage
    scans: list[str] = []

    async def stale_first_scan(session, trunk_id: str) -> TrunkUsage:
        scans.append(trunk_id)
        if len(scans) == 1:
            return TrunkUsage(outbound=0, inbound=0)
        return await real_usage(session, trunk_id)

    monkeypatch.setattr(trunk_service, "trunk_usage", stale_first_scan)
    response = await client.delete(f"/v1/trunks/{trunk['id']}")
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "ENTITY_IN_USE"
    assert (error["details"]["outbound"], error["details"]["inbound"]) == (1, 0)
    assert "delete_trunk" not in [name for name, _args in provisioner.calls]
    assert (await client.get(f"/v1/trunks/{trunk['id']}")).status_code == 200


@pytest.mark.asyncio
async def test_twilio_trunk_creates_credential_list(client, provisioner) -> None:
    trunk = await create_trunk(
        client,
        name="Twilio",
        type="twilio",
        direction="outbound",
        address=None,
        termination_sip_domain="acme.pstn.twilio.com",
        credential_mode="create",
        credential_list_name="Acme",
        username="sip1",
        password=STRONG,
    )
    assert trunk["credential_list_sid"] in provisioner.credential_lists
    assert trunk["external_id"].startswith("TK")
    # Secrets are forwarded but never echoed.
    assert "password" not in trunk

    credentials = (
        await client.get(f"/v1/twilio/credential-lists/{trunk['credential_list_sid']}/credentials")
    ).json()["data"]
    assert [(item["username"], item["status"]) for item in credentials] == [("sip1", "active")]


@pytest.mark.asyncio
async def test_twilio_trunk_failure_releases_credential_list(client, provisioner) -> None:
    provisioner.fail_on.add("create_trunk")
    response = await client.post(
        "/v1/trunks",
        json={
            "name": "Twilio",
            "type": "twilio",
            "direction": "outbound",
            "credential_mode": "create",
            "credential_list_name": "Acme",
            "username": "sip1",
            "password": STRONG,
        },
    )
    assert response.status_code == 502
    assert provisioner.credential_lists == {}
    assert provisioner.credentials == {}
    assert (await client.get("/v1/twilio/credential-lists")).json()["data"] == []
    assert (await client.get("/v1/trunks")).json()["data"] == []


@pytest.mark.asyncio
async def test_unversioned_alias_returns_bare_payload(client) -> None:
    trunk = await create_trunk(client)
    response = await client.get(f"/trunks/{trunk['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == trunk["id"]

    missing = await client.get("/trunks/nope")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "NOT_FOUND"
