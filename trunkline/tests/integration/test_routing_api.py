from __future__ import annotations

import pytest

from trunkline.tests.utils.builders import create_inbound_trunk, create_plan, create_profile, create_trunk, post_data


async def _seed(client) -> dict:
    outbound = await create_trunk(client, name="T1")
    inbound = await create_inbound_trunk(client, name="In")
    rule = await post_data(
        client,
        "/dispatch-rules",
        {"name": "Agents", "type": "individual", "room_prefix": "call-", "trunk_ids": [inbound["id"]]},
    )
    await create_plan(client)
    profile = await create_profile(
        client,
        outbound_trunk_id=outbound["id"],
        inbound_trunk_id=inbound["id"],
        dispatch_rule_id=rule["id"],
        plan_code="PRO",
    )
    return {"outbound": outbound, "inbound": inbound, "rule": rule, "profile": profile}


@pytest.mark.asyncio
async def test_resolve_outbound_by_country(client) -> None:
    seeded = await _seed(client)
    response = await client.post(
        "/v1/routing/resolve", json={"plan_code": "PRO", "direction": "outbound", "country": "US"}
    )
    assert response.status_code == 200
    route = response.json()["data"]
    assert route["trunk"]["id"] == seeded["outbound"]["id"]
    assert route["matched_by"] == "country"
    assert route["dispatch_rule"] is None


@pytest.mark.asyncio
async def test_resolve_inbound_includes_dispatch_rule(client) -> None:
    seeded = await _seed(client)
    response = await client.post(
        "/v1/routing/resolve", json={"plan_code": "pro", "direction": "inbound", "country": "us"}
    )
    route = response.json()["data"]
    assert route["trunk"]["id"] == seeded["inbound"]["id"]
    assert route["dispatch_rule"]["id"] == seeded["rule"]["id"]
    assert route["dispatch_rule"]["room_prefix"] == "call-"


@pytest.mark.asyncio
async def test_resolve_is_deterministic(client) -> None:
    await _seed(client)
    payload = {"plan_code": "PRO", "direction": "inbound", "country": "US"}
    first = (await client.post("/v1/routing/resolve", json=payload)).json()["data"]
    second = (await client.post("/v1/routing/resolve", json=payload)).json()["data"]
    assert first == second


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("payload", "code"),
    [
        ({"plan_code": "PRO", "direction": "outbound", "country": "FR"}, "COUNTRY_NOT_ALLOWED_FOR_PLAN"),
        ({"plan_code": "PRO", "direction": "outbound", "country": "CA"}, "NO_ROUTING_PROFILE_FOR_LOCALITY"),
        ({"plan_code": "ENT", "direction": "outbound", "country": "US"}, "UNKNOWN_PLAN"),
        ({"plan_code": "PRO", "direction": "sideways", "country": "US"}, "VALIDATION_FAILED"),
    ],
)
async def test_resolution_failures_are_typed(client, payload: dict, code: str) -> None:
    await _seed(client)
    response = await client.post("/v1/routing/resolve", json=payload)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == code


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/v1/health")
    assert response.status_code == 200
    assert response.json()["data"] == {"status": "ok", "database": "ok"}
