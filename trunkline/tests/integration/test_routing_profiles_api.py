from __future__ import annotations

import pytest

from trunkline.tests.utils.builders import create_plan, create_profile, create_trunk, error_codes, post_data


@pytest.mark.asyncio
async def test_profile_with_both_country_and_region_is_rejected(client) -> None:
    response = await client.post(
        "/v1/routing-profiles",
        json={"name": "RP", "outbound_provider": "livekit", "country": "US", "region": "NA"},
    )
    assert response.status_code == 422
    violation = response.json()["error"]["details"]["violations"][0]
    assert violation["code"] == "INVALID_LOCALITY"
    assert violation["details"] == {"reason": "both_set"}


@pytest.mark.asyncio
async def test_profile_references_are_checked(client) -> None:
    inbound = await create_trunk(client, name="In", type="livekit_inbound", address=None, numbers=["+15550100"])
    response = await client.post(
        "/v1/routing-profiles",
        json={
            "name": "RP",
            "outbound_provider": "livekit",
            "country": "US",
            "outbound_trunk_id": inbound["id"],
            "dispatch_rule_id": "missing",
        },
    )
    assert response.status_code == 422
    assert error_codes(response) == ["TRUNK_DIRECTION_MISMATCH", "UNKNOWN_REFERENCE"]


@pytest.mark.asyncio
async def test_create_with_plan_code_adds_mapping(client) -> None:
    await create_plan(client)
    profile = await create_profile(client, country="us", plan_code="pro")
    assert profile["country"] == "US"

    mappings = (await client.get("/v1/plan-routing-profiles", params={"plan_code": "PRO"})).json()["data"]
    assert [(m["routing_profile_id"], m["country"], m["region"]) for m in mappings] == [(profile["id"], "US", None)]


@pytest.mark.asyncio
async def test_create_with_unknown_plan_creates_nothing(client) -> None:
    response = await client.post(
        "/v1/routing-profiles",
        json={"name": "RP", "outbound_provider": "livekit", "country": "US", "plan_code": "NOPE"},
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "UNKNOWN_PLAN"
    assert (await client.get("/v1/routing-profiles")).json()["data"] == []


@pytest.mark.asyncio
async def test_duplicate_locality_mapping_conflicts(client) -> None:
    await create_plan(client)
    await create_profile(client, plan_code="PRO")
    response = await client.post(
        "/v1/routing-profiles",
        json={"name": "RP2", "outbound_provider": "livekit", "country": "US", "plan_code": "PRO"},
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DUPLICATE_ENTITY"
    names = [profile["name"] for profile in (await client.get("/v1/routing-profiles")).json()["data"]]
    assert names == ["RP1"]


@pytest.mark.asyncio
async def test_mapped_profile_cannot_be_deleted(client) -> None:
    await create_plan(client)
    profile = await create_profile(client, plan_code="PRO")
    response = await client.delete(f"/v1/routing-profiles/{profile['id']}")
    assert response.status_code == 409
    assert response.json()["error"]["details"]["mappings"] == 1

    [mapping] = (await client.get("/v1/plan-routing-profiles")).json()["data"]
    assert (await client.delete(f"/v1/plan-routing-profiles/{mapping['id']}")).status_code == 204
    assert (await client.delete(f"/v1/routing-profiles/{profile['id']}")).status_code == 204


@pytest.mark.asyncio
async def test_mapping_payload_with_both_localities_is_rejected(client) -> None:
    await create_plan(client)
    profile = await create_profile(client)
    response = await client.post(
        "/v1/plan-routing-profiles",
        json={"plan_code": "PRO", "routing_profile_id": profile["id"], "country": "US", "region": "NA"},
    )
    assert response.status_code == 422
    assert error_codes(response) == ["INVALID_LOCALITY"]


@pytest.mark.asyncio
async def test_mapping_update_can_switch_locality(client) -> None:
    await create_plan(client)
    profile = await create_profile(client)
    mapping = await post_data(
        client, "/plan-routing-profiles", {"plan_code": "PRO", "routing_profile_id": profile["id"], "country": "US"}
    )
    response = await client.put(
        f"/v1/plan-routing-profiles/{mapping['id']}", json={"country": None, "region": "NA"}
    )
    assert response.status_code == 200
    assert (response.json()["data"]["country"], response.json()["data"]["region"]) == (None, "NA")


@pytest.mark.asyncio
async def test_list_filters_by_country(client) -> None:
    await create_profile(client, name="US")
    await create_profile(client, name="EU", country=None, region="eu-west")
    listed = (await client.get("/v1/routing-profiles", params={"country": "us"})).json()["data"]
    assert [profile["name"] for profile in listed] == ["US"]
