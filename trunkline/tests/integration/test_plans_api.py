from __future__ import annotations

import pytest

from trunkline.tests.utils.builders import create_plan, create_profile, error_codes


@pytest.mark.asyncio
async def test_plan_code_and_countries_are_normalized(client) -> None:
    plan = await create_plan(client, code=" pro ", allowed_countries=["us", "CA", "US"], metadata={"tier": 2})
    assert plan["code"] == "PRO"
    assert plan["allowed_countries"] == ["US", "CA"]
    assert plan["metadata"] == {"tier": 2}
    assert plan["monthly_price_cents"] == 0


@pytest.mark.asyncio
async def test_duplicate_code_conflicts(client) -> None:
    await create_plan(client)
    response = await client.post("/v1/plans", json={"code": "pro"})
    assert response.status_code == 409
    assert response.json()["error"]["details"] == {"entity": "plan", "field": "code", "value": "PRO"}


@pytest.mark.asyncio
async def test_invalid_plan_payload_reports_every_violation(client) -> None:
    response = await client.post(
        "/v1/plans", json={"code": "x", "monthly_price_cents": -5, "allowed_countries": ["ZZ"]}
    )
    assert response.status_code == 422
    assert error_codes(response) == ["INVALID_PLAN_CODE", "NEGATIVE_VALUE", "UNKNOWN_COUNTRY_CODE"]


@pytest.mark.asyncio
async def test_code_is_immutable_but_other_fields_update(client) -> None:
    plan = await create_plan(client)
    renamed = await client.put(f"/v1/plans/{plan['id']}", json={"code": "ENT"})
    assert renamed.status_code == 422
    assert error_codes(renamed) == ["IMMUTABLE_FIELD"]

    updated = await client.put(f"/v1/plans/{plan['id']}", json={"name": "Professional", "included_ai_minutes": 500})
    assert updated.status_code == 200
    assert updated.json()["data"]["name"] == "Professional"
    assert updated.json()["data"]["included_ai_minutes"] == 500
    assert updated.json()["data"]["code"] == "PRO"


@pytest.mark.asyncio
async def test_template_must_reference_existing_profile(client) -> None:
    response = await client.post("/v1/plans", json={"code": "PRO", "default_routing_profile_template_id": "nope"})
    assert error_codes(response) == ["UNKNOWN_REFERENCE"]

    profile = await create_profile(client)
    plan = await create_plan(client, default_routing_profile_template_id=profile["id"])
    assert plan["default_routing_profile_template_id"] == profile["id"]

    blocked = await client.delete(f"/v1/routing-profiles/{profile['id']}")
    assert blocked.status_code == 409
    assert blocked.json()["error"]["details"]["plans"] == 1


@pytest.mark.asyncio
async def test_mapped_plan_cannot_be_deleted(client) -> None:
    plan = await create_plan(client)
    await create_profile(client, plan_code="PRO")
    response = await client.delete(f"/v1/plans/{plan['id']}")
    assert response.status_code == 409
    assert response.json()["error"]["details"]["mappings"] == 1


@pytest.mark.asyncio
async def test_unknown_plan_is_not_found(client) -> None:
    response = await client.get("/v1/plans/missing")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
