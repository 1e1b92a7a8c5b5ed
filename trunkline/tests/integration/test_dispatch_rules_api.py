from __future__ import annotations

import pytest

from trunkline.tests.utils.builders import (
    create_inbound_trunk,
    create_profile,
    create_trunk,
    error_codes,
    post_data,
)


@pytest.mark.asyncio
async def test_callee_rule_with_room_name_is_incoherent(client) -> None:
    trunk = await create_inbound_trunk(client)
    response = await client.post(
        "/v1/dispatch-rules",
        json={"name": "Callee", "type": "callee", "room_name": "fixed-room", "trunk_ids": [trunk["id"]]},
    )
    assert response.status_code == 422
    violation = response.json()["error"]["details"]["violations"][0]
    assert (violation["code"], violation["field"]) == ("INCOHERENT_DISPATCH_PAYLOAD", "room_name")


@pytest.mark.asyncio
async def test_rule_requires_inbound_capable_trunks(client) -> None:
    outbound = await create_trunk(client)
    empty = await client.post("/v1/dispatch-rules", json={"name": "R", "type": "individual", "trunk_ids": []})
    assert error_codes(empty) == ["NO_TRUNKS_SELECTED"]

    wrong = await client.post(
        "/v1/dispatch-rules", json={"name": "R", "type": "individual", "trunk_ids": [outbound["id"]]}
    )
    assert wrong.status_code == 422
    violation = wrong.json()["error"]["details"]["violations"][0]
    assert violation["code"] == "DISPATCH_TRUNK_INVALID"
    assert violation["details"] == {"outbound_only": [outbound["id"]]}


@pytest.mark.asyncio
async def test_trunk_ids_patch_operations(client) -> None:
    first = await create_inbound_trunk(client, name="In 1")
    second = await create_inbound_trunk(client, name="In 2")
    rule = await post_data(
        client,
        "/dispatch-rules",
        {"name": "R", "type": "individual", "room_prefix": "call-", "trunk_ids": [first["id"]]},
    )

    added = await client.put(f"/v1/dispatch-rules/{rule['id']}", json={"trunk_ids": {"add": [second["id"]]}})
    assert added.json()["data"]["trunk_ids"] == [first["id"], second["id"]]

    removed = await client.put(f"/v1/dispatch-rules/{rule['id']}", json={"trunk_ids": {"remove": [first["id"]]}})
    assert removed.json()["data"]["trunk_ids"] == [second["id"]]

    emptied = await client.put(f"/v1/dispatch-rules/{rule['id']}", json={"trunk_ids": {"remove": [second["id"]]}})
    assert emptied.status_code == 422
    assert error_codes(emptied) == ["NO_TRUNKS_SELECTED"]


@pytest.mark.asyncio
async def test_type_switch_clears_foreign_fields(client) -> None:
    trunk = await create_inbound_trunk(client)
    rule = await post_data(
        client,
        "/dispatch-rules",
        {"name": "R", "type": "direct", "room_name": "lobby", "pin": "1234", "trunk_ids": [trunk["id"]]},
    )
    response = await client.put(
        f"/v1/dispatch-rules/{rule['id']}", json={"type": "callee", "room_prefix": "call-", "randomize": True}
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["type"], data["room_name"], data["pin"], data["randomize"]) == ("callee", None, None, True)


@pytest.mark.asyncio
async def test_rule_used_by_profile_cannot_be_deleted(client) -> None:
    trunk = await create_inbound_trunk(client)
    rule = await post_data(client, "/dispatch-rules", {"name": "R", "type": "individual", "trunk_ids": [trunk["id"]]})
    await create_profile(client, inbound_trunk_id=trunk["id"], dispatch_rule_id=rule["id"])

    response = await client.delete(f"/v1/dispatch-rules/{rule['id']}")
    assert response.status_code == 409
    assert response.json()["error"]["details"]["routing_profiles"] == 1


@pytest.mark.asyncio
async def test_trunk_delete_drops_it_from_rules(client) -> None:
    first = await create_inbound_trunk(client, name="In 1")
    second = await create_inbound_trunk(client, name="In 2")
    rule = await post_data(
        client, "/dispatch-rules", {"name": "R", "type": "individual", "trunk_ids": [first["id"], second["id"]]}
    )

    assert (await client.delete(f"/v1/trunks/{first['id']}")).status_code == 204
    stored = (await client.get(f"/v1/dispatch-rules/{rule['id']}")).json()["data"]
    assert stored["trunk_ids"] == [second["id"]]


@pytest.mark.asyncio
async def test_rule_left_without_trunks_blocks_trunk_delete(client, provisioner) -> None:
    trunk = await create_inbound_trunk(client)
    rule = await post_data(client, "/dispatch-rules", {"name": "R", "type": "individual", "trunk_ids": [trunk["id"]]})

    response = await client.delete(f"/v1/trunks/{trunk['id']}")
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "ENTITY_IN_USE"
    assert error["details"]["dispatch_rules"] == 1
    assert "delete_trunk" not in [name for name, _args in provisioner.calls]

    stored = (await client.get(f"/v1/dispatch-rules/{rule['id']}")).json()["data"]
    assert stored["trunk_ids"] == [trunk["id"]]
