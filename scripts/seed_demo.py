from __future__ import annotations

import argparse
import asyncio
import sys

from trunkline.core.errors import TrunklineError
from trunkline.persistence.db import SessionLocal
from trunkline.persistence.repos import plans as plans_repo
from trunkline.providers.provisioning.fake import FakeProvisioningProvider
from trunkline.services import dispatch_rules, plan_routing_profiles, plans, routing_profiles, trunks


DEMO_PLAN_CODE = "DEMO"


async def seed_demo(plan_code: str) -> int:
    # Seeded trunks carry external ids, so nothing is provisioned at a real provider.
    provisioner = FakeProvisioningProvider()
    async with SessionLocal() as session:
        if await plans_repo.get_plan_by_code(session, plan_code) is not None:
            print(f"Plan {plan_code} already seeded; skipping.")
            return 0

        outbound = await trunks.create_trunk(
            session,
            provisioner,
            {
                "name": "Demo outbound",
                "type": "livekit_outbound",
                "address": "sip.demo.example.com",
                "numbers": ["+15550100"],
                "external_id": "ST_demo_outbound",
            },
        )
        inbound = await trunks.create_trunk(
            session,
            provisioner,
            {
                "name": "Demo inbound",
                "type": "livekit_inbound",
                "numbers": ["+15550100"],
                "external_id": "ST_demo_inbound",
            },
        )
        rule = await dispatch_rules.create_dispatch_rule(
            session,
            {
                "name": "Demo individual rooms",
                "type": "individual",
                "room_prefix": "call-",
                "trunk_ids": [inbound.id],
                "agent_name": "demo-agent",
                "auto_dispatch": True,
            },
        )
        profile_fields = {
            "outbound_provider": "livekit",
            "outbound_trunk_id": outbound.id,
            "inbound_provider": "livekit",
            "inbound_trunk_id": inbound.id,
            "dispatch_provider": "livekit",
            "dispatch_rule_id": rule.id,
        }
        us_profile = await routing_profiles.create_routing_profile(
            session, {"name": "Demo US", "country": "US", **profile_fields}
        )
        eu_profile = await routing_profiles.create_routing_profile(
            session, {"name": "Demo EU", "region": "eu-west", **profile_fields}
        )
        await plans.create_plan(
            session,
            {
                "code": plan_code,
                "name": "Demo plan",
                "monthly_price_cents": 4900,
                "included_phone_numbers": 1,
                "included_pstn_minutes": 500,
                "allowed_countries": ["US", "CA", "GB", "DE"],
                "default_routing_profile_template_id": us_profile.id,
            },
        )
        await plan_routing_profiles.create_mapping(
            session, {"plan_code": plan_code, "routing_profile_id": us_profile.id, "country": "US"}
        )
        await plan_routing_profiles.create_mapping(
            session, {"plan_code": plan_code, "routing_profile_id": eu_profile.id, "region": "eu-west"}
        )
    print(f"Seeded plan {plan_code} with 2 trunks, 1 dispatch rule, 2 routing profiles.")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed a demo plan with trunks and routing profiles")
    parser.add_argument("--plan-code", default=DEMO_PLAN_CODE)
    args = parser.parse_args()
    try:
        return asyncio.run(seed_demo(args.plan_code.strip().upper()))
    except TrunklineError as exc:
        print(f"seed_demo failed: {exc.code}: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
