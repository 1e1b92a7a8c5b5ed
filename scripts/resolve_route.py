from __future__ import annotations

import argparse
import asyncio
import json
import sys

from trunkline.core.errors import ResolutionError, TrunklineError, UnknownPlan, ValidationFailed
from trunkline.persistence.db import SessionLocal
from trunkline.services.routing import resolve_route, route_to_dict


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resolve the trunk and dispatch rule for a call.")
    parser.add_argument("--plan", required=True, help="Plan code")
    parser.add_argument("--direction", required=True, choices=["inbound", "outbound"])
    locality = parser.add_mutually_exclusive_group(required=True)
    locality.add_argument("--country", help="ISO-3166 alpha-2 country code")
    locality.add_argument("--region", help="Operator-defined region code")
    return parser


def _format_error(exc: TrunklineError) -> tuple[int, str]:
    # Exit codes separate bad input from missing configuration.
    if isinstance(exc, ValidationFailed):
        return 2, f"{exc.code}: {', '.join(exc.codes)}"
    if isinstance(exc, (UnknownPlan, ResolutionError)):
        return 3, f"{exc.code}: {exc.message}"
    return 1, f"{exc.code}: {exc.message}"


async def _run(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        route = await resolve_route(
            session,
            plan_code=args.plan,
            direction=args.direction,
            country=args.country,
            region=args.region,
        )
    print(json.dumps(route_to_dict(route), indent=2))
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_run(args))
    except TrunklineError as exc:
        code, message = _format_error(exc)
        print(message, file=sys.stderr)
        return code


if __name__ == "__main__":
    raise SystemExit(main())
