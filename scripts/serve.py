from __future__ import annotations

import argparse

import uvicorn

from trunkline.apps.api.main import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Trunkline administration API.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    # Logging is configured by create_app; keep uvicorn from replacing it.
    uvicorn.run(create_app(), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
