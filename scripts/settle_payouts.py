"""Trigger one merchant payout sweep and print the result JSON.

Meant for cron: the caller id and operator capability are sent the same way
the authentication gateway forwards them.
"""

import argparse
import json
import os

import httpx


def main() -> None:
    """CLI entrypoint for scheduled payout settlement."""

    parser = argparse.ArgumentParser(description="Settle all completed payments awaiting merchant payout.")
    parser.add_argument("--engine-url", default="http://localhost:8000")
    parser.add_argument("--operator-id", default="payout-scheduler")
    parser.add_argument("--api-key", default=os.getenv("API_KEY", ""))
    args = parser.parse_args()

    resp = httpx.post(
        f"{args.engine_url}/payouts/settle",
        headers={
            "x-api-key": args.api_key,
            "x-caller-id": args.operator_id,
            "x-caller-capabilities": "operator",
        },
        timeout=30.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
