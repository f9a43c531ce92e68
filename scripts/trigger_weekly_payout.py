#!/usr/bin/env python3
"""
Trigger the weekly payout processor over HTTP, for use from cron.

Usage:
    python scripts/trigger_weekly_payout.py
    python scripts/trigger_weekly_payout.py --week-start 2025-06-02

Environment Variables:
    API_URL: Base API URL (default: http://localhost:8000)
    SETTLEMENT_SERVICE_ID: UUID the service token is issued for
    JWT_SECRET_KEY: Signing key shared with the API
"""

import argparse
import json
import os
import sys
import uuid
from datetime import date, timedelta

import dotenv
import requests

dotenv.load_dotenv()

from clinic_scheduler.core.security import create_access_token  # noqa: E402
from clinic_scheduler.schemas.auth import Role  # noqa: E402


def service_token() -> str:
    """Mint a short-lived admin token for the settlement job."""
    subject = os.getenv("SETTLEMENT_SERVICE_ID") or str(uuid.uuid4())
    return create_access_token(
        {"sub": subject, "roles": [Role.ADMIN.value]},
        expires_delta=timedelta(minutes=5),
    )


def trigger(week_start: date | None) -> dict:
    """Call the payout processor and return its JSON body."""
    api_url = os.getenv("API_URL", "http://localhost:8000")
    url = f"{api_url}/api/v1/weekly_payout_processor"

    headers = {
        "Authorization": f"Bearer {service_token()}",
        "Content-Type": "application/json",
    }
    payload = {"week_start": week_start.isoformat() if week_start else None}

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=120)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.HTTPError as e:
        print(f"HTTP Error: {e}", file=sys.stderr)
        if e.response is not None:
            print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        print(f"Request Error: {e}", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    """Parse arguments and run the settlement."""
    parser = argparse.ArgumentParser(description="Run the weekly doctor payout settlement")
    parser.add_argument(
        "--week-start",
        type=date.fromisoformat,
        default=None,
        help="Monday of the week to settle (default: previous week)",
    )
    args = parser.parse_args()

    result = trigger(args.week_start)
    summary = result.get("summary", {})
    print(f"✓ {result.get('message')}")
    print(json.dumps(summary, indent=2))
    if result.get("errors"):
        print(f"⚠️  {len(result['errors'])} appointment(s) failed to settle", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
