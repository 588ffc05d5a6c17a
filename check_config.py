#!/usr/bin/env python3
"""
Diagnostic script to verify the webhook receivers' environment.
Run this before deploying to check that signing secrets and the store are set.

Usage:
    python check_config.py
"""

import os
import sys
from typing import List, Tuple

from dotenv import load_dotenv

load_dotenv()


def check_env_var(name: str, required: bool = True) -> Tuple[bool, str]:
    """Check if environment variable is set and return status."""
    value = os.getenv(name)
    if value:
        # Mask sensitive values
        if "KEY" in name or "SECRET" in name or "URL" in name:
            masked = value[:8] + "..." if len(value) > 8 else "***"
            return True, f"✓ {name}: {masked}"
        return True, f"✓ {name}: {value}"
    status = "✗" if required else "○"
    return False, f"{status} {name}: NOT SET"


def _check_receiver(title: str, platform_var: str, connect_var: str, issues: List[str]) -> None:
    print(f"{title}:")
    print("-" * 40)
    found = False
    for var in (platform_var, connect_var):
        ok, msg = check_env_var(var, required=False)
        print(msg)
        found = found or ok
    if not found:
        print("  ✗ No signing secret: every delivery will be answered with HTTP 500")
        issues.append(f"{title}: set {platform_var} and/or {connect_var}")
    print()


def main() -> None:
    print("=" * 60)
    print("Marketplace Webhooks Configuration Check")
    print("=" * 60)
    print()

    issues: List[str] = []

    print("Stripe API:")
    print("-" * 40)
    ok, msg = check_env_var("STRIPE_SECRET_KEY", required=True)
    print(msg)
    if not ok:
        print("  ⚠ Sale settlement re-fetches PaymentIntents and will fail without an API key")
        issues.append("Missing required variable: STRIPE_SECRET_KEY")
    print()

    _check_receiver("Sale receiver", "STRIPE_WEBHOOK_SECRET", "STRIPE_CONNECT_WEBHOOK_SECRET", issues)
    _check_receiver("Credits receiver", "STRIPE_CREDITS_WEBHOOK_SECRET", "STRIPE_CREDITS_CONNECT_SECRET", issues)

    print("Database Configuration:")
    print("-" * 40)
    ok, msg = check_env_var("DATABASE_URL", required=False)
    print(msg)
    if not ok:
        print("  ℹ Using default SQLite database")
    print()

    print("Payouts:")
    print("-" * 40)
    raw_delay = os.getenv("PAYOUT_DELAY_MINUTES")
    if raw_delay is None:
        print("○ PAYOUT_DELAY_MINUTES: NOT SET (default 10)")
    elif raw_delay.strip().isdigit():
        print(f"✓ PAYOUT_DELAY_MINUTES: {raw_delay.strip()}")
    else:
        print(f"⚠ PAYOUT_DELAY_MINUTES: {raw_delay!r} is not a whole number; default 10 is used")
        issues.append("PAYOUT_DELAY_MINUTES is not a non-negative integer")
    print()

    print("=" * 60)
    if issues:
        print("⚠ ISSUES FOUND:")
        for issue in issues:
            print(f"  - {issue}")
        print()
        print("Please fix these issues before deploying.")
        sys.exit(1)
    else:
        print("✓ Configuration looks good!")
        print()
        print("Next steps:")
        print("  1. Create the schema: python -m database.initialize")
        print("  2. Run the service: uvicorn main:app --reload")
        print("  3. Check health endpoint: /api/health")
        sys.exit(0)


if __name__ == "__main__":
    main()
