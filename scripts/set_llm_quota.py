#!/usr/bin/env python3
"""
Set a customer's LLM request quota.

The quota is stored on the customer's rate-limit document and carries over
into every later window. Usage already counted in the current window is kept.

Usage:
  python scripts/set_llm_quota.py <customer_id> <quota> [--period monthly]
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from llmdispatch.core.database import Database
from llmdispatch.rate_limit.service import PERIODS, RateLimiter


async def set_quota(customer_id: str, quota: int, period: str) -> None:
    await Database.connect()
    try:
        limiter = RateLimiter(period=period)
        await limiter.set_quota(customer_id, quota)
        status = await limiter.check(customer_id)
    finally:
        await Database.disconnect()

    print(f"{customer_id}: {status.used}/{status.quota} used this {period} window (resets {status.reset_at.isoformat()})")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("customer_id")
    parser.add_argument("quota", type=int)
    parser.add_argument("--period", choices=PERIODS, default="monthly")
    args = parser.parse_args()
    asyncio.run(set_quota(args.customer_id, args.quota, args.period))


if __name__ == "__main__":
    main()
