#!/usr/bin/env python3
"""
Load Generator

Posts random billing requests to the intake endpoint from a thread pool and
reports throughput.

Usage:
    python scripts/generate_load.py --url http://localhost:8000/api/v1/billing
    python scripts/generate_load.py --request-count 500 --concurrency 20 --request-delay-ms 0
    BILLING_API_URL=http://localhost:8000/api/v1/billing python scripts/generate_load.py
"""

from __future__ import annotations

import argparse
import logging
import os
import random
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_COUNT = 100
DEFAULT_CONCURRENCY = 10
DEFAULT_REQUEST_DELAY_MS = 100
DEFAULT_CURRENCY = "USD"

CUSTOMER_POOL = 20
PRODUCT_POOL = 50


def generate_random_billing_request(currency: str, rng: random.Random) -> Dict[str, Any]:
    amount = Decimal(rng.randint(100, 100_000)) / Decimal(100)
    return {
        "customerId": f"customer-{rng.randint(1, CUSTOMER_POOL)}",
        "productId": f"product-{rng.randint(1, PRODUCT_POOL)}",
        "amount": str(amount),
        "currency": currency,
        "source": "load-generator",
        "requestTimestamp": str(int(time.time() * 1000)),
    }


def _send(client: httpx.Client, url: str, payload: Dict[str, Any]) -> bool:
    try:
        response = client.post(url, json=payload)
    except httpx.HTTPError as e:
        logger.error("Error sending request: %s", e)
        return False
    if response.status_code != 200:
        logger.warning("Billing request rejected with %s: %s", response.status_code, response.text)
        return False
    return True


def generate_load(
    url: str,
    request_count: int = DEFAULT_REQUEST_COUNT,
    concurrency: int = DEFAULT_CONCURRENCY,
    request_delay_ms: int = DEFAULT_REQUEST_DELAY_MS,
    currency: str = DEFAULT_CURRENCY,
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    rng = random.Random(seed)
    payloads = [generate_random_billing_request(currency, rng) for _ in range(request_count)]

    def submit(index: int) -> bool:
        if request_delay_ms > 0 and index > 0:
            time.sleep(request_delay_ms / 1000.0)
        return _send(client, url, payloads[index])

    start = time.monotonic()
    with httpx.Client(timeout=5.0) as client:
        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
            results = list(pool.map(submit, range(request_count)))
    total_time_ms = max(1, int((time.monotonic() - start) * 1000))

    success_count = sum(1 for ok in results if ok)
    return {
        "success": True,
        "requestCount": request_count,
        "successCount": success_count,
        "failureCount": request_count - success_count,
        "totalTimeMs": total_time_ms,
        "requestsPerSecond": request_count * 1000.0 / total_time_ms,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate billing request load against the intake API")
    parser.add_argument("--url", default=os.getenv("BILLING_API_URL"), help="Billing intake URL")
    parser.add_argument("--request-count", type=int, default=DEFAULT_REQUEST_COUNT)
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY)
    parser.add_argument("--request-delay-ms", type=int, default=DEFAULT_REQUEST_DELAY_MS)
    parser.add_argument("--currency", default=DEFAULT_CURRENCY)
    parser.add_argument("--seed", type=int)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not args.url:
        print("ERROR: pass --url or set BILLING_API_URL", file=sys.stderr)
        return 2

    print(
        f"Sending {args.request_count} requests to {args.url} "
        f"(concurrency={args.concurrency}, delay={args.request_delay_ms}ms, currency={args.currency})"
    )

    try:
        stats = generate_load(
            url=args.url,
            request_count=args.request_count,
            concurrency=args.concurrency,
            request_delay_ms=args.request_delay_ms,
            currency=args.currency,
            seed=args.seed,
        )
    except KeyboardInterrupt:
        print("\n\nLoad generation interrupted by user")
        return 130

    print()
    print(f"Succeeded:   {stats['successCount']}/{stats['requestCount']}")
    print(f"Failed:      {stats['failureCount']}")
    print(f"Total time:  {stats['totalTimeMs']} ms")
    print(f"Throughput:  {stats['requestsPerSecond']:.1f} req/s")
    return 0 if stats["failureCount"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
