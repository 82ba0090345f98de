#!/usr/bin/env python3
"""
Billing Worker

Consumes the billing queue and runs every referenced record through the
lifecycle processor (PENDING -> PROCESSING -> COMPLETED / retry / FAILED).

Usage:
    python scripts/run_billing_worker.py
    python scripts/run_billing_worker.py --drain
    python scripts/run_billing_worker.py --failure-rate 0.3 --seed 7
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.billing_record_repository import SupabaseBillingRecordRepository
from repositories.client import create_supabase_client
from repositories.queue_repository import SupabaseWorkQueue
from services.billing_lifecycle_service import BillingLifecycleProcessor
from services.billing_processors import SimulatedBillingProcessor
from services.billing_worker import run_billing_worker
from services.settings import PipelineSettings


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Process billing records from the billing queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--drain",
        action="store_true",
        help="Stop when the queue is empty instead of polling forever"
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        help="Stop after this many batches"
    )
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=0.1,
        help="Simulated processing failure probability (default: 0.1)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the simulated processor"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = PipelineSettings.from_env()
        client = create_supabase_client()
        queue = SupabaseWorkQueue(
            client,
            visibility_timeout_seconds=settings.visibility_timeout_seconds,
            max_receive_count=settings.max_receive_count,
        )
        lifecycle = BillingLifecycleProcessor(
            record_store=SupabaseBillingRecordRepository(client, settings.resolved_billing_table),
            queue=queue,
            processor=SimulatedBillingProcessor(
                failure_rate=args.failure_rate,
                rng=random.Random(args.seed) if args.seed is not None else None,
            ),
            settings=settings,
        )

        summary = run_billing_worker(
            lifecycle,
            queue,
            settings,
            max_batches=args.max_batches,
            stop_when_empty=args.drain,
        )

        print()
        print("=" * 60)
        print("BILLING WORKER SUMMARY")
        print("=" * 60)
        print(f"Batches:            {summary.batches}")
        print(f"Messages received:  {summary.messages_received}")
        print(f"Succeeded:          {summary.messages_succeeded}")
        print(f"Failed:             {summary.messages_failed}")
        print(f"Deleted:            {summary.messages_deleted}")
        return 0

    except KeyboardInterrupt:
        print("\n\nBilling worker interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
