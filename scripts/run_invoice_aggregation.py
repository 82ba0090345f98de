#!/usr/bin/env python3
"""
Invoice Aggregation Run

Drains the invoice queue once and writes time-windowed invoices.
Intended to be scheduled (e.g. every 5 minutes).

Usage:
    python scripts/run_invoice_aggregation.py
    python scripts/run_invoice_aggregation.py --batch-size 5 --window-size-minutes 15
    python scripts/run_invoice_aggregation.py --timeout-seconds 120

Schedule via cron (every 5 minutes):
    */5 * * * * cd /app/billing-pipeline && python scripts/run_invoice_aggregation.py
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.billing_record_repository import SupabaseBillingRecordRepository
from repositories.client import create_supabase_client
from repositories.invoice_repository import SupabaseInvoiceRepository
from repositories.queue_repository import SupabaseWorkQueue
from services.invoice_aggregation_service import AggregationRequest, InvoiceAggregator
from services.settings import PipelineSettings


def main() -> int:
    parser = argparse.ArgumentParser(description="Aggregate completed billing records into invoices")
    parser.add_argument("--batch-size", type=int, help="Messages per receive (1-10)")
    parser.add_argument("--window-size-minutes", type=int, help="Invoice window size in minutes")
    parser.add_argument("--timeout-seconds", type=int, help="Wall-clock budget for the run")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = PipelineSettings.from_env()
        client = create_supabase_client()
        aggregator = InvoiceAggregator(
            record_store=SupabaseBillingRecordRepository(client, settings.resolved_billing_table),
            invoice_store=SupabaseInvoiceRepository(client, settings.resolved_invoice_table),
            queue=SupabaseWorkQueue(
                client,
                visibility_timeout_seconds=settings.visibility_timeout_seconds,
                max_receive_count=settings.max_receive_count,
            ),
            settings=settings,
        )

        event = {
            "batchSize": args.batch_size,
            "windowSizeMinutes": args.window_size_minutes,
            "timeoutSeconds": args.timeout_seconds,
        }
        result = aggregator.run(AggregationRequest.from_event(event, settings))

        print(json.dumps(result.to_response(), indent=2))
        return 0 if result.success else 1

    except KeyboardInterrupt:
        print("\n\nInvoice aggregation interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
