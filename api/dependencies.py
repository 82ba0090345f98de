"""
API dependency wiring.

The Supabase client, adapters and services are built once per process and
handed to routes through FastAPI's dependency injection. Tests replace them
with `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache

from supabase import Client  # type: ignore[import-not-found]

from repositories.billing_record_repository import SupabaseBillingRecordRepository
from repositories.client import create_supabase_client
from repositories.contracts import BillingRecordStore, InvoiceStore, WorkQueue
from repositories.invoice_repository import SupabaseInvoiceRepository
from repositories.queue_repository import SupabaseWorkQueue
from services.invoice_aggregation_service import InvoiceAggregator
from services.settings import PipelineSettings


@lru_cache(maxsize=1)
def get_settings() -> PipelineSettings:
    return PipelineSettings.from_env()


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    return create_supabase_client()


def get_record_store() -> BillingRecordStore:
    return SupabaseBillingRecordRepository(get_supabase(), get_settings().resolved_billing_table)


def get_invoice_store() -> InvoiceStore:
    return SupabaseInvoiceRepository(get_supabase(), get_settings().resolved_invoice_table)


def get_queue() -> WorkQueue:
    settings = get_settings()
    return SupabaseWorkQueue(
        get_supabase(),
        visibility_timeout_seconds=settings.visibility_timeout_seconds,
        max_receive_count=settings.max_receive_count,
    )


def get_aggregator() -> InvoiceAggregator:
    return InvoiceAggregator(
        record_store=get_record_store(),
        invoice_store=get_invoice_store(),
        queue=get_queue(),
        settings=get_settings(),
    )


__all__ = [
    "get_settings",
    "get_supabase",
    "get_record_store",
    "get_invoice_store",
    "get_queue",
    "get_aggregator",
]
