"""
Invoice repository (persistence).

This module provides *only* persistence operations for the Invoice domain
entity. Invoices are written once per aggregation window; the row is a full
overwrite keyed on the invoice id.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from postgrest.exceptions import APIError
from supabase import Client  # type: ignore[import-not-found]

from domain.errors import StoreError
from domain.invoice import Invoice

# Keep this aligned with your database schema.
DEFAULT_INVOICE_TABLE: str = "invoices"


def _execute(query: Any, action: str) -> list[Mapping[str, Any]]:
    try:
        response = query.execute()
    except APIError as e:
        raise StoreError(f"Failed to {action}: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise StoreError(f"Failed to {action}: {error}")

    return getattr(response, "data", None) or []


class SupabaseInvoiceRepository:
    """InvoiceStore backed by a Supabase table."""

    def __init__(self, client: Client, table_name: str = DEFAULT_INVOICE_TABLE):
        self._client = client
        self._table = table_name

    def get(self, invoice_id: str) -> Optional[Invoice]:
        rows = _execute(
            self._client.table(self._table).select("*").eq("id", invoice_id).limit(1),
            "get invoice",
        )
        if not rows:
            return None
        return Invoice.from_item(rows[0])

    def put(self, invoice: Invoice) -> None:
        _execute(self._client.table(self._table).upsert(invoice.to_item()), "save invoice")

    def list_by_batch(self, batch_id: str) -> List[Invoice]:
        """
        Retrieve all invoices produced by one aggregation run.

        Returns:
            List[Invoice] ordered by window (possibly empty)
        """

        rows = _execute(
            self._client.table(self._table)
            .select("*")
            .eq("batch_id", batch_id)
            .order("window_id"),
            "list invoices",
        )
        return [Invoice.from_item(row) for row in rows]


__all__ = ["SupabaseInvoiceRepository", "DEFAULT_INVOICE_TABLE"]
