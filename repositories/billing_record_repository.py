"""
Billing record repository (persistence).

This module provides *only* persistence operations for the BillingRecord domain
entity. It does not enforce lifecycle rules; it loads, inserts and overwrites
full rows. Overwrites can be made conditional on the previously observed
updated_at so that two workers racing on the same record cannot silently lose
an update.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from postgrest.exceptions import APIError
from supabase import Client  # type: ignore[import-not-found]

from domain.billing_record import BillingRecord
from domain.errors import ConcurrentModificationError, StoreError
from domain.time import to_iso_utc

logger = logging.getLogger(__name__)

# Keep this aligned with your database schema.
DEFAULT_BILLING_TABLE: str = "billing_records"


def _execute(query: Any, action: str) -> list[Mapping[str, Any]]:
    """Run a postgrest query and return its rows, raising StoreError on failure."""

    try:
        response = query.execute()
    except APIError as e:
        raise StoreError(f"Failed to {action}: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise StoreError(f"Failed to {action}: {error}")

    return getattr(response, "data", None) or []


class SupabaseBillingRecordRepository:
    """BillingRecordStore backed by a Supabase table."""

    def __init__(self, client: Client, table_name: str = DEFAULT_BILLING_TABLE):
        self._client = client
        self._table = table_name

    def get(self, record_id: str) -> Optional[BillingRecord]:
        """
        Retrieve a single billing record by its ID.

        Returns:
            BillingRecord or None if not found
        """

        rows = _execute(
            self._client.table(self._table).select("*").eq("id", record_id).limit(1),
            "get billing record",
        )
        if not rows:
            return None
        return BillingRecord.from_item(rows[0])

    def create(self, record: BillingRecord) -> None:
        _execute(
            self._client.table(self._table).insert(record.to_item()),
            "create billing record",
        )

    def put(self, record: BillingRecord, *, expected_updated_at: Optional[datetime] = None) -> None:
        """
        Overwrite a billing record.

        Args:
            record: full replacement for the stored row
            expected_updated_at: when given, only update if the stored row still
                carries this updated_at

        Raises:
            ConcurrentModificationError: the conditional update matched no row
            StoreError: the request failed
        """

        item = record.to_item()

        if expected_updated_at is None:
            _execute(self._client.table(self._table).upsert(item), "put billing record")
            return

        expected = to_iso_utc(expected_updated_at, name="expected_updated_at")
        rows = _execute(
            self._client.table(self._table)
            .update(item)
            .eq("id", record.record_id)
            .eq("updated_at_utc", expected),
            "update billing record",
        )
        if not rows:
            # Either the row vanished or another worker wrote it first.
            logger.warning("Conditional update lost for billing record %s", record.record_id)
            raise ConcurrentModificationError(record.record_id, expected)


__all__ = ["SupabaseBillingRecordRepository", "DEFAULT_BILLING_TABLE"]
