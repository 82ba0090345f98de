"""
Domain: Invoice entity.

An Invoice aggregates COMPLETED billing records for one customer, one
currency, one time window and one aggregation batch.

Rules implemented here:
- Every constituent record shares the invoice currency; a mismatch is rejected.
- total_amount always equals the sum of the constituent amounts. Adding a
  record is the only operation that changes it, and it appends the id and the
  amount in the same step.
- Status is set to COMPLETED once and never changes afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Tuple
from uuid import uuid4

from .billing_record import BillingRecord, parse_amount
from .errors import CurrencyMismatchError, InvalidTransitionError
from .time import advance_timestamp, parse_utc_datetime, require_utc_timestamp, to_iso_utc, utc_now


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class Invoice:
    """
    Immutable snapshot of an invoice.

    Open one with `Invoice.open(...)`, then fold records in with
    `add_billing_record` and finish with `mark_completed`.
    """

    invoice_id: str
    customer_id: str
    currency: str
    batch_id: str
    window_id: str
    status: InvoiceStatus
    created_at: datetime
    updated_at: datetime
    total_amount: Decimal = Decimal("0")
    billing_record_ids: Tuple[str, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)

    @staticmethod
    def open(
        customer_id: str,
        currency: str,
        batch_id: str,
        window_id: str,
        now: Optional[datetime] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> "Invoice":
        created = now or utc_now()
        return Invoice(
            invoice_id=str(uuid4()),
            customer_id=customer_id,
            currency=currency,
            batch_id=batch_id,
            window_id=window_id,
            status=InvoiceStatus.PENDING,
            created_at=created,
            updated_at=created,
            metadata=dict(metadata or {}),
        )

    @property
    def record_count(self) -> int:
        return len(self.billing_record_ids)

    def add_billing_record(self, record: BillingRecord, now: datetime) -> "Invoice":
        if self.status is not InvoiceStatus.PENDING:
            raise InvalidTransitionError(self.invoice_id, self.status.value, "add record")
        if record.currency != self.currency:
            raise CurrencyMismatchError(self.currency, record.currency)
        if record.customer_id != self.customer_id:
            raise ValueError(
                f"Customer mismatch: Invoice customer is {self.customer_id} "
                f"but billing record customer is {record.customer_id}"
            )

        return replace(
            self,
            billing_record_ids=self.billing_record_ids + (record.record_id,),
            total_amount=self.total_amount + record.amount,
            updated_at=advance_timestamp(self.updated_at, now),
        )

    def mark_completed(self, now: datetime) -> "Invoice":
        if self.status is not InvoiceStatus.PENDING:
            raise InvalidTransitionError(self.invoice_id, self.status.value, InvoiceStatus.COMPLETED.value)
        return replace(
            self,
            status=InvoiceStatus.COMPLETED,
            updated_at=advance_timestamp(self.updated_at, now),
        )

    def to_item(self) -> dict[str, Any]:
        return {
            "id": self.invoice_id,
            "customer_id": self.customer_id,
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "status": self.status.value,
            "created_at_utc": to_iso_utc(self.created_at, name="created_at"),
            "updated_at_utc": to_iso_utc(self.updated_at, name="updated_at"),
            "billing_record_ids": list(self.billing_record_ids),
            "batch_id": self.batch_id,
            "window_id": self.window_id,
            "metadata": dict(self.metadata),
        }

    @staticmethod
    def from_item(item: Mapping[str, Any]) -> "Invoice":
        metadata = item.get("metadata") or {}
        return Invoice(
            invoice_id=str(item["id"]),
            customer_id=str(item["customer_id"]),
            currency=str(item["currency"]),
            batch_id=str(item["batch_id"]),
            window_id=str(item["window_id"]),
            status=InvoiceStatus(str(item["status"])),
            created_at=parse_utc_datetime(item["created_at_utc"]),
            updated_at=parse_utc_datetime(item["updated_at_utc"]),
            total_amount=parse_amount(item.get("total_amount") or "0"),
            billing_record_ids=tuple(str(i) for i in item.get("billing_record_ids") or ()),
            metadata={str(k): str(v) for k, v in metadata.items()},
        )


__all__ = ["InvoiceStatus", "Invoice"]
