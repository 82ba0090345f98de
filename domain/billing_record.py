"""
Domain: BillingRecord entity.

A BillingRecord is one unit of billable work. It is created by intake in
PENDING and afterwards mutated only by the lifecycle processor.

Rules implemented here:
- record_id is generated once and never changes.
- Status moves PENDING -> PROCESSING -> {COMPLETED | PENDING (retry) | FAILED}.
  COMPLETED and FAILED are terminal.
- retry_count increments exactly once per failed processing attempt. Once it
  reaches max_retry_count the only reachable state is FAILED.
- updated_at strictly increases on every transition.

This module contains only pure domain entities/value objects: no I/O, no
database, no frameworks. Transitions return new instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import uuid4

from .errors import InvalidTransitionError
from .time import advance_timestamp, parse_utc_datetime, require_utc_timestamp, to_iso_utc, utc_now


class BillingStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (BillingStatus.COMPLETED, BillingStatus.FAILED)


RETRY_ERROR_MESSAGE = "Processing failed, will retry"


def parse_amount(value: Any) -> Decimal:
    """Parse an amount from a Decimal, int, float or numeric string."""

    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


@dataclass(frozen=True, slots=True)
class BillingRecord:
    """
    Immutable snapshot of a billing record.

    Use `BillingRecord.new(...)` to create a fresh PENDING record and the
    transition methods to derive the next snapshot.
    """

    record_id: str
    customer_id: str
    product_id: str
    amount: Decimal
    currency: str
    status: BillingStatus
    created_at: datetime
    updated_at: datetime
    retry_count: int = 0
    error_message: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if not self.record_id:
            raise ValueError("record_id is required")
        if not self.currency:
            raise ValueError("currency is required")

    @staticmethod
    def new(
        customer_id: str,
        product_id: str,
        amount: Any,
        currency: str,
        metadata: Optional[Mapping[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> "BillingRecord":
        created = now or utc_now()
        return BillingRecord(
            record_id=str(uuid4()),
            customer_id=customer_id,
            product_id=product_id,
            amount=parse_amount(amount),
            currency=currency.strip().upper(),
            status=BillingStatus.PENDING,
            created_at=created,
            updated_at=created,
            metadata=dict(metadata or {}),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _require_status(self, expected: BillingStatus, target: BillingStatus) -> None:
        if self.status is not expected:
            raise InvalidTransitionError(self.record_id, self.status.value, target.value)

    def start_processing(self, now: datetime) -> "BillingRecord":
        # PROCESSING -> PROCESSING resumes an attempt whose worker died mid-flight
        if self.is_terminal:
            raise InvalidTransitionError(self.record_id, self.status.value, BillingStatus.PROCESSING.value)
        return replace(
            self,
            status=BillingStatus.PROCESSING,
            updated_at=advance_timestamp(self.updated_at, now),
        )

    def complete(self, now: datetime) -> "BillingRecord":
        self._require_status(BillingStatus.PROCESSING, BillingStatus.COMPLETED)
        return replace(
            self,
            status=BillingStatus.COMPLETED,
            updated_at=advance_timestamp(self.updated_at, now),
        )

    def record_failed_attempt(
        self,
        max_retry_count: int,
        now: datetime,
        reason: Optional[str] = None,
    ) -> "BillingRecord":
        """
        Count one failed processing attempt.

        The new status is FAILED iff the incremented retry_count reaches
        max_retry_count, otherwise PENDING so the record can be retried.
        """

        if max_retry_count < 1:
            raise ValueError("max_retry_count must be >= 1")

        retry_count = self.retry_count + 1
        if retry_count >= max_retry_count:
            target = BillingStatus.FAILED
            message = f"Failed after {max_retry_count} retries"
        else:
            target = BillingStatus.PENDING
            message = reason or RETRY_ERROR_MESSAGE

        self._require_status(BillingStatus.PROCESSING, target)
        return replace(
            self,
            status=target,
            retry_count=retry_count,
            error_message=message,
            updated_at=advance_timestamp(self.updated_at, now),
        )

    def fail_exhausted(self, max_retry_count: int, now: datetime) -> "BillingRecord":
        """
        Move a record whose retries are already used up straight to FAILED.

        Covers records that reached the limit under a higher max_retry_count;
        retry_count is left unchanged since no attempt is made.
        """

        if self.is_terminal:
            raise InvalidTransitionError(self.record_id, self.status.value, BillingStatus.FAILED.value)
        if self.retry_count < max_retry_count:
            raise ValueError(
                f"retry_count {self.retry_count} has not reached max_retry_count {max_retry_count}"
            )
        return replace(
            self,
            status=BillingStatus.FAILED,
            error_message=f"Failed after {max_retry_count} retries",
            updated_at=advance_timestamp(self.updated_at, now),
        )

    def to_item(self) -> dict[str, Any]:
        """Flat key/value form used for store rows and queue payloads."""

        return {
            "id": self.record_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status.value,
            "created_at_utc": to_iso_utc(self.created_at, name="created_at"),
            "updated_at_utc": to_iso_utc(self.updated_at, name="updated_at"),
            "retry_count": self.retry_count,
            "error_message": self.error_message,
            "metadata": dict(self.metadata),
        }

    @staticmethod
    def from_item(item: Mapping[str, Any]) -> "BillingRecord":
        metadata = item.get("metadata") or {}
        return BillingRecord(
            record_id=str(item["id"]),
            customer_id=str(item["customer_id"]),
            product_id=str(item["product_id"]),
            amount=parse_amount(item["amount"]),
            currency=str(item["currency"]),
            status=BillingStatus(str(item["status"])),
            created_at=parse_utc_datetime(item["created_at_utc"]),
            updated_at=parse_utc_datetime(item["updated_at_utc"]),
            retry_count=int(item.get("retry_count") or 0),
            error_message=item.get("error_message"),
            metadata={str(k): str(v) for k, v in metadata.items()},
        )


__all__ = [
    "BillingStatus",
    "BillingRecord",
    "RETRY_ERROR_MESSAGE",
    "parse_amount",
]
