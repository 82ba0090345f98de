"""
Billing intake service.

Turns a raw billing request into a PENDING BillingRecord, stores it, and
enqueues it for the lifecycle processor.

Request fields:
- customerId, productId, amount, currency (required)
- any other field is kept as string metadata on the record
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from domain.billing_record import BillingRecord, parse_amount
from domain.errors import QueueError, StoreError
from repositories.contracts import BillingRecordStore, WorkQueue
from services.settings import PipelineSettings

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("customerId", "productId", "amount", "currency")


class BillingRequestError(ValueError):
    """Raised when an intake payload is missing fields or carries bad values."""


@dataclass(frozen=True, slots=True)
class BillingRequest:
    customer_id: str
    product_id: str
    amount: Any
    currency: str
    metadata: Mapping[str, str]

    @staticmethod
    def from_payload(payload: Optional[Mapping[str, Any]]) -> "BillingRequest":
        if not payload:
            raise BillingRequestError("Request body is empty")

        missing = [name for name in REQUIRED_FIELDS if payload.get(name) in (None, "")]
        if missing:
            raise BillingRequestError(f"Missing required fields in request: {', '.join(missing)}")

        try:
            amount = parse_amount(payload["amount"])
        except ValueError as e:
            raise BillingRequestError(str(e)) from None

        currency = str(payload["currency"]).strip().upper()
        if not currency.isalpha():
            raise BillingRequestError(f"Invalid currency code: {payload['currency']!r}")

        metadata = {
            str(key): str(value)
            for key, value in payload.items()
            if key not in REQUIRED_FIELDS and value is not None
        }

        return BillingRequest(
            customer_id=str(payload["customerId"]),
            product_id=str(payload["productId"]),
            amount=amount,
            currency=currency,
            metadata=metadata,
        )


@dataclass(frozen=True, slots=True)
class IntakeResult:
    success: bool
    record_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    enqueued: bool = False


def submit_billing_request(
    request: BillingRequest,
    record_store: BillingRecordStore,
    queue: WorkQueue,
    settings: PipelineSettings,
) -> IntakeResult:
    """
    Store a new PENDING record and enqueue it for processing.

    A failed enqueue is logged but does not fail the intake: the record is
    already stored and can be requeued by an operator.
    """

    record = BillingRecord.new(
        customer_id=request.customer_id,
        product_id=request.product_id,
        amount=request.amount,
        currency=request.currency,
        metadata=request.metadata,
    )

    try:
        record_store.create(record)
    except StoreError as e:
        logger.exception("Failed to save billing record for customer %s", request.customer_id)
        return IntakeResult(success=False, error=f"Failed to save billing record: {e}")

    enqueued = True
    try:
        queue.send(settings.resolved_billing_queue, record.to_item())
    except QueueError:
        enqueued = False
        logger.warning("Failed to send billing record %s to the billing queue", record.record_id, exc_info=True)

    logger.info("Accepted billing record %s for customer %s", record.record_id, record.customer_id)
    return IntakeResult(
        success=True,
        record_id=record.record_id,
        message="Billing record processed successfully",
        enqueued=enqueued,
    )


__all__ = [
    "REQUIRED_FIELDS",
    "BillingRequestError",
    "BillingRequest",
    "IntakeResult",
    "submit_billing_request",
]
