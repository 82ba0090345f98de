"""
Domain and adapter error taxonomy.

Rule violations on entities are `ValueError` subclasses so callers that only
know about `ValueError` still behave. I/O failures from the record store and
the work queue are translated into `StoreError` / `QueueError` at the adapter
boundary; services convert all of these into outcome objects.
"""

from __future__ import annotations


class BillingPipelineError(Exception):
    """Base class for errors raised by this package."""


class UnprocessableMessageError(BillingPipelineError):
    """Raised when a queue message does not reference a billing record."""

    def __init__(self, reason: str, message_id: str | None = None):
        self.reason = reason
        self.message_id = message_id
        super().__init__(f"Unprocessable message {message_id}: {reason}")


class InvalidTransitionError(BillingPipelineError, ValueError):
    """Raised when an entity is asked to move to a status it cannot reach."""

    def __init__(self, entity_id: str, current: str, target: str):
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity_id} from {current} to {target}")


class CurrencyMismatchError(BillingPipelineError, ValueError):
    """Raised when a billing record is added to an invoice of another currency."""

    def __init__(self, invoice_currency: str, record_currency: str):
        self.invoice_currency = invoice_currency
        self.record_currency = record_currency
        super().__init__(
            f"Currency mismatch: Invoice currency is {invoice_currency} "
            f"but billing record currency is {record_currency}"
        )


class StoreError(BillingPipelineError):
    """Raised when the record store cannot complete a read or write."""


class ConcurrentModificationError(StoreError):
    """Raised when a conditional write finds the row changed since it was read."""

    def __init__(self, entity_id: str, expected_updated_at: str):
        self.entity_id = entity_id
        self.expected_updated_at = expected_updated_at
        super().__init__(
            f"Concurrent modification of {entity_id}: expected updated_at {expected_updated_at}"
        )


class QueueError(BillingPipelineError):
    """Raised when the work queue cannot send, receive or delete."""


__all__ = [
    "BillingPipelineError",
    "UnprocessableMessageError",
    "InvalidTransitionError",
    "CurrencyMismatchError",
    "StoreError",
    "ConcurrentModificationError",
    "QueueError",
]
