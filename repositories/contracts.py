"""
Collaborator contracts consumed by the services.

The services depend on these protocols only. Supabase-backed implementations
live next to this module; tests provide in-memory implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol

from domain.billing_record import BillingRecord
from domain.invoice import Invoice


@dataclass(frozen=True, slots=True)
class QueueMessage:
    """
    A received queue message.

    receive_count is how many times the queue has handed this message out,
    including the current delivery.
    """
    message_id: str
    body: Mapping[str, Any]
    receive_count: int = 1
    enqueued_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    """Outcome of the domain processing hook for one record."""
    success: bool
    reason: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=dict)


class BillingRecordStore(Protocol):
    def get(self, record_id: str) -> Optional[BillingRecord]:
        ...

    def create(self, record: BillingRecord) -> None:
        ...

    def put(self, record: BillingRecord, *, expected_updated_at: Optional[datetime] = None) -> None:
        """
        Overwrite the full record.

        With expected_updated_at the write only applies if the stored row still
        carries that updated_at; otherwise ConcurrentModificationError is raised.
        """
        ...


class InvoiceStore(Protocol):
    def get(self, invoice_id: str) -> Optional[Invoice]:
        ...

    def put(self, invoice: Invoice) -> None:
        ...

    def list_by_batch(self, batch_id: str) -> List[Invoice]:
        ...


class WorkQueue(Protocol):
    def send(self, queue_name: str, payload: Mapping[str, Any]) -> str:
        ...

    def receive(self, queue_name: str, max_messages: int = 10, wait_seconds: int = 0) -> List[QueueMessage]:
        ...

    def delete(self, queue_name: str, message: QueueMessage) -> None:
        ...


class BillingProcessor(Protocol):
    """Domain processing hook: performs the actual business computation."""

    def process(self, record: BillingRecord) -> ProcessingResult:
        ...


__all__ = [
    "QueueMessage",
    "ProcessingResult",
    "BillingRecordStore",
    "InvoiceStore",
    "WorkQueue",
    "BillingProcessor",
]
