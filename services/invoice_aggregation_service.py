"""
Invoice aggregation service.

Drains the invoice queue for a bounded amount of wall-clock time and folds
COMPLETED billing records into time-windowed invoices.

Process per run:
1. Generate one batch_id for the run
2. Receive up to batch_size (1..10) messages; an empty receive ends the run
3. Resolve each message to its billing record; drop missing and
   non-COMPLETED records
4. Group by (customer_id, currency), then bucket each group by time window
5. Build, complete and persist one Invoice per (group, window)
6. Delete the consumed messages only after their invoices are persisted
7. Stop once 80% of the timeout has elapsed

Acknowledgement rule:
- Messages whose record landed in a persisted invoice are deleted.
- Messages that can never be invoiced (no id, record missing, record not
  COMPLETED) are deleted as well; a record that completes later is enqueued
  again by the lifecycle processor.
- Messages whose record could not be loaded, or whose invoice failed to
  persist, stay in flight for redelivery. A crash between persist and delete
  can therefore produce a duplicate invoice on the next run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from domain.billing_record import BillingRecord, BillingStatus
from domain.errors import QueueError, UnprocessableMessageError
from domain.invoice import Invoice
from domain.time import to_iso_utc, utc_now
from domain.windowing import TimeWindow, bucket_by_window, group_by_customer_currency
from repositories.contracts import BillingRecordStore, InvoiceStore, QueueMessage, WorkQueue
from repositories.queue_repository import MAX_MESSAGES_PER_RECEIVE, clamp
from services.billing_lifecycle_service import extract_record_id
from services.settings import PipelineSettings

logger = logging.getLogger(__name__)

# Fraction of the timeout after which no further batch is started.
TIMEOUT_HEADROOM = 0.8


def _int_param(event: Optional[Mapping[str, Any]], name: str, default: int) -> int:
    """Read an integer from a loosely typed event, falling back to the default."""

    if not event or event.get(name) is None:
        return default
    value = event[name]
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


@dataclass(frozen=True, slots=True)
class AggregationRequest:
    batch_size: int
    window_size_minutes: int
    timeout_seconds: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "batch_size", clamp(self.batch_size, 1, MAX_MESSAGES_PER_RECEIVE))
        if self.window_size_minutes < 1:
            raise ValueError("window_size_minutes must be >= 1")
        if self.timeout_seconds < 1:
            raise ValueError("timeout_seconds must be >= 1")

    @staticmethod
    def from_settings(settings: PipelineSettings) -> "AggregationRequest":
        return AggregationRequest(
            batch_size=settings.batch_size,
            window_size_minutes=settings.window_size_minutes,
            timeout_seconds=settings.timeout_seconds,
        )

    @staticmethod
    def from_event(event: Optional[Mapping[str, Any]], settings: PipelineSettings) -> "AggregationRequest":
        """
        Parse run parameters from an invocation event.

        Recognised keys: batchSize, windowSizeMinutes, timeoutSeconds. Values may
        be numbers or numeric strings; anything else falls back to settings.
        """

        defaults = AggregationRequest.from_settings(settings)
        window = _int_param(event, "windowSizeMinutes", defaults.window_size_minutes)
        timeout = _int_param(event, "timeoutSeconds", defaults.timeout_seconds)
        return AggregationRequest(
            batch_size=_int_param(event, "batchSize", defaults.batch_size),
            window_size_minutes=window if window >= 1 else defaults.window_size_minutes,
            timeout_seconds=timeout if timeout >= 1 else defaults.timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class BatchAggregation:
    """Result of folding one received batch into invoices."""
    invoices: List[Invoice]
    acknowledged: List[QueueMessage]
    billing_records_processed: int
    failed_invoices: int

    @property
    def invoices_created(self) -> int:
        return len(self.invoices)


@dataclass(frozen=True, slots=True)
class AggregationResult:
    success: bool
    batch_id: Optional[str]
    messages_processed: int = 0
    billing_records_processed: int = 0
    invoices_created: int = 0
    failed_invoices: int = 0
    messages_deleted: int = 0
    processing_time_ms: int = 0
    invoice_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        if not self.success and self.batch_id is None:
            return {"success": False, "error": self.error}
        response: dict[str, Any] = {
            "success": self.success,
            "batchId": self.batch_id,
            "messagesProcessed": self.messages_processed,
            "billingRecordsProcessed": self.billing_records_processed,
            "invoicesCreated": self.invoices_created,
            "failedInvoices": self.failed_invoices,
            "messagesDeleted": self.messages_deleted,
            "processingTimeMs": self.processing_time_ms,
        }
        if self.error:
            response["error"] = self.error
        return response


class InvoiceAggregator:
    def __init__(
        self,
        record_store: BillingRecordStore,
        invoice_store: InvoiceStore,
        queue: WorkQueue,
        settings: PipelineSettings,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
        batch_id_factory: Callable[[], Any] = uuid4,
    ):
        self._records = record_store
        self._invoices = invoice_store
        self._queue = queue
        self._settings = settings
        self._clock = clock
        self._now = now
        self._batch_id_factory = batch_id_factory

    def run(self, request: Optional[AggregationRequest] = None) -> AggregationResult:
        """
        Drain the invoice queue within the request's time budget.

        Never raises; partial progress is reported when the run stops early.
        """

        request = request or AggregationRequest.from_settings(self._settings)
        queue_name = self._settings.resolved_invoice_queue
        if not queue_name:
            logger.error("Invoice queue name is not configured")
            return AggregationResult(success=False, batch_id=None, error="Invoice queue name is not configured")

        logger.info(
            "Invoice processing configuration: batchSize=%s, windowSizeMinutes=%s, timeoutSeconds=%s",
            request.batch_size, request.window_size_minutes, request.timeout_seconds,
        )

        start = self._clock()
        batch_id = str(self._batch_id_factory())
        messages_processed = records_processed = deleted = failed_invoices = 0
        invoice_ids: List[str] = []
        error: Optional[str] = None

        try:
            while True:
                elapsed = self._clock() - start
                remaining = request.timeout_seconds - elapsed
                if remaining <= 0:
                    break

                wait = min(self._settings.receive_wait_seconds, int(remaining))
                messages = self._queue.receive(queue_name, request.batch_size, wait)
                if not messages:
                    logger.info("No more messages in the queue")
                    break

                batch = self.process_batch(messages, batch_id, request.window_size_minutes)
                messages_processed += len(messages)
                records_processed += batch.billing_records_processed
                failed_invoices += batch.failed_invoices
                invoice_ids.extend(invoice.invoice_id for invoice in batch.invoices)
                deleted += self._acknowledge(queue_name, batch.acknowledged)

                if self._clock() - start > request.timeout_seconds * TIMEOUT_HEADROOM:
                    logger.info("Approaching timeout, stopping processing")
                    break
        except QueueError as e:
            logger.exception("Invoice queue failure during batch %s", batch_id)
            error = f"Error processing invoices: {e}"
        except Exception as e:
            logger.exception("Unexpected failure during invoice batch %s", batch_id)
            error = f"Error processing invoices: {e}"

        result = AggregationResult(
            success=error is None,
            batch_id=batch_id,
            messages_processed=messages_processed,
            billing_records_processed=records_processed,
            invoices_created=len(invoice_ids),
            failed_invoices=failed_invoices,
            messages_deleted=deleted,
            processing_time_ms=int((self._clock() - start) * 1000),
            invoice_ids=invoice_ids,
            error=error,
        )
        logger.info(
            "Invoice batch %s finished: %s messages, %s invoices",
            batch_id, result.messages_processed, result.invoices_created,
        )
        if failed_invoices:
            logger.warning(
                "Invoice batch %s could not save %s invoices; their messages stay queued for redelivery",
                batch_id, failed_invoices,
            )
        return result

    def process_batch(
        self,
        messages: Sequence[QueueMessage],
        batch_id: str,
        window_size_minutes: int,
    ) -> BatchAggregation:
        eligible: List[BillingRecord] = []
        messages_by_record: Dict[str, List[QueueMessage]] = {}
        acknowledged: List[QueueMessage] = []

        for message in messages:
            try:
                record_id = extract_record_id(message)
            except UnprocessableMessageError as e:
                logger.error("Dropping invoice message %s: %s", message.message_id, e.reason)
                acknowledged.append(message)
                continue

            if record_id in messages_by_record:
                # Duplicate delivery inside one batch; invoice the record once.
                messages_by_record[record_id].append(message)
                continue

            try:
                record = self._records.get(record_id)
            except Exception:
                logger.exception("Failed to load billing record %s", record_id)
                continue

            if record is None:
                logger.error("Billing record not found: %s", record_id)
                acknowledged.append(message)
                continue

            if record.status is not BillingStatus.COMPLETED:
                logger.warning("Skipping billing record with status %s: %s", record.status.value, record_id)
                acknowledged.append(message)
                continue

            eligible.append(record)
            messages_by_record[record_id] = [message]

        invoices: List[Invoice] = []
        failed_invoices = 0

        for (customer_id, currency), records in group_by_customer_currency(eligible).items():
            for window, window_records in bucket_by_window(records, window_size_minutes).items():
                try:
                    invoice = self._build_invoice(customer_id, currency, batch_id, window, window_records)
                    self._invoices.put(invoice)
                except Exception:
                    failed_invoices += 1
                    logger.exception(
                        "Failed to create invoice for customer %s (%s) in window %s",
                        customer_id, currency, window.window_id,
                    )
                    continue

                invoices.append(invoice)
                for record in window_records:
                    acknowledged.extend(messages_by_record[record.record_id])
                logger.info("Created invoice %s with %s billing records", invoice.invoice_id, invoice.record_count)

        return BatchAggregation(
            invoices=invoices,
            acknowledged=acknowledged,
            billing_records_processed=len(eligible),
            failed_invoices=failed_invoices,
        )

    def _build_invoice(
        self,
        customer_id: str,
        currency: str,
        batch_id: str,
        window: TimeWindow,
        records: Sequence[BillingRecord],
    ) -> Invoice:
        invoice = Invoice.open(
            customer_id=customer_id,
            currency=currency,
            batch_id=batch_id,
            window_id=window.window_id,
            now=self._now(),
            metadata={
                "window_end": to_iso_utc(window.end, name="window end"),
                "window_size_minutes": str(int(window.size.total_seconds() // 60)),
            },
        )
        for record in records:
            invoice = invoice.add_billing_record(record, self._now())
        return invoice.mark_completed(self._now())

    def _acknowledge(self, queue_name: str, messages: Sequence[QueueMessage]) -> int:
        deleted = 0
        for message in messages:
            try:
                self._queue.delete(queue_name, message)
                deleted += 1
            except QueueError:
                logger.exception("Failed to delete invoice message %s", message.message_id)
        return deleted


__all__ = [
    "AggregationRequest",
    "AggregationResult",
    "BatchAggregation",
    "InvoiceAggregator",
    "TIMEOUT_HEADROOM",
]
