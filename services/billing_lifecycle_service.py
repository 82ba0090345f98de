"""
Billing record lifecycle service.

Consumes billing-queue messages one at a time and drives the referenced
record through its retry state machine:

1. Decode the message and extract the record id (missing -> unprocessable)
2. Load the record (absent -> not found)
3. Terminal records are acknowledged as a no-op (redelivery guard);
   records already at the retry limit go straight to FAILED
4. Move to PROCESSING and persist
5. Run the domain processing hook
6. Success: COMPLETED, persist, enqueue on the invoice queue
7. Failure: count the attempt; FAILED when retries are exhausted (no
   requeue), otherwise back to PENDING and re-enqueue on the billing queue

Every write is conditional on the updated_at observed by this worker, so a
duplicate delivery racing on the same record loses cleanly instead of
overwriting. Nothing raises out of `handle_message` / `handle_batch`; every
failure becomes a MessageOutcome.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence

from domain.billing_record import BillingRecord, BillingStatus
from domain.errors import QueueError, UnprocessableMessageError
from domain.time import utc_now
from repositories.contracts import BillingProcessor, BillingRecordStore, ProcessingResult, QueueMessage, WorkQueue
from services.settings import PipelineSettings

logger = logging.getLogger(__name__)


class OutcomeReason(str, Enum):
    COMPLETED = "COMPLETED"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    FAILED = "FAILED"
    UNPROCESSABLE = "UNPROCESSABLE"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class MessageOutcome:
    """
    Result of handling one billing message.

    success: True if the message can be acknowledged
    reason: which branch of the state machine produced the outcome
    status: record status after handling (None if no record was loaded)
    """
    message_id: Optional[str]
    record_id: Optional[str]
    success: bool
    reason: OutcomeReason
    status: Optional[BillingStatus] = None
    retry_count: Optional[int] = None
    detail: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    processed_count: int
    success_count: int
    failure_count: int
    outcomes: List[MessageOutcome] = field(default_factory=list)

    @property
    def failed_message_ids(self) -> List[str]:
        return [o.message_id for o in self.outcomes if not o.success and o.message_id is not None]

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "processedCount": self.processed_count,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "batchItemFailures": [{"itemIdentifier": m} for m in self.failed_message_ids],
        }


def extract_record_id(message: QueueMessage) -> str:
    """
    Pull the billing record id out of a message body.

    Accepts a mapping or a JSON object string carrying `id` (or `record_id`).

    Raises:
        UnprocessableMessageError: body is not an object or carries no id
    """

    body: Any = message.body
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except ValueError:
            raise UnprocessableMessageError("body is not valid JSON", message.message_id) from None

    if not isinstance(body, Mapping):
        raise UnprocessableMessageError("body is not a JSON object", message.message_id)

    record_id = body.get("id") or body.get("record_id")
    if not record_id:
        raise UnprocessableMessageError("billing record id is missing", message.message_id)
    return str(record_id)


class BillingLifecycleProcessor:
    def __init__(
        self,
        record_store: BillingRecordStore,
        queue: WorkQueue,
        processor: BillingProcessor,
        settings: PipelineSettings,
        now: Callable[[], datetime] = utc_now,
    ):
        self._store = record_store
        self._queue = queue
        self._processor = processor
        self._settings = settings
        self._now = now

    def handle_batch(self, messages: Sequence[QueueMessage]) -> BatchOutcome:
        logger.info("Processing %s billing messages", len(messages))

        outcomes = [self.handle_message(message) for message in messages]
        success_count = sum(1 for o in outcomes if o.success)
        batch = BatchOutcome(
            processed_count=len(outcomes),
            success_count=success_count,
            failure_count=len(outcomes) - success_count,
            outcomes=outcomes,
        )

        logger.info(
            "Processed %s messages: %s succeeded, %s failed",
            batch.processed_count, batch.success_count, batch.failure_count,
        )
        return batch

    def handle_message(self, message: QueueMessage) -> MessageOutcome:
        record_id: Optional[str] = None
        try:
            record_id = extract_record_id(message)
            return self._process(message, record_id)
        except UnprocessableMessageError as e:
            logger.error("Unprocessable billing message %s: %s", message.message_id, e.reason)
            return MessageOutcome(
                message_id=message.message_id,
                record_id=None,
                success=False,
                reason=OutcomeReason.UNPROCESSABLE,
                detail=e.reason,
            )
        except Exception as e:
            logger.exception("Error processing billing message %s", message.message_id)
            return MessageOutcome(
                message_id=message.message_id,
                record_id=record_id,
                success=False,
                reason=OutcomeReason.ERROR,
                detail=str(e),
            )

    def _process(self, message: QueueMessage, record_id: str) -> MessageOutcome:
        record = self._store.get(record_id)
        if record is None:
            logger.error("Billing record not found: %s", record_id)
            return MessageOutcome(
                message_id=message.message_id,
                record_id=record_id,
                success=False,
                reason=OutcomeReason.NOT_FOUND,
                detail=f"Billing record not found: {record_id}",
            )

        if record.is_terminal:
            logger.info("Billing record already processed: %s (%s)", record_id, record.status.value)
            return self._outcome(message, record, success=True, reason=OutcomeReason.ALREADY_TERMINAL)

        if record.retry_count >= self._settings.max_retry_count:
            # Limit was lowered since the last attempt; no further attempt is allowed.
            failed = record.fail_exhausted(self._settings.max_retry_count, self._now())
            self._store.put(failed, expected_updated_at=record.updated_at)
            logger.warning(
                "Billing record %s already has %s retries (limit %s), marking FAILED",
                record_id, record.retry_count, self._settings.max_retry_count,
            )
            return self._outcome(message, failed, success=False, reason=OutcomeReason.FAILED)

        processing = record.start_processing(self._now())
        self._store.put(processing, expected_updated_at=record.updated_at)

        result = self._run_hook(processing)

        if result.success:
            completed = processing.complete(self._now())
            self._store.put(completed, expected_updated_at=processing.updated_at)
            try:
                self._queue.send(self._settings.resolved_invoice_queue, completed.to_item())
            except QueueError:
                # Redelivery will see a terminal record, so nothing re-sends it.
                logger.error(
                    "Billing record %s is COMPLETED but was not sent to invoice queue %s; "
                    "requeue it manually",
                    record_id, self._settings.resolved_invoice_queue,
                )
                raise
            logger.info("Successfully processed billing record: %s", record_id)
            return self._outcome(message, completed, success=True, reason=OutcomeReason.COMPLETED)

        updated = processing.record_failed_attempt(
            self._settings.max_retry_count,
            self._now(),
            reason=result.reason,
        )
        self._store.put(updated, expected_updated_at=processing.updated_at)

        if updated.status is BillingStatus.FAILED:
            logger.warning(
                "Billing record failed after %s retries: %s",
                self._settings.max_retry_count, record_id,
            )
            return self._outcome(message, updated, success=False, reason=OutcomeReason.FAILED)

        self._queue.send(self._settings.resolved_billing_queue, updated.to_item())
        logger.info(
            "Billing record processing failed, scheduled for retry %s/%s: %s",
            updated.retry_count, self._settings.max_retry_count, record_id,
        )
        return self._outcome(message, updated, success=False, reason=OutcomeReason.RETRY_SCHEDULED)

    def _run_hook(self, record: BillingRecord) -> ProcessingResult:
        # Anything the hook raises is a failed attempt; store and queue calls happen outside it.
        try:
            return self._processor.process(record)
        except Exception as e:
            logger.exception("Processing hook raised for billing record %s", record.record_id)
            return ProcessingResult(success=False, reason=f"Processing error: {e}")

    @staticmethod
    def _outcome(
        message: QueueMessage,
        record: BillingRecord,
        *,
        success: bool,
        reason: OutcomeReason,
    ) -> MessageOutcome:
        return MessageOutcome(
            message_id=message.message_id,
            record_id=record.record_id,
            success=success,
            reason=reason,
            status=record.status,
            retry_count=record.retry_count,
            detail=record.error_message,
        )


__all__ = [
    "OutcomeReason",
    "MessageOutcome",
    "BatchOutcome",
    "BillingLifecycleProcessor",
    "extract_record_id",
]
