"""
Billing queue worker.

Polls the billing queue and feeds each received batch to the lifecycle
processor. Messages with a successful outcome are deleted; failed ones stay
in flight so the queue redelivers them and, past its receive limit,
dead-letters them.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from domain.errors import QueueError
from repositories.contracts import WorkQueue
from services.billing_lifecycle_service import BillingLifecycleProcessor
from services.settings import PipelineSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkerSummary:
    batches: int
    messages_received: int
    messages_succeeded: int
    messages_failed: int
    messages_deleted: int


def run_billing_worker(
    lifecycle: BillingLifecycleProcessor,
    queue: WorkQueue,
    settings: PipelineSettings,
    max_batches: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
    stop_when_empty: bool = False,
    error_backoff_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> WorkerSummary:
    """
    Consume the billing queue until stopped.

    Args:
        max_batches: stop after this many non-empty batches
        stop_event: set from another thread to stop after the current batch
        stop_when_empty: stop as soon as a receive returns nothing
    """

    queue_name = settings.resolved_billing_queue
    batches = received = succeeded = failed = deleted = 0

    while not (stop_event is not None and stop_event.is_set()):
        if max_batches is not None and batches >= max_batches:
            break

        try:
            messages = queue.receive(queue_name, 10, settings.receive_wait_seconds)
        except QueueError:
            logger.exception("Failed to receive from billing queue %s", queue_name)
            if stop_when_empty:
                break
            sleep(error_backoff_seconds)
            continue

        if not messages:
            if stop_when_empty:
                break
            continue

        batches += 1
        received += len(messages)
        batch = lifecycle.handle_batch(messages)
        succeeded += batch.success_count
        failed += batch.failure_count

        by_id = {m.message_id: m for m in messages}
        for outcome in batch.outcomes:
            if not outcome.success or outcome.message_id is None:
                continue
            try:
                queue.delete(queue_name, by_id[outcome.message_id])
                deleted += 1
            except QueueError:
                logger.exception("Failed to delete billing message %s", outcome.message_id)

    summary = WorkerSummary(
        batches=batches,
        messages_received=received,
        messages_succeeded=succeeded,
        messages_failed=failed,
        messages_deleted=deleted,
    )
    logger.info("Billing worker stopped: %s", summary)
    return summary


__all__ = ["WorkerSummary", "run_billing_worker"]
