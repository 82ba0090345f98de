"""
Domain processing hooks for the billing lifecycle.

A hook performs the business computation for one billing record and reports
success or failure. Failures are returned, never raised, so the lifecycle
processor can drive its retry state machine from them.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional

from domain.billing_record import BillingRecord
from repositories.contracts import ProcessingResult

logger = logging.getLogger(__name__)


class SimulatedBillingProcessor:
    """
    Stand-in for real billing work.

    Sleeps for a bounded random delay and fails with probability
    `failure_rate`. Pass a seeded `rng` (and a no-op `sleep`) for
    deterministic runs.
    """

    def __init__(
        self,
        failure_rate: float = 0.1,
        min_delay_ms: int = 50,
        max_delay_ms: int = 150,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be within [0, 1]")
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ValueError("delay bounds must satisfy 0 <= min_delay_ms <= max_delay_ms")
        self._failure_rate = failure_rate
        self._min_delay_ms = min_delay_ms
        self._max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()
        self._sleep = sleep

    def process(self, record: BillingRecord) -> ProcessingResult:
        delay_ms = self._rng.randint(self._min_delay_ms, self._max_delay_ms)
        self._sleep(delay_ms / 1000.0)

        if self._rng.random() < self._failure_rate:
            logger.info("Simulating processing failure for billing record: %s", record.record_id)
            return ProcessingResult(success=False, reason="Simulated processing failure")

        return ProcessingResult(success=True, details={"delay_ms": delay_ms})


class AlwaysSucceedProcessor:
    """Hook that accepts every record immediately."""

    def process(self, record: BillingRecord) -> ProcessingResult:
        return ProcessingResult(success=True)


__all__ = ["SimulatedBillingProcessor", "AlwaysSucceedProcessor"]
