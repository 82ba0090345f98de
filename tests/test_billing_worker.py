"""Tests for `services/billing_worker.py`."""

from __future__ import annotations

import threading

from domain.billing_record import BillingStatus
from services.billing_lifecycle_service import BillingLifecycleProcessor
from services.billing_worker import run_billing_worker
from fakes import ScriptedProcessor, make_record


def _lifecycle(record_store, queue, settings, outcomes):
    return BillingLifecycleProcessor(record_store, queue, ScriptedProcessor(outcomes), settings)


def test_worker_drains_retries_until_completion(record_store, queue, settings) -> None:
    record_store.create(make_record())
    queue.send(settings.resolved_billing_queue, {"id": "rec-1"})

    summary = run_billing_worker(
        _lifecycle(record_store, queue, settings, [False, True]),
        queue,
        settings,
        stop_when_empty=True,
    )

    assert summary.batches == 2
    assert summary.messages_received == 2
    assert summary.messages_succeeded == 1
    assert summary.messages_failed == 1
    assert summary.messages_deleted == 1
    assert record_store.get("rec-1").status is BillingStatus.COMPLETED


def test_failed_messages_stay_in_flight(record_store, queue, settings) -> None:
    queue.send(settings.resolved_billing_queue, {"id": "missing"})

    summary = run_billing_worker(
        _lifecycle(record_store, queue, settings, []), queue, settings, stop_when_empty=True,
    )

    assert summary.messages_failed == 1
    assert summary.messages_deleted == 0
    assert len(queue.inflight[settings.resolved_billing_queue]) == 1


def test_max_batches_limits_the_run(record_store, queue, settings) -> None:
    for i in range(3):
        record_store.create(make_record(record_id=f"r{i}"))
        queue.send(settings.resolved_billing_queue, {"id": f"r{i}"})

    lifecycle = _lifecycle(record_store, queue, settings, [True, True, True])
    summary = run_billing_worker(lifecycle, queue, settings, max_batches=1)

    assert summary.batches == 1
    assert summary.messages_received == 3
    assert summary.messages_deleted == 3


def test_receive_errors_back_off(record_store, queue, settings) -> None:
    queue.fail_receive = True
    stop = threading.Event()
    sleeps = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 2:
            stop.set()

    summary = run_billing_worker(
        _lifecycle(record_store, queue, settings, []),
        queue,
        settings,
        stop_event=stop,
        error_backoff_seconds=0.5,
        sleep=sleep,
    )

    assert sleeps == [0.5, 0.5]
    assert summary.batches == 0


def test_stop_event_set_before_start(record_store, queue, settings) -> None:
    stop = threading.Event()
    stop.set()

    summary = run_billing_worker(_lifecycle(record_store, queue, settings, []), queue, settings, stop_event=stop)

    assert summary.batches == 0
    assert queue.receive_calls == []
