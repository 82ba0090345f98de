"""
Tests for `domain/billing_record.py`.

Covers rules:
- New records start PENDING with retry_count 0 and UTC timestamps.
- retry_count increments exactly once per failed attempt; FAILED iff the new
  count reaches max_retry_count.
- Terminal records cannot re-enter processing.
- updated_at strictly increases on every transition.
- Records are immutable (frozen); transitions return new instances.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.billing_record import RETRY_ERROR_MESSAGE, BillingRecord, BillingStatus, parse_amount
from domain.errors import InvalidTransitionError
from fakes import HOUR_START, make_record


def test_new_record_starts_pending() -> None:
    """Verify a freshly created record is PENDING, untried and normalised."""

    record = BillingRecord.new("c1", "p1", "100.00", " usd ", metadata={"region": "eu"}, now=HOUR_START)

    assert record.status is BillingStatus.PENDING
    assert record.retry_count == 0
    assert record.error_message is None
    assert record.amount == Decimal("100.00")
    assert record.currency == "USD"
    assert record.created_at == record.updated_at == HOUR_START
    assert record.metadata == {"region": "eu"}
    assert record.record_id


def test_new_records_get_distinct_ids() -> None:
    a = BillingRecord.new("c1", "p1", 1, "USD")
    b = BillingRecord.new("c1", "p1", 1, "USD")
    assert a.record_id != b.record_id


def test_record_requires_utc_timestamps() -> None:
    """Verify created_at/updated_at enforce timezone-aware UTC timestamps."""

    with pytest.raises(ValueError):
        make_record(created_at=datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        make_record(created_at=datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone(timedelta(hours=2))))


def test_record_rejects_negative_retry_count() -> None:
    with pytest.raises(ValueError):
        make_record(retry_count=-1)


def test_record_is_immutable() -> None:
    record = make_record()

    with pytest.raises(FrozenInstanceError):
        record.status = BillingStatus.COMPLETED  # type: ignore[misc]


@pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, None])
def test_parse_amount_rejects_non_numeric(value) -> None:
    with pytest.raises(ValueError):
        parse_amount(value)


def test_parse_amount_keeps_sign_and_precision() -> None:
    assert parse_amount("-12.50") == Decimal("-12.50")
    assert parse_amount(3) == Decimal("3")


def test_successful_attempt_reaches_completed() -> None:
    record = make_record()
    t1 = HOUR_START + timedelta(seconds=1)
    t2 = HOUR_START + timedelta(seconds=2)

    processing = record.start_processing(t1)
    completed = processing.complete(t2)

    assert record.status is BillingStatus.PENDING
    assert processing.status is BillingStatus.PROCESSING
    assert completed.status is BillingStatus.COMPLETED
    assert completed.retry_count == 0
    assert completed.is_terminal


@pytest.mark.parametrize(
    "prior_retries, max_retries, expected_status",
    [
        (0, 3, BillingStatus.PENDING),
        (1, 3, BillingStatus.PENDING),
        (2, 3, BillingStatus.FAILED),
        (0, 1, BillingStatus.FAILED),
        (4, 3, BillingStatus.FAILED),
    ],
)
def test_failed_attempt_increments_once_and_fails_at_limit(prior_retries, max_retries, expected_status) -> None:
    """retry_count == prior + 1, and the status is FAILED iff it reaches the limit."""

    record = make_record(retry_count=prior_retries).start_processing(HOUR_START)
    after = record.record_failed_attempt(max_retries, HOUR_START + timedelta(seconds=1))

    assert after.retry_count == prior_retries + 1
    assert after.status is expected_status
    assert (after.status is BillingStatus.FAILED) == (after.retry_count >= max_retries)


def test_failed_attempt_error_messages() -> None:
    retrying = make_record().start_processing(HOUR_START).record_failed_attempt(3, HOUR_START)
    assert retrying.error_message == RETRY_ERROR_MESSAGE

    custom = make_record().start_processing(HOUR_START).record_failed_attempt(3, HOUR_START, reason="card declined")
    assert custom.error_message == "card declined"

    failed = make_record(retry_count=2).start_processing(HOUR_START).record_failed_attempt(3, HOUR_START)
    assert failed.error_message == "Failed after 3 retries"


def test_failed_attempt_requires_processing() -> None:
    with pytest.raises(InvalidTransitionError):
        make_record().record_failed_attempt(3, HOUR_START)


@pytest.mark.parametrize("status", [BillingStatus.COMPLETED, BillingStatus.FAILED])
def test_terminal_records_cannot_restart(status) -> None:
    record = make_record(status=status)

    with pytest.raises(InvalidTransitionError):
        record.start_processing(HOUR_START)


def test_exhausted_record_fails_without_counting_an_attempt() -> None:
    record = make_record(retry_count=3)

    failed = record.fail_exhausted(2, HOUR_START)

    assert failed.status is BillingStatus.FAILED
    assert failed.retry_count == 3
    assert failed.error_message == "Failed after 2 retries"
    assert failed.updated_at > record.updated_at


def test_fail_exhausted_rejects_records_with_retries_left() -> None:
    with pytest.raises(ValueError):
        make_record(retry_count=1).fail_exhausted(3, HOUR_START)


def test_fail_exhausted_rejects_terminal_records() -> None:
    with pytest.raises(InvalidTransitionError):
        make_record(status=BillingStatus.COMPLETED, retry_count=3).fail_exhausted(3, HOUR_START)


def test_complete_requires_processing() -> None:
    with pytest.raises(InvalidTransitionError):
        make_record().complete(HOUR_START)


def test_processing_record_can_be_resumed() -> None:
    """A record left in PROCESSING by a dead worker can be picked up again."""

    stuck = make_record(status=BillingStatus.PROCESSING)
    resumed = stuck.start_processing(HOUR_START + timedelta(minutes=5))

    assert resumed.status is BillingStatus.PROCESSING
    assert resumed.updated_at > stuck.updated_at


def test_updated_at_strictly_increases_even_with_a_stalled_clock() -> None:
    """Every transition advances updated_at, even when `now` does not move."""

    record = make_record()
    frozen_now = HOUR_START

    processing = record.start_processing(frozen_now)
    retried = processing.record_failed_attempt(3, frozen_now)
    again = retried.start_processing(frozen_now - timedelta(seconds=10))

    assert record.updated_at < processing.updated_at < retried.updated_at < again.updated_at


def test_item_round_trip_preserves_typed_collections() -> None:
    record = BillingRecord.new("c1", "p1", "19.99", "EUR", metadata={"source": "api"}, now=HOUR_START)
    failed = record.start_processing(HOUR_START).record_failed_attempt(1, HOUR_START)

    item = failed.to_item()

    assert item["amount"] == "19.99"
    assert item["status"] == "FAILED"
    assert item["metadata"] == {"source": "api"}
    assert item["created_at_utc"] == "2025-03-01T10:00:00.000000+00:00"
    assert BillingRecord.from_item(item) == failed


def test_from_item_accepts_trailing_z_timestamps() -> None:
    item = make_record().to_item()
    item["created_at_utc"] = "2025-03-01T10:00:00Z"
    item["updated_at_utc"] = "2025-03-01T10:00:00Z"

    assert BillingRecord.from_item(item).created_at == HOUR_START
