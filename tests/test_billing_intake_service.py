"""Tests for `services/billing_intake_service.py`."""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.billing_record import BillingStatus
from domain.errors import StoreError
from services.billing_intake_service import BillingRequest, BillingRequestError, submit_billing_request
from fakes import InMemoryBillingRecordStore


def _payload(**overrides):
    payload = {"customerId": "c1", "productId": "p1", "amount": "42.50", "currency": "usd"}
    payload.update(overrides)
    return payload


class TestBillingRequest:
    def test_parses_required_fields(self) -> None:
        request = BillingRequest.from_payload(_payload())

        assert request.customer_id == "c1"
        assert request.product_id == "p1"
        assert request.amount == Decimal("42.50")
        assert request.currency == "USD"
        assert request.metadata == {}

    def test_extra_fields_become_metadata(self) -> None:
        request = BillingRequest.from_payload(_payload(source="load-generator", requestTimestamp=1700000000000))

        assert request.metadata == {"source": "load-generator", "requestTimestamp": "1700000000000"}

    @pytest.mark.parametrize("missing", ["customerId", "productId", "amount", "currency"])
    def test_missing_fields_are_named(self, missing) -> None:
        payload = _payload()
        del payload[missing]

        with pytest.raises(BillingRequestError) as excinfo:
            BillingRequest.from_payload(payload)

        assert missing in str(excinfo.value)

    @pytest.mark.parametrize("payload", [None, {}])
    def test_empty_body(self, payload) -> None:
        with pytest.raises(BillingRequestError):
            BillingRequest.from_payload(payload)

    def test_bad_amount(self) -> None:
        with pytest.raises(BillingRequestError):
            BillingRequest.from_payload(_payload(amount="ten dollars"))

    def test_bad_currency(self) -> None:
        with pytest.raises(BillingRequestError):
            BillingRequest.from_payload(_payload(currency="U$D"))


def test_submit_stores_pending_record_and_enqueues(record_store, queue, settings) -> None:
    result = submit_billing_request(BillingRequest.from_payload(_payload()), record_store, queue, settings)

    assert result.success
    assert result.enqueued
    stored = record_store.get(result.record_id)
    assert stored.status is BillingStatus.PENDING
    assert stored.retry_count == 0
    assert stored.amount == Decimal("42.50")
    assert queue.sent[settings.resolved_billing_queue] == [stored.to_item()]


def test_submit_fails_when_the_store_fails(queue, settings) -> None:
    class BrokenStore(InMemoryBillingRecordStore):
        def create(self, record):
            raise StoreError("connection refused")

    result = submit_billing_request(BillingRequest.from_payload(_payload()), BrokenStore(), queue, settings)

    assert not result.success
    assert "connection refused" in result.error
    assert queue.sent == {}


def test_enqueue_failure_still_accepts_the_record(record_store, queue, settings) -> None:
    queue.fail_send = True

    result = submit_billing_request(BillingRequest.from_payload(_payload()), record_store, queue, settings)

    assert result.success
    assert not result.enqueued
    assert record_store.get(result.record_id) is not None
