"""Tests for `services/billing_processors.py`."""

from __future__ import annotations

import random

import pytest

from services.billing_processors import AlwaysSucceedProcessor, SimulatedBillingProcessor
from fakes import make_record


def _no_sleep(seconds: float) -> None:
    pass


def test_zero_failure_rate_always_succeeds() -> None:
    processor = SimulatedBillingProcessor(failure_rate=0.0, rng=random.Random(1), sleep=_no_sleep)

    assert all(processor.process(make_record()).success for _ in range(50))


def test_full_failure_rate_always_fails() -> None:
    processor = SimulatedBillingProcessor(failure_rate=1.0, rng=random.Random(1), sleep=_no_sleep)

    result = processor.process(make_record())

    assert not result.success
    assert result.reason == "Simulated processing failure"


def test_delay_stays_within_bounds() -> None:
    sleeps = []
    processor = SimulatedBillingProcessor(
        failure_rate=0.0, min_delay_ms=50, max_delay_ms=150, rng=random.Random(5), sleep=sleeps.append,
    )

    for _ in range(20):
        processor.process(make_record())

    assert all(0.05 <= s <= 0.15 for s in sleeps)


def test_seeded_runs_are_reproducible() -> None:
    def outcomes(seed: int) -> list:
        processor = SimulatedBillingProcessor(failure_rate=0.5, rng=random.Random(seed), sleep=_no_sleep)
        return [processor.process(make_record()).success for _ in range(30)]

    assert outcomes(11) == outcomes(11)


@pytest.mark.parametrize("kwargs", [{"failure_rate": 1.5}, {"failure_rate": -0.1}, {"min_delay_ms": 10, "max_delay_ms": 5}])
def test_invalid_configuration(kwargs) -> None:
    with pytest.raises(ValueError):
        SimulatedBillingProcessor(**kwargs)


def test_always_succeed() -> None:
    assert AlwaysSucceedProcessor().process(make_record()).success
