"""
Domain: time windows and grouping for invoice aggregation.

Window rule:
- A window is the half-open interval [start, start + size).
- start is obtained by flooring the record's created_at onto a grid of
  `window_size_minutes` anchored at the Unix epoch (1970-01-01T00:00:00Z):

      start = epoch + floor((created_at - epoch) / size) * size

  For sizes that divide 60 this grid coincides with stepping from the top of
  each hour. For other sizes the grid stays continuous across hour boundaries.
- Two timestamps in the same aligned interval always map to the same window,
  independent of the order in which records arrive.

Grouping keeps the input order of records inside every group and bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Tuple

from .billing_record import BillingRecord
from .time import require_utc_timestamp, to_iso_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

GroupKey = Tuple[str, str]


@dataclass(frozen=True, slots=True)
class TimeWindow:
    start: datetime
    size: timedelta

    def __post_init__(self) -> None:
        require_utc_timestamp("start", self.start)
        if self.size <= timedelta(0):
            raise ValueError("window size must be positive")

    @property
    def end(self) -> datetime:
        return self.start + self.size

    @property
    def window_id(self) -> str:
        """Serialized start instant; identifies the bucket on the invoice."""
        return to_iso_utc(self.start, name="window start")


def window_for(created_at: datetime, window_size_minutes: int) -> TimeWindow:
    if window_size_minutes < 1:
        raise ValueError("window_size_minutes must be >= 1")
    require_utc_timestamp("created_at", created_at)

    size = timedelta(minutes=window_size_minutes)
    # timedelta // timedelta is exact integer floor division, also before the epoch.
    steps = (created_at - _EPOCH) // size
    return TimeWindow(start=_EPOCH + steps * size, size=size)


def group_by_customer_currency(records: Iterable[BillingRecord]) -> Dict[GroupKey, List[BillingRecord]]:
    groups: Dict[GroupKey, List[BillingRecord]] = {}
    for record in records:
        groups.setdefault((record.customer_id, record.currency), []).append(record)
    return groups


def bucket_by_window(
    records: Iterable[BillingRecord],
    window_size_minutes: int,
) -> Dict[TimeWindow, List[BillingRecord]]:
    buckets: Dict[TimeWindow, List[BillingRecord]] = {}
    for record in records:
        buckets.setdefault(window_for(record.created_at, window_size_minutes), []).append(record)
    return buckets


__all__ = [
    "GroupKey",
    "TimeWindow",
    "window_for",
    "group_by_customer_currency",
    "bucket_by_window",
]
