"""UTC helpers and the per-call deadline."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from authcore.models.base import UTCDateTime
from authcore.services._shared.clock import Deadline, ensure_utc, from_timestamp
from authcore.services._shared.errors import StoreTimeoutError


def test_ensure_utc_labels_naive_and_converts_aware():
    naive = datetime(2024, 1, 1, 12, 0)
    plus_two = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    assert ensure_utc(plus_two).tzinfo is UTC
    assert ensure_utc(plus_two).hour == 12
    assert ensure_utc(None) is None


def test_column_type_round_trips_as_utc():
    column = UTCDateTime()
    naive = datetime(2024, 1, 1, 12, 0)
    assert column.process_result_value(naive, None) == naive.replace(tzinfo=UTC)
    assert column.process_bind_param(None, None) is None


def test_from_timestamp_truncates_to_seconds():
    assert from_timestamp(0.9) == datetime(1970, 1, 1, tzinfo=UTC)


def test_deadline_check():
    Deadline.after(5).check("fine")
    with pytest.raises(StoreTimeoutError, match="during lookup"):
        Deadline.after(-1).check("lookup")
