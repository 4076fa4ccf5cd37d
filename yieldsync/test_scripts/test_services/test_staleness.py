"""
Staleness Policy Tests

Pure timestamp comparisons for record refresh and query throttle.
"""
from datetime import datetime, timedelta, timezone

import pytest

from yieldsync.app.services.staleness import (
    ASSET_REFRESH_WINDOW,
    QUERY_REFRESH_WINDOW,
    query_needs_external_lookup,
    record_needs_refresh,
    )

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def test_default_windows():
    assert ASSET_REFRESH_WINDOW == timedelta(days=7)
    assert QUERY_REFRESH_WINDOW == timedelta(days=1)


def test_never_refreshed_is_stale():
    assert record_needs_refresh(None, NOW)
    assert query_needs_external_lookup(None, NOW)


@pytest.mark.parametrize("age,expected", [
    (timedelta(0), False),
    (timedelta(minutes=10079), False),
    (timedelta(minutes=10080), True),  # boundary is inclusive
    (timedelta(days=30), True),
    ])
def test_record_window(age, expected):
    assert record_needs_refresh(NOW - age, NOW) is expected


@pytest.mark.parametrize("age,expected", [
    (timedelta(minutes=1), False),
    (timedelta(minutes=1439), False),
    (timedelta(minutes=1440), True),
    ])
def test_query_window(age, expected):
    assert query_needs_external_lookup(NOW - age, NOW) is expected


def test_custom_window():
    last = NOW - timedelta(minutes=5)
    assert record_needs_refresh(last, NOW, timedelta(minutes=5))
    assert not record_needs_refresh(last, NOW, timedelta(minutes=6))


def test_naive_timestamp_read_as_utc():
    """Naive timestamps (SQLite) compare as UTC against an aware now."""
    last = (NOW - timedelta(minutes=30)).replace(tzinfo=None)
    assert not query_needs_external_lookup(last, NOW)
    assert query_needs_external_lookup(last, NOW, timedelta(minutes=30))


def test_future_timestamp_is_fresh():
    """Clock skew: a timestamp ahead of now is never stale."""
    assert not record_needs_refresh(NOW + timedelta(hours=1), NOW)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
