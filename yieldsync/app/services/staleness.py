"""
Staleness policy.

Pure functions deciding, from timestamps alone, whether a cached asset record
or a cached search query must be reconciled against the external source.
No I/O, no clock access: callers pass `now` explicitly.
"""
from datetime import datetime, timedelta
from typing import Optional

from yieldsync.app.utils.datetime_utils import as_utc

# Defaults (overridable via Settings.ASSET_REFRESH_WINDOW_MINUTES / QUERY_REFRESH_WINDOW_MINUTES)
ASSET_REFRESH_WINDOW = timedelta(minutes=10080)
QUERY_REFRESH_WINDOW = timedelta(minutes=1440)


def _is_stale(last: Optional[datetime], now: datetime, window: timedelta) -> bool:
    if last is None:
        return True
    return as_utc(now) - as_utc(last) >= window


def record_needs_refresh(
    last_refreshed_at: Optional[datetime],
    now: datetime,
    window: timedelta = ASSET_REFRESH_WINDOW,
    ) -> bool:
    """
    Decide whether an asset record must be refreshed from its provider.

    Args:
        last_refreshed_at: Last successful reconciliation (None = never reconciled)
        now: Current time
        window: Refresh window (default one week)

    Returns:
        True iff last_refreshed_at is None or now - last_refreshed_at >= window
    """
    return _is_stale(last_refreshed_at, now, window)


def query_needs_external_lookup(
    last_requested_at: Optional[datetime],
    now: datetime,
    window: timedelta = QUERY_REFRESH_WINDOW,
    ) -> bool:
    """
    Decide whether a normalized search query must be sent to the provider again.

    Same comparator as record_needs_refresh, with the query throttle window.
    """
    return _is_stale(last_requested_at, now, window)
