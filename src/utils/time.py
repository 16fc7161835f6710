from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    # Columns are stored as naive UTC.
    return utc_now().replace(tzinfo=None)
