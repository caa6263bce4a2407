"""
GoalOS clock

All timestamps are UTC. Records store ISO 8601 strings with a Z suffix;
ids embed a compact UTC timestamp prefix so that lexicographic order of
ids follows creation order.
"""

import threading
from datetime import datetime, timezone
from typing import Optional

_ID_SECONDS_FORMAT = "%Y%m%d%H%M%S"
_ID_MICROS_FORMAT = "%Y%m%d%H%M%S%f"

_monotonic_lock = threading.Lock()
_last_micros_stamp = ""


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """
    Current UTC time as ISO 8601 with Z suffix

    Example:
        >>> utc_now_iso()
        '2026-01-31T12:34:56.789012Z'
    """
    return to_iso(utc_now())


def to_iso(dt: datetime) -> str:
    """Format an aware datetime as ISO 8601 UTC with Z suffix"""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def id_stamp_seconds(dt: Optional[datetime] = None) -> str:
    """Second-resolution id prefix, e.g. 20260131123456"""
    return (dt or utc_now()).strftime(_ID_SECONDS_FORMAT)


def id_stamp_micros() -> str:
    """
    Microsecond-resolution id prefix, strictly increasing within a process

    Two calls inside the same microsecond (or after the wall clock steps
    backwards) still return increasing stamps.
    """
    global _last_micros_stamp
    with _monotonic_lock:
        stamp = utc_now().strftime(_ID_MICROS_FORMAT)
        if stamp <= _last_micros_stamp:
            stamp = str(int(_last_micros_stamp) + 1)
        _last_micros_stamp = stamp
        return stamp
