"""Monotonic timestamp source for ledger rows.

SQLite's ``CURRENT_TIMESTAMP`` only has one-second resolution, which makes
"most recently touched spool" comparisons tie constantly. Every timestamp the
services write comes from here instead: naive UTC with microseconds, strictly
increasing within the process.
"""

import threading
from datetime import datetime, timedelta, timezone

_lock = threading.Lock()
_last: datetime | None = None


def utcnow() -> datetime:
    """Return the current naive UTC time, later than any value returned before."""
    global _last
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    with _lock:
        if _last is not None and now <= _last:
            now = _last + timedelta(microseconds=1)
        _last = now
    return now
