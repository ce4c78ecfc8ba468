"""
Time helpers
"""

import time


DAY_MS = 24 * 60 * 60 * 1000
YEAR_MS = 365 * DAY_MS


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds"""
    return int(time.time() * 1000)


def cutoff_ms(older_than_days: float, now: int) -> int:
    """Timestamp before which a document counts as older than `older_than_days`"""
    return int(now - older_than_days * DAY_MS)
