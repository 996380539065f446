"""
Clock helpers.

All timestamps in the engine are epoch milliseconds. Detectors take a
``clock`` callable so tests and replay tools can pin "now".
"""

import time

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
