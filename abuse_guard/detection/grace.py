"""
Grace Period Tracking

After a subscription's first violation the caller may open a grace
period. While it runs, sharing enforcement never escalates past WARN.
The detectors never open one on their own.
"""

import threading
from typing import Callable, Optional

from ..utils.clock import now_ms


class GracePeriodTracker:
    """Per-subscription first-violation timestamps."""

    def __init__(
        self,
        grace_period_ms: int,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            grace_period_ms: Length of the grace period
            clock: Epoch-ms clock (defaults to wall clock)
        """
        self.grace_period_ms = grace_period_ms
        self.clock = clock or now_ms
        self._first_violation: dict[str, int] = {}
        self._lock = threading.Lock()

    def start(self, subscription_id: str) -> None:
        """Record the first violation; an in-progress period is kept."""
        with self._lock:
            self._first_violation.setdefault(subscription_id, self.clock())

    def is_active(
        self,
        subscription_id: str,
        grace_period_ms: Optional[int] = None,
    ) -> bool:
        """
        True while now - first violation < grace period.

        Args:
            subscription_id: Subscription to check
            grace_period_ms: Override the tracker default (per-plan thresholds)
        """
        with self._lock:
            started = self._first_violation.get(subscription_id)
        if started is None:
            return False
        period = self.grace_period_ms if grace_period_ms is None else grace_period_ms
        return self.clock() - started < period

    def started_at(self, subscription_id: str) -> Optional[int]:
        with self._lock:
            return self._first_violation.get(subscription_id)

    def clear(self, subscription_id: str) -> None:
        with self._lock:
            self._first_violation.pop(subscription_id, None)

    def reset(self) -> None:
        with self._lock:
            self._first_violation.clear()
