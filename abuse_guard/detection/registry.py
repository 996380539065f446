"""
In-Memory Registries

Working state for windowed analysis: session records and seat
assignments, sharded by subscription id. Each registry serializes
access with its own lock; readers get list snapshots so analysis
runs without holding the lock.
"""

import logging
import threading
from typing import Optional

from ..schemas import SeatAssignment, SeatReassignment, SessionRecord

logger = logging.getLogger("abuse_guard.registry")


class SessionRegistry:
    """
    Session records per subscription.

    Upsert by session id; a session belongs to exactly one
    subscription for as long as it is registered.
    """

    def __init__(self):
        self._sessions: dict[str, dict[str, SessionRecord]] = {}
        self._lock = threading.RLock()

    def register(self, record: SessionRecord) -> None:
        with self._lock:
            self._sessions.setdefault(record.subscription_id, {})[record.session_id] = record
        logger.debug(
            "Session %s registered for subscription %s",
            record.session_id,
            record.subscription_id,
        )

    def remove(self, subscription_id: str, session_id: str) -> None:
        with self._lock:
            sessions = self._sessions.get(subscription_id)
            if sessions is None:
                return
            sessions.pop(session_id, None)
            if not sessions:
                del self._sessions[subscription_id]

    def get_sessions(self, subscription_id: str) -> list[SessionRecord]:
        """All sessions, active or not, in registration order."""
        with self._lock:
            return list(self._sessions.get(subscription_id, {}).values())

    def get_active_sessions(self, subscription_id: str) -> list[SessionRecord]:
        return [s for s in self.get_sessions(subscription_id) if s.is_active]

    def count(self) -> int:
        with self._lock:
            return sum(len(s) for s in self._sessions.values())

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


class SeatRegistry:
    """
    Seat assignments and reassignment history per subscription.
    """

    def __init__(self):
        self._seats: dict[str, dict[str, SeatAssignment]] = {}
        self._reassignments: dict[str, list[SeatReassignment]] = {}
        self._lock = threading.RLock()

    def register(self, assignment: SeatAssignment) -> None:
        with self._lock:
            self._seats.setdefault(assignment.subscription_id, {})[assignment.seat_id] = assignment
        logger.debug(
            "Seat %s registered for subscription %s",
            assignment.seat_id,
            assignment.subscription_id,
        )

    def find_subscription(self, seat_id: str) -> Optional[str]:
        """Linear scan for the subscription owning ``seat_id``."""
        with self._lock:
            for subscription_id, seats in self._seats.items():
                if seat_id in seats:
                    return subscription_id
        return None

    def record_reassignment(self, reassignment: SeatReassignment) -> bool:
        """
        Append to the owning subscription's history.

        Returns:
            False if no registered seat has this id (ignored)
        """
        with self._lock:
            subscription_id = self.find_subscription(reassignment.seat_id)
            if subscription_id is None:
                logger.debug(
                    "Ignoring reassignment for unknown seat %s",
                    reassignment.seat_id,
                )
                return False
            self._reassignments.setdefault(subscription_id, []).append(reassignment)
        return True

    def get_seats(self, subscription_id: str) -> list[SeatAssignment]:
        with self._lock:
            return list(self._seats.get(subscription_id, {}).values())

    def get_reassignments(self, subscription_id: str) -> list[SeatReassignment]:
        with self._lock:
            return list(self._reassignments.get(subscription_id, []))

    def count(self) -> int:
        with self._lock:
            return sum(len(s) for s in self._seats.values())

    def clear(self) -> None:
        with self._lock:
            self._seats.clear()
            self._reassignments.clear()
