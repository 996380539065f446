"""
Pytest Configuration and Fixtures - Abuse Guard

Provides a frozen clock and factories for sessions, devices and seats.
"""

from typing import Optional

import pytest

from abuse_guard.schemas import (
    DeviceFingerprint,
    SeatAssignment,
    SeatLocation,
    SeatReassignment,
    SessionRecord,
)
from abuse_guard.utils import MS_PER_DAY

# 2023-11-14T22:13:20Z
BASE_TIME_MS = 1_700_000_000_000


def pytest_configure(config):
    config.addinivalue_line("markers", "sanity: sanity test suite")
    config.addinivalue_line("markers", "unit: unit tests (no infrastructure)")


class FrozenClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, now: int = BASE_TIME_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


def build_fingerprint(variant: Optional[int] = None, **overrides) -> DeviceFingerprint:
    """
    Device fingerprint.

    A ``variant`` changes all five fields, so two variants share nothing.
    """
    fields = {
        "user_agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)",
        "screen_resolution": "1920x1080",
        "timezone": "America/New_York",
        "language": "en-US",
        "platform": "MacIntel",
    }
    if variant is not None:
        fields = {k: f"{v}-{variant}" for k, v in fields.items()}
    fields.update(overrides)
    return DeviceFingerprint(**fields)


@pytest.fixture
def fingerprint_factory():
    return build_fingerprint


@pytest.fixture
def session_factory(clock):
    """Build SessionRecords; last activity defaults to the frozen clock."""

    def _make(
        session_id: str,
        subscription_id: str = "sub_001",
        user_id: str = "user_001",
        device: Optional[DeviceFingerprint] = None,
        ip_address: str = "203.0.113.10",
        coords: Optional[tuple[float, float]] = None,
        city: Optional[str] = None,
        last_active_at: Optional[int] = None,
        is_active: bool = True,
    ) -> SessionRecord:
        lat, lng = coords if coords else (None, None)
        return SessionRecord(
            subscription_id=subscription_id,
            session_id=session_id,
            user_id=user_id,
            device_fingerprint=device or build_fingerprint(),
            ip_address=ip_address,
            latitude=lat,
            longitude=lng,
            city=city,
            started_at=clock.now - 60_000,
            last_active_at=clock.now if last_active_at is None else last_active_at,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def seat_factory(clock):
    """Build SeatAssignments; ages are given in days before the frozen clock."""

    def _make(
        seat_id: str,
        subscription_id: str = "sub_001",
        user_id: Optional[str] = None,
        assigned_days_ago: float = 60,
        inactive_days: float = 0,
        device_count: int = 1,
        ip_count: int = 1,
        location_count: int = 1,
        is_active: bool = True,
    ) -> SeatAssignment:
        return SeatAssignment(
            subscription_id=subscription_id,
            seat_id=seat_id,
            user_id=user_id or f"user_{seat_id}",
            workspace_id="ws_001",
            assigned_at=int(clock.now - assigned_days_ago * MS_PER_DAY),
            last_active_at=int(clock.now - inactive_days * MS_PER_DAY),
            devices=[build_fingerprint(i) for i in range(device_count)],
            ip_addresses=[f"198.51.100.{i}" for i in range(ip_count)],
            locations=[SeatLocation(city=f"City {i}", country="US") for i in range(location_count)],
            is_active=is_active,
        )

    return _make


@pytest.fixture
def reassignment_factory(clock):
    def _make(seat_id: str, days_ago: float, new_user_id: str = "user_next") -> SeatReassignment:
        return SeatReassignment(
            seat_id=seat_id,
            previous_user_id="user_prev",
            new_user_id=new_user_id,
            reassigned_at=int(clock.now - days_ago * MS_PER_DAY),
            reassigned_by="admin_001",
        )

    return _make
