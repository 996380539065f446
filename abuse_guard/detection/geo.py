"""
Geographic Impossibility Detection

Detects "impossible travel": two sessions of the same subscription
whose locations and timestamps imply a travel speed no human can
reach. A strong indicator that credentials are used by different
people in different places.

Key signals:
- Great-circle distance between session coordinates
- Time between the sessions' last activity
- Implied speed vs. a plausible maximum (air travel)
"""

from itertools import combinations
from math import radians, sin, cos, sqrt, atan2
from typing import Optional

from ..schemas import GeographicAnomaly, SessionRecord
from ..utils.clock import MS_PER_HOUR, MS_PER_MINUTE

EARTH_RADIUS_KM = 6371.0

# Simultaneous sessions further apart than this are impossible
SIMULTANEOUS_DISTANCE_KM = 1.0

# Below this distance speed is ignored (GPS jitter, neighbouring cell towers)
MIN_IMPOSSIBLE_DISTANCE_KM = 50.0


def haversine_distance_km(
    lat1: float,
    lng1: float,
    lat2: float,
    lng2: float,
) -> float:
    """
    Calculate distance between two points using Haversine formula.

    NaN inputs are not rejected: they propagate and yield NaN.

    Args:
        lat1, lng1: First point coordinates (degrees)
        lat2, lng2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    # Rounding can push antipodal points a hair above 1
    if a > 1.0:
        a = 1.0
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def _location_label(session: SessionRecord) -> Optional[str]:
    parts = [p for p in (session.city, session.country) if p]
    return ", ".join(parts) if parts else None


def compare_sessions(
    a: SessionRecord,
    b: SessionRecord,
    max_speed_kmh: float,
) -> GeographicAnomaly:
    """
    Compare two located sessions.

    Args:
        a, b: Sessions that both carry coordinates
        max_speed_kmh: Plausible travel speed limit

    Returns:
        GeographicAnomaly with ``is_impossible`` set
    """
    distance_km = haversine_distance_km(a.latitude, a.longitude, b.latitude, b.longitude)
    delta_ms = abs(a.last_active_at - b.last_active_at)

    if delta_ms == 0:
        # Same instant: any real separation means two places at once
        is_impossible = distance_km > SIMULTANEOUS_DISTANCE_KM
        speed_kmh = float("inf") if distance_km > 0 else 0.0
    else:
        speed_kmh = distance_km / (delta_ms / MS_PER_HOUR)
        is_impossible = (
            speed_kmh > max_speed_kmh
            and distance_km > MIN_IMPOSSIBLE_DISTANCE_KM
        )

    return GeographicAnomaly(
        session_a_id=a.session_id,
        session_b_id=b.session_id,
        location_a=_location_label(a),
        location_b=_location_label(b),
        distance_km=distance_km,
        time_delta_minutes=delta_ms / MS_PER_MINUTE,
        required_speed_kmh=speed_kmh,
        is_impossible=is_impossible,
    )


def find_geographic_anomalies(
    sessions: list[SessionRecord],
    max_speed_kmh: float,
) -> list[GeographicAnomaly]:
    """
    Compare every pair of sessions that carry coordinates.

    O(n^2) in the number of located sessions; tenants are expected to
    have tens of sessions, and the anomaly list must stay exhaustive.

    Returns:
        One GeographicAnomaly per pair, impossible or not
    """
    located = [s for s in sessions if s.has_coordinates]
    return [
        compare_sessions(a, b, max_speed_kmh)
        for a, b in combinations(located, 2)
    ]
