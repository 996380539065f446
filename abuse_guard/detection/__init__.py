# Detection Modules
from .geo import haversine_distance_km, find_geographic_anomalies
from .fingerprint import fingerprint_hash, fingerprint_similarity, average_pairwise_similarity
from .registry import SessionRegistry, SeatRegistry
from .grace import GracePeriodTracker
from .sharing import AntiSharingDetector
from .seats import SeatAbuseDetector

__all__ = [
    "haversine_distance_km",
    "find_geographic_anomalies",
    "fingerprint_hash",
    "fingerprint_similarity",
    "average_pairwise_similarity",
    "SessionRegistry",
    "SeatRegistry",
    "GracePeriodTracker",
    "AntiSharingDetector",
    "SeatAbuseDetector",
]
