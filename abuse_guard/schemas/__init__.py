# Data schemas for Abuse Guard
from .sessions import DeviceFingerprint, SessionRecord, compute_fingerprint_hash
from .seats import SeatAssignment, SeatLocation, SeatReassignment
from .signals import (
    AbuseSignal,
    EnforcementAction,
    IndicatorType,
    RiskLevel,
    SignalCategory,
)
from .analysis import (
    DeprovisioningRecommendation,
    GeographicAnomaly,
    SeatAbuseAnalysis,
    SeatClassification,
    SeatUtilization,
    SharingAnalysis,
)
from .reports import (
    AbuseReport,
    AccountCheckRequest,
    AuditEntry,
    BatchScanResult,
    FalsePositiveRate,
    QuickCheckResult,
)

__all__ = [
    # Sessions
    "DeviceFingerprint",
    "SessionRecord",
    "compute_fingerprint_hash",
    # Seats
    "SeatAssignment",
    "SeatLocation",
    "SeatReassignment",
    # Signals
    "AbuseSignal",
    "EnforcementAction",
    "IndicatorType",
    "RiskLevel",
    "SignalCategory",
    # Analysis
    "DeprovisioningRecommendation",
    "GeographicAnomaly",
    "SeatAbuseAnalysis",
    "SeatClassification",
    "SeatUtilization",
    "SharingAnalysis",
    # Reports
    "AbuseReport",
    "AccountCheckRequest",
    "AuditEntry",
    "BatchScanResult",
    "FalsePositiveRate",
    "QuickCheckResult",
]
