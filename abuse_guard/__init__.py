"""
Abuse Guard

Account sharing and seat abuse detection for subscription products.
"""

from .utils.logger import logger
from .config import (
    AntiSharingConfig,
    InvalidConfigError,
    PlanConfig,
    SeatAbuseConfig,
    settings,
)
from .detection import AntiSharingDetector, SeatAbuseDetector
from .engine import AbuseEngine, DetectorKind, EngineConfig, create_abuse_engine
from .metrics import setup_metrics
from .schemas import (
    AbuseReport,
    AbuseSignal,
    AccountCheckRequest,
    DeviceFingerprint,
    EnforcementAction,
    RiskLevel,
    SeatAssignment,
    SeatReassignment,
    SessionRecord,
)

__version__ = "0.1.0"

__all__ = [
    "logger",
    "settings",
    "AntiSharingConfig",
    "SeatAbuseConfig",
    "PlanConfig",
    "InvalidConfigError",
    "AntiSharingDetector",
    "SeatAbuseDetector",
    "AbuseEngine",
    "DetectorKind",
    "EngineConfig",
    "create_abuse_engine",
    "setup_metrics",
    "AbuseReport",
    "AbuseSignal",
    "AccountCheckRequest",
    "DeviceFingerprint",
    "EnforcementAction",
    "RiskLevel",
    "SeatAssignment",
    "SeatReassignment",
    "SessionRecord",
]
