"""
Signal Schemas

Defines abuse signals and the two ordered scales the detectors emit:
risk levels (LOW < MEDIUM < HIGH < CRITICAL) and enforcement actions
(NONE < WARN < THROTTLE < SUSPEND).
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    """
    Ordered severity classification derived from a signal set.

    Compare with ``severity``; string comparison is alphabetical.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _RISK_ORDER[self]


_RISK_ORDER = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class EnforcementAction(str, Enum):
    """
    Recommended response, monotonic with risk.

    - NONE: no action
    - WARN: notify the account owner
    - THROTTLE: limit concurrent usage
    - SUSPEND: suspend access pending review
    """
    NONE = "none"
    WARN = "warn"
    THROTTLE = "throttle"
    SUSPEND = "suspend"

    @property
    def severity(self) -> int:
        return _ACTION_ORDER[self]


_ACTION_ORDER = {
    EnforcementAction.NONE: 0,
    EnforcementAction.WARN: 1,
    EnforcementAction.THROTTLE: 2,
    EnforcementAction.SUSPEND: 3,
}


class SignalCategory(str, Enum):
    SHARING = "sharing"
    GHOST_SEAT = "ghost_seat"
    SEAT_SHARING = "seat_sharing"
    SEAT_HOPPING = "seat_hopping"


class IndicatorType(str, Enum):
    """Which check produced a signal."""
    # Sharing
    CONCURRENT_SESSIONS = "concurrent_sessions"
    DEVICE_FINGERPRINT_MISMATCH = "device_fingerprint_mismatch"
    IP_PATTERN_ANOMALY = "ip_pattern_anomaly"
    GEOGRAPHIC_IMPOSSIBILITY = "geographic_impossibility"

    # Seats
    GHOST_SEAT = "ghost_seat"
    SEAT_SHARING = "seat_sharing"
    SEAT_HOPPING = "seat_hopping"


class AbuseSignal(BaseModel):
    """
    One piece of evidence of abuse.

    Immutable once created. Marking a signal as a false positive
    produces a new copy with ``is_false_positive`` set.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Content-derived signal id")
    category: SignalCategory
    indicator_type: IndicatorType
    risk_level: RiskLevel
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Heuristic strength (not a probability)",
    )
    description: str
    account_id: str
    workspace_id: str
    detected_at: int = Field(..., description="Detection time (epoch ms)")
    evidence: dict[str, Any] = Field(default_factory=dict)
    is_false_positive: bool = False
