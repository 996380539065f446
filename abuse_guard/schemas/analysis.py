"""
Analysis Schemas

Per-subscription results returned by the anti-sharing and seat-abuse
detectors. All results are frozen snapshots.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .signals import AbuseSignal, EnforcementAction, RiskLevel


class GeographicAnomaly(BaseModel):
    """
    Pairwise comparison of two sessions that both carry coordinates.

    Every compared pair is reported; ``is_impossible`` marks the ones
    that imply an implausible travel speed.
    """
    model_config = ConfigDict(frozen=True)

    session_a_id: str
    session_b_id: str
    location_a: Optional[str] = None
    location_b: Optional[str] = None
    distance_km: float
    time_delta_minutes: float
    required_speed_kmh: float = Field(
        ...,
        description="Implied travel speed; inf for simultaneous distant sessions",
    )
    is_impossible: bool


class SharingAnalysis(BaseModel):
    """Result of AntiSharingDetector.analyze."""
    model_config = ConfigDict(frozen=True)

    subscription_id: str
    user_id: str
    active_session_count: int
    unique_device_count: int
    distinct_ip_count: int
    geographic_anomalies: list[GeographicAnomaly] = Field(default_factory=list)
    signals: list[AbuseSignal] = Field(default_factory=list)
    overall_risk: RiskLevel
    recommended_action: EnforcementAction
    in_grace_period: bool = False
    analyzed_at: int


class SeatClassification(str, Enum):
    ACTIVE = "active"
    LOW_USAGE = "low_usage"
    GHOST = "ghost"
    SHARED = "shared"


class SeatUtilization(BaseModel):
    """Usage score (0-100) and classification for one seat."""
    model_config = ConfigDict(frozen=True)

    seat_id: str
    user_id: str
    score: float = Field(..., ge=0.0, le=100.0)
    classification: SeatClassification
    days_since_last_active: float
    active_days_in_window: float
    total_days_in_window: int
    device_count: int
    ip_count: int
    location_count: int


class DeprovisioningRecommendation(BaseModel):
    """A seat worth reclaiming to save cost."""
    model_config = ConfigDict(frozen=True)

    seat_id: str
    user_id: str
    utilization_score: float
    classification: SeatClassification
    reason: str
    estimated_savings_per_month: int = Field(
        ...,
        description="Savings in cents per month",
    )


class SeatAbuseAnalysis(BaseModel):
    """Result of SeatAbuseDetector.analyze."""
    model_config = ConfigDict(frozen=True)

    subscription_id: str
    workspace_id: str
    total_seats: int
    active_seats: int
    utilization: list[SeatUtilization] = Field(default_factory=list)
    ghost_seats: list[SeatUtilization] = Field(default_factory=list)
    shared_seats: list[SeatUtilization] = Field(default_factory=list)
    hopping_seat_ids: list[str] = Field(default_factory=list)
    deprovisioning_recommendations: list[DeprovisioningRecommendation] = Field(
        default_factory=list
    )
    potential_monthly_savings_cents: int = 0
    signals: list[AbuseSignal] = Field(default_factory=list)
    overall_risk: RiskLevel
    recommended_action: EnforcementAction
    analyzed_at: int
