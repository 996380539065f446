"""
Engine Report Schemas

Request/response types for the AbuseEngine facade that combines the
sharing and seat detectors into one per-account report.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .analysis import SeatAbuseAnalysis, SharingAnalysis
from .signals import AbuseSignal, EnforcementAction, RiskLevel


class AccountCheckRequest(BaseModel):
    """Identifies the account to check and the plan tier to apply."""
    account_id: str = Field(..., min_length=1)
    subscription_id: str = Field(..., min_length=1)
    workspace_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    plan_tier: str = Field(
        default="professional",
        description="Plan tier used to pick thresholds",
    )


class AuditEntry(BaseModel):
    """Audit trail entry attached to a report."""
    action: str
    timestamp: int
    details: dict[str, Any] = Field(default_factory=dict)


class AbuseReport(BaseModel):
    """
    Combined abuse assessment for one account.

    ``signals`` excludes anything marked as a false positive before
    the check ran.
    """
    id: str
    account_id: str
    subscription_id: str
    workspace_id: str
    user_id: str
    plan_tier: str
    signals: list[AbuseSignal] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommended_action: EnforcementAction = EnforcementAction.NONE
    sharing_analysis: Optional[SharingAnalysis] = None
    seat_analysis: Optional[SeatAbuseAnalysis] = None
    audit_trail: list[AuditEntry] = Field(default_factory=list)
    created_at: int


class BatchScanResult(BaseModel):
    """Summary of a batch of account checks."""
    total_accounts: int
    flagged_accounts: int
    reports: list[AbuseReport] = Field(default_factory=list)
    risk_distribution: dict[RiskLevel, int] = Field(
        default_factory=lambda: {level: 0 for level in RiskLevel},
        description="Report count per risk level; every level is present",
    )


class QuickCheckResult(BaseModel):
    """Outcome of a single-detector check. Not stored."""
    category: str
    risk_level: RiskLevel = RiskLevel.LOW
    signals: list[AbuseSignal] = Field(default_factory=list)


class FalsePositiveRate(BaseModel):
    total: int
    false_positives: int
    rate: float
