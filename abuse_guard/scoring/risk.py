"""
Risk Aggregation and Enforcement Mapping

One rule set shared by both detectors (and the engine facade):

Aggregation (first match wins):
- no signals                          -> LOW
- any CRITICAL, or HIGH with >=2 sigs -> CRITICAL
- any HIGH, or >=2 MEDIUM             -> HIGH
- any MEDIUM                          -> MEDIUM
- otherwise                           -> LOW

Enforcement:
  LOW -> NONE, MEDIUM -> WARN, HIGH -> THROTTLE, CRITICAL -> SUSPEND
During a grace period anything above LOW maps to WARN.
"""

from typing import Iterable

from ..schemas import AbuseSignal, EnforcementAction, RiskLevel

ENFORCEMENT_POLICY: dict[RiskLevel, EnforcementAction] = {
    RiskLevel.LOW: EnforcementAction.NONE,
    RiskLevel.MEDIUM: EnforcementAction.WARN,
    RiskLevel.HIGH: EnforcementAction.THROTTLE,
    RiskLevel.CRITICAL: EnforcementAction.SUSPEND,
}


def aggregate_risk(signals: Iterable[AbuseSignal]) -> RiskLevel:
    """
    Combine a signal set into one risk level.

    Args:
        signals: Signals for one subscription

    Returns:
        Overall RiskLevel
    """
    levels = [s.risk_level for s in signals]
    if not levels:
        return RiskLevel.LOW

    has_critical = RiskLevel.CRITICAL in levels
    has_high = RiskLevel.HIGH in levels
    medium_count = levels.count(RiskLevel.MEDIUM)

    if has_critical or (has_high and len(levels) >= 2):
        return RiskLevel.CRITICAL
    if has_high or medium_count >= 2:
        return RiskLevel.HIGH
    if medium_count >= 1:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommend_action(
    risk: RiskLevel,
    in_grace_period: bool = False,
) -> EnforcementAction:
    """
    Map a risk level to an enforcement recommendation.

    Args:
        risk: Overall risk
        in_grace_period: Suppress escalation beyond WARN

    Returns:
        EnforcementAction
    """
    if in_grace_period:
        return EnforcementAction.NONE if risk == RiskLevel.LOW else EnforcementAction.WARN
    return ENFORCEMENT_POLICY[risk]
