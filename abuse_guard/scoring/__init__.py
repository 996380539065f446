# Scoring Module
from .risk import aggregate_risk, recommend_action, ENFORCEMENT_POLICY
from .utilization import UtilizationScorer, DeprovisioningAdvisor

__all__ = [
    "aggregate_risk",
    "recommend_action",
    "ENFORCEMENT_POLICY",
    "UtilizationScorer",
    "DeprovisioningAdvisor",
]
