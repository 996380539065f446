"""
Signal Construction

Builds AbuseSignal records. Ids are derived from what the signal
says (category, indicator, owners, evidence) and not from when it was
raised, so re-analysing unchanged state yields the same id and a
false-positive mark keeps matching. Uniqueness is advisory.
"""

import hashlib
import json
import logging
from typing import Any

from ..schemas import AbuseSignal, IndicatorType, RiskLevel, SignalCategory

logger = logging.getLogger("abuse_guard.detection")


def signal_id(
    category: SignalCategory,
    indicator_type: IndicatorType,
    account_id: str,
    workspace_id: str,
    evidence: dict[str, Any],
) -> str:
    """Compute the content-derived signal id."""
    payload = json.dumps(
        [
            category.value,
            indicator_type.value,
            account_id,
            workspace_id,
            evidence,
        ],
        sort_keys=True,
        default=str,
    )
    return "sig_" + hashlib.sha256(payload.encode()).hexdigest()[:16]


def build_signal(
    category: SignalCategory,
    indicator_type: IndicatorType,
    risk_level: RiskLevel,
    confidence: float,
    description: str,
    account_id: str,
    workspace_id: str,
    detected_at: int,
    evidence: dict[str, Any],
) -> AbuseSignal:
    """
    Create an immutable signal.

    Args:
        category: Signal family
        indicator_type: Check that fired
        risk_level: Severity of this single signal
        confidence: Heuristic strength (rounded to 4 places)
        description: Human-readable explanation
        account_id, workspace_id: Owning entities
        detected_at: Analysis time (epoch ms)
        evidence: JSON-serializable facts backing the signal

    Returns:
        AbuseSignal
    """
    confidence = round(confidence, 4)
    signal = AbuseSignal(
        id=signal_id(category, indicator_type, account_id, workspace_id, evidence),
        category=category,
        indicator_type=indicator_type,
        risk_level=risk_level,
        confidence=confidence,
        description=description,
        account_id=account_id,
        workspace_id=workspace_id,
        detected_at=detected_at,
        evidence=evidence,
    )
    logger.debug(
        "Signal %s: %s (%s, confidence=%.2f) for %s",
        signal.id,
        indicator_type.value,
        risk_level.value,
        confidence,
        workspace_id,
    )
    return signal
