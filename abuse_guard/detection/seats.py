"""
Seat Abuse Detection

Detects misuse of licensed seats within a subscription:
1. Ghost seats - assigned but unused for the whole window
2. Seat sharing - one seat used from too many devices/IPs/locations
3. Seat hopping - one seat reassigned over and over to dodge limits

Also produces per-seat utilization and deprovisioning recommendations
for cost-saving reports.
"""

import logging
import time
from typing import Any, Callable, Optional

from ..config import SeatAbuseConfig
from ..metrics import metrics, record_analysis
from ..schemas import (
    AbuseSignal,
    DeprovisioningRecommendation,
    IndicatorType,
    RiskLevel,
    SeatAbuseAnalysis,
    SeatAssignment,
    SeatClassification,
    SeatReassignment,
    SeatUtilization,
    SignalCategory,
)
from ..scoring.risk import aggregate_risk, recommend_action
from ..scoring.utilization import DeprovisioningAdvisor, UtilizationScorer
from ..utils.clock import now_ms
from .registry import SeatRegistry
from .signals import build_signal

logger = logging.getLogger("abuse_guard.detection.seats")

GHOST_BASE, GHOST_RATIO_WEIGHT = 0.5, 0.5
SHARING_BASE, SHARING_STEP = 0.6, 0.1
HOPPING_CONFIDENCE = 0.85

# Ghost ratio above which ghost seats are MEDIUM rather than LOW risk
GHOST_MEDIUM_RATIO = 0.5

# Shared seat count at which seat sharing escalates to HIGH
SHARING_HIGH_COUNT = 3


class SeatAbuseDetector:
    """
    Detects seat abuse for a subscription.

    Every check works on all registered seats of the subscription,
    active or not.
    """

    def __init__(
        self,
        config: Optional[SeatAbuseConfig] = None,
        registry: Optional[SeatRegistry] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize detector.

        Args:
            config: Thresholds (defaults if None)
            registry: Seat registry (a private one if None)
            clock: Epoch-ms clock (wall clock if None)
        """
        self.clock = clock or now_ms
        self.registry = registry or SeatRegistry()
        self._apply_config(config or SeatAbuseConfig())

    def _apply_config(self, config: SeatAbuseConfig) -> None:
        self.config = config
        self.scorer = UtilizationScorer(config, clock=self.clock)
        self.advisor = DeprovisioningAdvisor(config)

    # =========================================================================
    # Seat management
    # =========================================================================

    def register_seat(self, assignment: SeatAssignment) -> None:
        """Insert or update a seat (upsert by seat id)."""
        self.registry.register(assignment)
        metrics.tracked_seats.set(self.registry.count())

    def record_reassignment(self, reassignment: SeatReassignment) -> None:
        """Append to seat history; unknown seats are ignored."""
        self.registry.record_reassignment(reassignment)

    def get_seats(self, subscription_id: str) -> list[SeatAssignment]:
        return self.registry.get_seats(subscription_id)

    def get_reassignments(self, subscription_id: str) -> list[SeatReassignment]:
        return self.registry.get_reassignments(subscription_id)

    # =========================================================================
    # Utilization and classification
    # =========================================================================

    def calculate_utilization_score(
        self,
        seat: SeatAssignment,
        now: Optional[int] = None,
    ) -> SeatUtilization:
        return self.scorer.score(seat, now=now)

    def _utilization(self, subscription_id: str, now: int) -> list[SeatUtilization]:
        return [self.scorer.score(seat, now=now) for seat in self.get_seats(subscription_id)]

    def detect_ghost_seats(
        self,
        subscription_id: str,
        now: Optional[int] = None,
    ) -> list[SeatUtilization]:
        now = self.clock() if now is None else now
        return self._ghosts(self._utilization(subscription_id, now))

    def detect_seat_sharing(
        self,
        subscription_id: str,
        now: Optional[int] = None,
    ) -> list[SeatUtilization]:
        """Seats whose device, IP or location count exceeds its per-seat limit."""
        now = self.clock() if now is None else now
        return self._shared(self._utilization(subscription_id, now))

    def detect_seat_hopping(
        self,
        subscription_id: str,
        now: Optional[int] = None,
    ) -> list[str]:
        """
        Seats reassigned more than ``max_reassignments_per_window`` times
        in the window ending now.

        Returns:
            Seat ids in first-reassignment order
        """
        now = self.clock() if now is None else now
        window_start = now - self.config.reassignment_window_ms

        counts: dict[str, int] = {}
        for r in self.get_reassignments(subscription_id):
            if r.reassigned_at >= window_start:
                counts[r.seat_id] = counts.get(r.seat_id, 0) + 1

        limit = self.config.max_reassignments_per_window
        return [seat_id for seat_id, count in counts.items() if count > limit]

    def generate_deprovisioning_recommendations(
        self,
        subscription_id: str,
        now: Optional[int] = None,
    ) -> list[DeprovisioningRecommendation]:
        now = self.clock() if now is None else now
        return self.advisor.recommend(self._utilization(subscription_id, now))

    def _ghosts(self, utilization: list[SeatUtilization]) -> list[SeatUtilization]:
        return [u for u in utilization if u.classification == SeatClassification.GHOST]

    def _shared(self, utilization: list[SeatUtilization]) -> list[SeatUtilization]:
        cfg = self.config
        return [
            u for u in utilization
            if u.device_count > cfg.max_devices_per_seat
            or u.ip_count > cfg.max_ips_per_seat
            or u.location_count > cfg.max_locations_per_seat
        ]

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze(self, subscription_id: str, workspace_id: str) -> SeatAbuseAnalysis:
        """
        Run every seat check for a subscription.

        Args:
            subscription_id: Subscription to analyze
            workspace_id: Workspace recorded on signals

        Returns:
            SeatAbuseAnalysis
        """
        started = time.perf_counter()
        now = self.clock()
        seats = self.get_seats(subscription_id)
        utilization = [self.scorer.score(seat, now=now) for seat in seats]

        ghosts = self._ghosts(utilization)
        shared = self._shared(utilization)
        hopping = self.detect_seat_hopping(subscription_id, now=now)
        recommendations = self.advisor.recommend(utilization)

        signals: list[AbuseSignal] = []

        if ghosts:
            ghost_ratio = len(ghosts) / len(seats)
            signals.append(self._signal(
                SignalCategory.GHOST_SEAT,
                IndicatorType.GHOST_SEAT,
                RiskLevel.MEDIUM if ghost_ratio > GHOST_MEDIUM_RATIO else RiskLevel.LOW,
                min(GHOST_BASE + ghost_ratio * GHOST_RATIO_WEIGHT, 1.0),
                f"{len(ghosts)} of {len(seats)} seats inactive for "
                f"{self.config.ghost_seat_threshold_days}+ days",
                subscription_id,
                workspace_id,
                now,
                {
                    "ghost_seat_ids": [u.seat_id for u in ghosts],
                    "total_seats": len(seats),
                    "ghost_ratio": round(ghost_ratio, 4),
                },
            ))

        if shared:
            signals.append(self._signal(
                SignalCategory.SEAT_SHARING,
                IndicatorType.SEAT_SHARING,
                RiskLevel.HIGH if len(shared) >= SHARING_HIGH_COUNT else RiskLevel.MEDIUM,
                min(SHARING_BASE + len(shared) * SHARING_STEP, 1.0),
                f"{len(shared)} seats used from more devices, IPs or locations than allowed",
                subscription_id,
                workspace_id,
                now,
                {
                    "shared_seat_ids": [u.seat_id for u in shared],
                    "max_devices_per_seat": self.config.max_devices_per_seat,
                    "max_ips_per_seat": self.config.max_ips_per_seat,
                    "max_locations_per_seat": self.config.max_locations_per_seat,
                },
            ))

        if hopping:
            signals.append(self._signal(
                SignalCategory.SEAT_HOPPING,
                IndicatorType.SEAT_HOPPING,
                RiskLevel.HIGH,
                HOPPING_CONFIDENCE,
                f"{len(hopping)} seats reassigned more than "
                f"{self.config.max_reassignments_per_window} times in window",
                subscription_id,
                workspace_id,
                now,
                {
                    "hopping_seat_ids": hopping,
                    "window_ms": self.config.reassignment_window_ms,
                    "limit": self.config.max_reassignments_per_window,
                },
            ))

        overall_risk = aggregate_risk(signals)
        action = recommend_action(overall_risk)

        analysis = SeatAbuseAnalysis(
            subscription_id=subscription_id,
            workspace_id=workspace_id,
            total_seats=len(seats),
            active_seats=sum(1 for s in seats if s.is_active),
            utilization=utilization,
            ghost_seats=ghosts,
            shared_seats=shared,
            hopping_seat_ids=hopping,
            deprovisioning_recommendations=recommendations,
            potential_monthly_savings_cents=sum(
                r.estimated_savings_per_month for r in recommendations
            ),
            signals=signals,
            overall_risk=overall_risk,
            recommended_action=action,
            analyzed_at=now,
        )

        if overall_risk != RiskLevel.LOW:
            logger.info(
                "Seat abuse risk %s for subscription %s (%d signals, action=%s)",
                overall_risk.value,
                subscription_id,
                len(signals),
                action.value,
            )
        record_analysis(
            "seat_abuse",
            overall_risk.value,
            signals,
            (time.perf_counter() - started) * 1000,
        )
        return analysis

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_config(self) -> SeatAbuseConfig:
        return self.config.model_copy()

    def update_config(self, partial: dict[str, Any]) -> SeatAbuseConfig:
        """
        Merge-overwrite thresholds.

        Raises:
            InvalidConfigError: unknown key or out-of-range value
        """
        self._apply_config(self.config.merge(partial))
        logger.info("Seat abuse config updated: %s", sorted(partial))
        return self.get_config()

    def clear(self) -> None:
        """Drop all seats and reassignment history."""
        self.registry.clear()
        metrics.tracked_seats.set(0)

    def _signal(
        self,
        category: SignalCategory,
        indicator_type: IndicatorType,
        risk_level: RiskLevel,
        confidence: float,
        description: str,
        subscription_id: str,
        workspace_id: str,
        now: int,
        evidence: dict[str, Any],
    ) -> AbuseSignal:
        return build_signal(
            category=category,
            indicator_type=indicator_type,
            risk_level=risk_level,
            confidence=confidence,
            description=description,
            account_id=subscription_id,
            workspace_id=workspace_id,
            detected_at=now,
            evidence=evidence,
        )
