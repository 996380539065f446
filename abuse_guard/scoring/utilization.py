"""
Seat Utilization Scoring

Scores how much a seat is actually used (0-100) over a window of
``ghost_seat_threshold_days`` and classifies it:

1. GHOST      - no activity for the whole window (score forced to 0)
2. SHARED     - more devices or IPs than one person plausibly uses
3. LOW_USAGE  - score under ``low_utilization_threshold``
4. ACTIVE     - everything else

The deprovisioning advisor turns ghost and low-usage seats into
cost-saving recommendations, worst first.
"""

from typing import Callable, Optional

from ..config import SeatAbuseConfig
from ..schemas import (
    DeprovisioningRecommendation,
    SeatAssignment,
    SeatClassification,
    SeatUtilization,
)
from ..utils.clock import MS_PER_DAY, now_ms

# Score penalties for shared-looking seats
DEVICE_PENALTY = 20.0
IP_PENALTY = 10.0


class UtilizationScorer:
    """
    Per-seat utilization scoring.

    Scores are a pure function of the seat, the config and "now".
    """

    def __init__(
        self,
        config: SeatAbuseConfig,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.config = config
        self.clock = clock or now_ms

    def score(self, seat: SeatAssignment, now: Optional[int] = None) -> SeatUtilization:
        """
        Score one seat.

        Args:
            seat: Seat to score
            now: Evaluation time (epoch ms); defaults to the clock

        Returns:
            SeatUtilization
        """
        cfg = self.config
        now = self.clock() if now is None else now

        days_since_last_active = (now - seat.last_active_at) / MS_PER_DAY
        assigned_days = (now - seat.assigned_at) / MS_PER_DAY
        total_days = cfg.ghost_seat_threshold_days

        if days_since_last_active < 1:
            active_days = min(assigned_days, total_days)
        elif days_since_last_active < total_days:
            active_days = max(total_days - days_since_last_active, 0)
        else:
            active_days = 0

        score = active_days / total_days * 100

        device_count = len(seat.devices)
        ip_count = len(seat.ip_addresses)
        too_many_devices = device_count > cfg.max_devices_per_seat
        too_many_ips = ip_count > cfg.max_ips_per_seat

        if too_many_devices:
            score = max(score - DEVICE_PENALTY, 0)
        if too_many_ips:
            score = max(score - IP_PENALTY, 0)

        if days_since_last_active >= total_days:
            classification = SeatClassification.GHOST
            score = 0.0
        elif too_many_devices or too_many_ips:
            classification = SeatClassification.SHARED
        elif score < cfg.low_utilization_threshold:
            classification = SeatClassification.LOW_USAGE
        else:
            classification = SeatClassification.ACTIVE

        # assigned_at in the future would otherwise go negative
        score = min(max(score, 0.0), 100.0)

        return SeatUtilization(
            seat_id=seat.seat_id,
            user_id=seat.user_id,
            score=round(score, 2),
            classification=classification,
            days_since_last_active=round(days_since_last_active, 4),
            active_days_in_window=round(active_days, 4),
            total_days_in_window=total_days,
            device_count=device_count,
            ip_count=ip_count,
            location_count=len(seat.locations),
        )


class DeprovisioningAdvisor:
    """Ranks underused seats for reclamation."""

    def __init__(self, config: SeatAbuseConfig):
        self.config = config

    def recommend(
        self,
        utilization: list[SeatUtilization],
    ) -> list[DeprovisioningRecommendation]:
        """
        Build recommendations for ghost and low-usage seats.

        Returns:
            Recommendations sorted by ascending utilization score
        """
        threshold = self.config.low_utilization_threshold
        recommendations = []

        for u in utilization:
            if u.classification == SeatClassification.GHOST:
                reason = (
                    f"No activity for {u.days_since_last_active:.0f} days "
                    f"(threshold {u.total_days_in_window} days)"
                )
            elif u.classification == SeatClassification.LOW_USAGE and u.score < threshold:
                reason = (
                    f"Utilization {u.score:.1f}% is below the "
                    f"{threshold:.0f}% low-usage threshold"
                )
            else:
                continue

            recommendations.append(
                DeprovisioningRecommendation(
                    seat_id=u.seat_id,
                    user_id=u.user_id,
                    utilization_score=u.score,
                    classification=u.classification,
                    reason=reason,
                    estimated_savings_per_month=self.config.cost_per_seat_cents,
                )
            )

        # Stable sort keeps registration order among equal scores
        recommendations.sort(key=lambda r: r.utilization_score)
        return recommendations
