"""
Account Sharing Detection

Detects credentials shared between several people:
1. Too many concurrent sessions
2. Too many distinct devices in a short window
3. Too many distinct IP addresses in a short window
4. Impossible travel between two sessions

Each check produces at most one signal per subscription (the geo
check produces one per impossible session pair). Signals are
aggregated with the shared risk rules; a caller-managed grace period
caps the recommended enforcement at WARN.
"""

import logging
import time
from typing import Any, Callable, Optional

from ..config import AntiSharingConfig
from ..metrics import metrics, record_analysis
from ..schemas import (
    AbuseSignal,
    EnforcementAction,
    GeographicAnomaly,
    IndicatorType,
    RiskLevel,
    SessionRecord,
    SharingAnalysis,
    SignalCategory,
)
from ..scoring.risk import aggregate_risk, recommend_action
from ..utils.clock import now_ms
from .fingerprint import average_pairwise_similarity
from .geo import find_geographic_anomalies
from .grace import GracePeriodTracker
from .registry import SessionRegistry
from .signals import build_signal

logger = logging.getLogger("abuse_guard.detection.sharing")

# Confidence model per check: base + excess * step, capped
CONCURRENT_BASE, CONCURRENT_STEP, CONCURRENT_CAP = 0.5, 0.15, 1.0
DEVICE_BASE, DEVICE_STEP, DEVICE_CAP = 0.5, 0.1, 1.0
IP_BASE, IP_STEP, IP_CAP = 0.4, 0.1, 0.95
GEO_CONFIDENCE = 0.95

# Excess at which a check escalates from MEDIUM to HIGH
CONCURRENT_HIGH_EXCESS = 3
IP_HIGH_EXCESS = 5

# Average fingerprint similarity below which devices look like different people
LOW_SIMILARITY_THRESHOLD = 0.3


class AntiSharingDetector:
    """
    Detects account/credential sharing for a subscription.

    Holds only in-memory session state. Registries, the grace tracker
    and the clock can be injected so several detectors (e.g. one per
    plan tier) share the same working state.
    """

    def __init__(
        self,
        config: Optional[AntiSharingConfig] = None,
        registry: Optional[SessionRegistry] = None,
        grace_tracker: Optional[GracePeriodTracker] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize detector.

        Args:
            config: Thresholds (defaults if None)
            registry: Session registry (a private one if None)
            grace_tracker: Grace period tracker (a private one if None)
            clock: Epoch-ms clock (wall clock if None)
        """
        self.config = config or AntiSharingConfig()
        self.clock = clock or now_ms
        self.registry = registry or SessionRegistry()
        self.grace = grace_tracker or GracePeriodTracker(
            self.config.grace_period_ms, clock=self.clock
        )

    # =========================================================================
    # Session management
    # =========================================================================

    def register_session(self, record: SessionRecord) -> None:
        """Insert or update a session (upsert by session id)."""
        self.registry.register(record)
        metrics.tracked_sessions.set(self.registry.count())

    def remove_session(self, subscription_id: str, session_id: str) -> None:
        self.registry.remove(subscription_id, session_id)
        metrics.tracked_sessions.set(self.registry.count())

    def get_active_sessions(self, subscription_id: str) -> list[SessionRecord]:
        return self.registry.get_active_sessions(subscription_id)

    # =========================================================================
    # Signal generators
    # =========================================================================

    def check_concurrent_sessions(
        self,
        subscription_id: str,
        user_id: str,
        sessions: list[SessionRecord],
        now: Optional[int] = None,
    ) -> Optional[AbuseSignal]:
        """
        Flag more active sessions than the plan allows.

        Signals under ``min_confidence`` are dropped.
        """
        limit = self.config.max_concurrent_sessions
        excess = len(sessions) - limit
        if excess <= 0:
            return None

        confidence = min(CONCURRENT_BASE + excess * CONCURRENT_STEP, CONCURRENT_CAP)
        if confidence < self.config.min_confidence:
            return None

        risk = RiskLevel.HIGH if excess >= CONCURRENT_HIGH_EXCESS else RiskLevel.MEDIUM
        return self._signal(
            IndicatorType.CONCURRENT_SESSIONS,
            risk,
            confidence,
            f"{len(sessions)} concurrent sessions (limit {limit})",
            subscription_id,
            user_id,
            now,
            {
                "active_sessions": len(sessions),
                "limit": limit,
                "excess": excess,
                "session_ids": sorted(s.session_id for s in sessions),
            },
        )

    def check_device_fingerprints(
        self,
        subscription_id: str,
        user_id: str,
        sessions: list[SessionRecord],
        now: Optional[int] = None,
    ) -> Optional[AbuseSignal]:
        """
        Flag too many distinct devices inside ``device_window_ms``.

        Risk is HIGH when the devices have little in common (average
        pairwise similarity under 0.3), i.e. they look like different
        people rather than one person on a few browsers.
        """
        now = self.clock() if now is None else now
        window_start = now - self.config.device_window_ms

        devices = {}
        for s in sessions:
            if s.last_active_at >= window_start:
                devices.setdefault(s.device_fingerprint.hash, s.device_fingerprint)

        limit = self.config.max_unique_devices
        excess = len(devices) - limit
        if excess <= 0:
            return None

        confidence = min(DEVICE_BASE + excess * DEVICE_STEP, DEVICE_CAP)
        similarity = average_pairwise_similarity(list(devices.values()))
        risk = RiskLevel.HIGH if similarity < LOW_SIMILARITY_THRESHOLD else RiskLevel.MEDIUM

        return self._signal(
            IndicatorType.DEVICE_FINGERPRINT_MISMATCH,
            risk,
            confidence,
            f"{len(devices)} distinct devices in window (limit {limit}), "
            f"average similarity {similarity:.2f}",
            subscription_id,
            user_id,
            now,
            {
                "unique_devices": len(devices),
                "limit": limit,
                "window_ms": self.config.device_window_ms,
                "average_similarity": round(similarity, 4),
                "device_hashes": sorted(devices),
            },
        )

    def check_ip_patterns(
        self,
        subscription_id: str,
        user_id: str,
        sessions: list[SessionRecord],
        now: Optional[int] = None,
    ) -> Optional[AbuseSignal]:
        """Flag too many distinct IP addresses inside ``ip_window_ms``."""
        now = self.clock() if now is None else now
        window_start = now - self.config.ip_window_ms

        ips = {s.ip_address for s in sessions if s.last_active_at >= window_start}

        limit = self.config.max_distinct_ips
        excess = len(ips) - limit
        if excess <= 0:
            return None

        confidence = min(IP_BASE + excess * IP_STEP, IP_CAP)
        risk = RiskLevel.HIGH if excess >= IP_HIGH_EXCESS else RiskLevel.MEDIUM

        return self._signal(
            IndicatorType.IP_PATTERN_ANOMALY,
            risk,
            confidence,
            f"{len(ips)} distinct IP addresses in window (limit {limit})",
            subscription_id,
            user_id,
            now,
            {
                "distinct_ips": len(ips),
                "limit": limit,
                "window_ms": self.config.ip_window_ms,
                "ip_addresses": sorted(ips),
            },
        )

    def check_geographic_impossibility(
        self,
        sessions: list[SessionRecord],
    ) -> list[GeographicAnomaly]:
        """
        Compare every pair of located sessions.

        Returns:
            All compared pairs, each annotated with ``is_impossible``
        """
        return find_geographic_anomalies(sessions, self.config.max_plausible_speed_kmh)

    def geographic_signals(
        self,
        subscription_id: str,
        user_id: str,
        anomalies: list[GeographicAnomaly],
        now: Optional[int] = None,
    ) -> list[AbuseSignal]:
        """One HIGH signal per impossible anomaly."""
        signals = []
        for anomaly in anomalies:
            if not anomaly.is_impossible:
                continue
            route = " -> ".join(
                loc or "unknown" for loc in (anomaly.location_a, anomaly.location_b)
            )
            signals.append(
                self._signal(
                    IndicatorType.GEOGRAPHIC_IMPOSSIBILITY,
                    RiskLevel.HIGH,
                    GEO_CONFIDENCE,
                    f"Impossible travel {route}: {anomaly.distance_km:.0f} km "
                    f"in {anomaly.time_delta_minutes:.1f} min",
                    subscription_id,
                    user_id,
                    now,
                    {
                        "session_ids": [anomaly.session_a_id, anomaly.session_b_id],
                        "distance_km": round(anomaly.distance_km, 1),
                        "time_delta_minutes": round(anomaly.time_delta_minutes, 2),
                        "required_speed_kmh": round(anomaly.required_speed_kmh, 1),
                        "max_plausible_speed_kmh": self.config.max_plausible_speed_kmh,
                    },
                )
            )
        return signals

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze(self, subscription_id: str, user_id: str) -> SharingAnalysis:
        """
        Run every sharing check over the subscription's active sessions.

        Pure with respect to registry, config and grace state: calling
        twice at the same clock reading returns equal results.

        Args:
            subscription_id: Subscription to analyze
            user_id: Account owner (recorded on signals)

        Returns:
            SharingAnalysis
        """
        started = time.perf_counter()
        now = self.clock()
        sessions = self.get_active_sessions(subscription_id)

        signals: list[AbuseSignal] = []
        for check in (
            self.check_concurrent_sessions,
            self.check_device_fingerprints,
            self.check_ip_patterns,
        ):
            signal = check(subscription_id, user_id, sessions, now=now)
            if signal is not None:
                signals.append(signal)

        anomalies = self.check_geographic_impossibility(sessions)
        signals.extend(self.geographic_signals(subscription_id, user_id, anomalies, now=now))

        overall_risk = aggregate_risk(signals)
        in_grace = self.is_in_grace_period(subscription_id)
        action = recommend_action(overall_risk, in_grace_period=in_grace)

        analysis = SharingAnalysis(
            subscription_id=subscription_id,
            user_id=user_id,
            active_session_count=len(sessions),
            unique_device_count=len({s.device_fingerprint.hash for s in sessions}),
            distinct_ip_count=len({s.ip_address for s in sessions}),
            geographic_anomalies=anomalies,
            signals=signals,
            overall_risk=overall_risk,
            recommended_action=action,
            in_grace_period=in_grace,
            analyzed_at=now,
        )

        if overall_risk != RiskLevel.LOW:
            logger.info(
                "Sharing risk %s for subscription %s (%d signals, action=%s)",
                overall_risk.value,
                subscription_id,
                len(signals),
                action.value,
            )
        record_analysis(
            "sharing",
            overall_risk.value,
            signals,
            (time.perf_counter() - started) * 1000,
        )
        return analysis

    def get_recommended_action(
        self,
        risk: RiskLevel,
        subscription_id: str,
    ) -> EnforcementAction:
        """Enforcement for ``risk``, capped at WARN during a grace period."""
        return recommend_action(risk, in_grace_period=self.is_in_grace_period(subscription_id))

    # =========================================================================
    # Grace period
    # =========================================================================

    def is_in_grace_period(self, subscription_id: str) -> bool:
        return self.grace.is_active(subscription_id, self.config.grace_period_ms)

    def start_grace_period(self, subscription_id: str) -> None:
        self.grace.start(subscription_id)

    def clear_grace_period(self, subscription_id: str) -> None:
        self.grace.clear(subscription_id)

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_config(self) -> AntiSharingConfig:
        return self.config.model_copy()

    def update_config(self, partial: dict[str, Any]) -> AntiSharingConfig:
        """
        Merge-overwrite thresholds.

        Raises:
            InvalidConfigError: unknown key or out-of-range value
        """
        self.config = self.config.merge(partial)
        logger.info("Anti-sharing config updated: %s", sorted(partial))
        return self.get_config()

    def clear(self) -> None:
        """Drop all sessions and grace periods."""
        self.registry.clear()
        self.grace.reset()
        metrics.tracked_sessions.set(0)

    def _signal(
        self,
        indicator_type: IndicatorType,
        risk_level: RiskLevel,
        confidence: float,
        description: str,
        subscription_id: str,
        user_id: str,
        now: Optional[int],
        evidence: dict[str, Any],
    ) -> AbuseSignal:
        return build_signal(
            category=SignalCategory.SHARING,
            indicator_type=indicator_type,
            risk_level=risk_level,
            confidence=confidence,
            description=description,
            account_id=user_id,
            workspace_id=subscription_id,
            detected_at=self.clock() if now is None else now,
            evidence=evidence,
        )
