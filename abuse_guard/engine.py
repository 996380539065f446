"""
Abuse Engine

Facade over the sharing and seat-abuse detectors. Ingests telemetry
once into shared registries, runs the detectors enabled for an
account with its plan tier's thresholds, and produces a combined
report.

Check flow:
1. Pick thresholds for the plan tier (default bundle if unconfigured)
2. Run enabled detectors over the shared registries
3. Drop signals marked as false positives (report and nested analyses)
4. Aggregate risk with the shared rules, map to an enforcement action
5. Attach an audit entry and keep the report for retrieval

The engine recommends; it never enforces.
"""

import logging
import threading
from collections import Counter, OrderedDict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union
from uuid import uuid4

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import (
    AntiSharingConfig,
    InvalidConfigError,
    PlanConfig,
    settings,
)
from .detection import (
    AntiSharingDetector,
    GracePeriodTracker,
    SeatAbuseDetector,
    SeatRegistry,
    SessionRegistry,
)
from .metrics import metrics
from .schemas import (
    AbuseReport,
    AccountCheckRequest,
    AuditEntry,
    BatchScanResult,
    FalsePositiveRate,
    QuickCheckResult,
    RiskLevel,
    SeatAbuseAnalysis,
    SeatAssignment,
    SeatReassignment,
    SessionRecord,
    SharingAnalysis,
    SignalCategory,
)
from .scoring.risk import aggregate_risk, recommend_action
from .utils.clock import now_ms
logger = logging.getLogger("abuse_guard.engine")

_DEFAULT_TIER = "__default__"


class DetectorKind(str, Enum):
    SHARING = "sharing"
    SEAT_ABUSE = "seat_abuse"


def _default_plan_configs() -> dict[str, PlanConfig]:
    # Free plans are single-seat, single-session
    return {
        "free": PlanConfig(sharing=AntiSharingConfig(max_concurrent_sessions=1)),
    }


class EngineConfig(BaseModel):
    """Engine-wide switches and per-plan-tier thresholds."""
    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(
        default_factory=lambda: settings.abuse_engine_enabled,
        description="Disabled engines return empty reports",
    )
    enabled_categories: set[DetectorKind] = Field(
        default_factory=lambda: {DetectorKind.SHARING, DetectorKind.SEAT_ABUSE},
    )
    default_config: PlanConfig = Field(default_factory=PlanConfig)
    plan_configs: dict[str, PlanConfig] = Field(default_factory=_default_plan_configs)
    max_stored_reports: int = Field(
        default_factory=lambda: settings.abuse_max_stored_reports,
        ge=1,
    )


class AbuseEngine:
    """
    Combined abuse checks for accounts.

    Owns the registries and grace tracker; per-tier detectors are
    built lazily and share them.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        plan_config_path: Optional[Path] = None,
    ):
        """
        Initialize engine.

        Args:
            config: Engine configuration (defaults if None)
            clock: Epoch-ms clock (wall clock if None)
            plan_config_path: YAML file with plan-tier overrides (optional)
        """
        self.config = config or EngineConfig()
        self.clock = clock or now_ms
        self.sessions = SessionRegistry()
        self.seats = SeatRegistry()
        self.grace = GracePeriodTracker(
            self.config.default_config.sharing.grace_period_ms,
            clock=self.clock,
        )
        self.plan_config_path = plan_config_path

        self._sharing_detectors: dict[str, AntiSharingDetector] = {}
        self._seat_detectors: dict[str, SeatAbuseDetector] = {}
        self._reports: OrderedDict[str, AbuseReport] = OrderedDict()
        self._false_positive_ids: set[str] = set()
        # Detector signal ids per stored report, and how many stored reports hold each id
        self._report_signal_ids: dict[str, frozenset[str]] = {}
        self._signal_refs: Counter[str] = Counter()
        self._lock = threading.RLock()

        if plan_config_path and plan_config_path.exists():
            self.load_plan_configs(plan_config_path)

    # =========================================================================
    # Detectors
    # =========================================================================

    def _tier_key(self, plan_tier: Optional[str]) -> str:
        return plan_tier if plan_tier in self.config.plan_configs else _DEFAULT_TIER

    def get_plan_config(self, plan_tier: Optional[str]) -> PlanConfig:
        """Thresholds for a tier; the default bundle for unknown tiers."""
        plan = self.config.plan_configs.get(plan_tier, self.config.default_config)
        return plan.model_copy(deep=True)

    def get_sharing_detector(self, plan_tier: Optional[str] = None) -> AntiSharingDetector:
        key = self._tier_key(plan_tier)
        with self._lock:
            detector = self._sharing_detectors.get(key)
            if detector is None:
                detector = AntiSharingDetector(
                    config=self.get_plan_config(plan_tier).sharing,
                    registry=self.sessions,
                    grace_tracker=self.grace,
                    clock=self.clock,
                )
                self._sharing_detectors[key] = detector
        return detector

    def get_seat_detector(self, plan_tier: Optional[str] = None) -> SeatAbuseDetector:
        key = self._tier_key(plan_tier)
        with self._lock:
            detector = self._seat_detectors.get(key)
            if detector is None:
                detector = SeatAbuseDetector(
                    config=self.get_plan_config(plan_tier).seat_abuse,
                    registry=self.seats,
                    clock=self.clock,
                )
                self._seat_detectors[key] = detector
        return detector

    def _reset_detectors(self) -> None:
        with self._lock:
            self._sharing_detectors.clear()
            self._seat_detectors.clear()

    # =========================================================================
    # Ingestion
    # =========================================================================

    def register_session(self, record: SessionRecord) -> None:
        self.get_sharing_detector().register_session(record)

    def remove_session(self, subscription_id: str, session_id: str) -> None:
        self.get_sharing_detector().remove_session(subscription_id, session_id)

    def register_seat(self, assignment: SeatAssignment) -> None:
        self.get_seat_detector().register_seat(assignment)

    def record_reassignment(self, reassignment: SeatReassignment) -> None:
        self.get_seat_detector().record_reassignment(reassignment)

    # =========================================================================
    # Checks
    # =========================================================================

    def _analyze(
        self,
        request: AccountCheckRequest,
        categories: set[DetectorKind],
    ) -> tuple[Optional[SharingAnalysis], Optional[SeatAbuseAnalysis]]:
        sharing_analysis = None
        seat_analysis = None
        if DetectorKind.SHARING in categories:
            sharing_analysis = self.get_sharing_detector(request.plan_tier).analyze(
                request.subscription_id, request.user_id
            )
        if DetectorKind.SEAT_ABUSE in categories:
            seat_analysis = self.get_seat_detector(request.plan_tier).analyze(
                request.subscription_id, request.workspace_id
            )
        return sharing_analysis, seat_analysis

    @staticmethod
    def _suppress(
        analysis: Optional[Union[SharingAnalysis, SeatAbuseAnalysis]],
        false_positives: set[str],
    ) -> Optional[Union[SharingAnalysis, SeatAbuseAnalysis]]:
        """Drop marked signals from an analysis and re-derive its risk and action."""
        if analysis is None:
            return None
        kept = [s for s in analysis.signals if s.id not in false_positives]
        if len(kept) == len(analysis.signals):
            return analysis

        risk = aggregate_risk(kept)
        in_grace = getattr(analysis, "in_grace_period", False)
        return analysis.model_copy(update={
            "signals": kept,
            "overall_risk": risk,
            "recommended_action": recommend_action(risk, in_grace_period=in_grace),
        })

    def check_account(self, request: AccountCheckRequest) -> AbuseReport:
        """
        Run the enabled detectors for one account.

        Signals marked as false positives are removed from the report and
        from its nested analyses, whose risk and action are re-derived.
        Per-seat facts (utilization, ghost/shared/hopping seats) are kept.

        Args:
            request: Account identifiers and plan tier

        Returns:
            AbuseReport (stored for later retrieval unless the engine is disabled)
        """
        now = self.clock()
        report_id = f"rpt_{uuid4().hex[:16]}"

        if not self.config.enabled:
            return AbuseReport(
                id=report_id,
                account_id=request.account_id,
                subscription_id=request.subscription_id,
                workspace_id=request.workspace_id,
                user_id=request.user_id,
                plan_tier=request.plan_tier,
                created_at=now,
            )

        categories = self.config.enabled_categories
        sharing_analysis, seat_analysis = self._analyze(request, categories)

        detected = [
            s for analysis in (sharing_analysis, seat_analysis) if analysis is not None
            for s in analysis.signals
        ]
        with self._lock:
            false_positives = set(self._false_positive_ids)
        sharing_analysis = self._suppress(sharing_analysis, false_positives)
        seat_analysis = self._suppress(seat_analysis, false_positives)

        signals = [s for s in detected if s.id not in false_positives]
        suppressed = len(detected) - len(signals)

        risk_level = aggregate_risk(signals)
        in_grace = sharing_analysis is not None and sharing_analysis.in_grace_period
        if in_grace:
            # Grace caps sharing only; seat findings still escalate
            seat_risk = aggregate_risk(
                s for s in signals if s.category != SignalCategory.SHARING
            )
            action = max(
                recommend_action(risk_level, in_grace_period=True),
                recommend_action(seat_risk),
                key=lambda a: a.severity,
            )
        else:
            action = recommend_action(risk_level)

        report = AbuseReport(
            id=report_id,
            account_id=request.account_id,
            subscription_id=request.subscription_id,
            workspace_id=request.workspace_id,
            user_id=request.user_id,
            plan_tier=request.plan_tier,
            signals=signals,
            risk_level=risk_level,
            recommended_action=action,
            sharing_analysis=sharing_analysis,
            seat_analysis=seat_analysis,
            audit_trail=[
                AuditEntry(
                    action="abuse_check_completed",
                    timestamp=now,
                    details={
                        "plan_tier": request.plan_tier,
                        "categories": sorted(c.value for c in categories),
                        "risk_level": risk_level.value,
                        "recommended_action": action.value,
                        "signal_count": len(signals),
                        "suppressed_false_positives": suppressed,
                    },
                )
            ],
            created_at=now,
        )
        self._store(report, frozenset(s.id for s in detected))

        if risk_level != RiskLevel.LOW:
            logger.info(
                "Account %s flagged %s (action=%s, %d signals)",
                request.account_id,
                risk_level.value,
                action.value,
                len(signals),
            )
        return report

    def quick_check(
        self,
        category: Union[DetectorKind, str],
        request: AccountCheckRequest,
    ) -> QuickCheckResult:
        """
        Run one detector without producing or storing a report.

        Ignores ``enabled_categories``; false-positive marks still apply.

        Raises:
            ValueError: unknown category
        """
        kind = DetectorKind(category)
        if not self.config.enabled:
            return QuickCheckResult(category=kind.value)

        sharing_analysis, seat_analysis = self._analyze(request, {kind})
        with self._lock:
            false_positives = set(self._false_positive_ids)
        analysis = self._suppress(sharing_analysis or seat_analysis, false_positives)
        return QuickCheckResult(
            category=kind.value,
            risk_level=analysis.overall_risk,
            signals=list(analysis.signals),
        )

    def batch_scan(self, requests: Iterable[AccountCheckRequest]) -> BatchScanResult:
        """Check several accounts; flagged = risk above LOW."""
        reports = [self.check_account(r) for r in requests]

        distribution = {level: 0 for level in RiskLevel}
        for report in reports:
            distribution[report.risk_level] += 1
        flagged = len(reports) - distribution[RiskLevel.LOW]

        logger.info("Batch scan: %d accounts, %d flagged", len(reports), flagged)
        return BatchScanResult(
            total_accounts=len(reports),
            flagged_accounts=flagged,
            reports=reports,
            risk_distribution=distribution,
        )

    # =========================================================================
    # Reports and false positives
    # =========================================================================

    def _store(self, report: AbuseReport, signal_ids: frozenset[str]) -> None:
        """
        Keep a report; evict the oldest beyond ``max_stored_reports``.

        Signal ids (and false-positive marks) live only as long as a
        stored report holds them.
        """
        with self._lock:
            self._reports[report.id] = report
            self._report_signal_ids[report.id] = signal_ids
            self._signal_refs.update(signal_ids)

            while len(self._reports) > self.config.max_stored_reports:
                evicted_id, _ = self._reports.popitem(last=False)
                for signal_id in self._report_signal_ids.pop(evicted_id, ()):
                    self._signal_refs[signal_id] -= 1
                    if self._signal_refs[signal_id] <= 0:
                        del self._signal_refs[signal_id]
                        self._false_positive_ids.discard(signal_id)

    def get_report(self, report_id: str) -> Optional[AbuseReport]:
        with self._lock:
            return self._reports.get(report_id)

    def get_reports(
        self,
        account_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        risk_level: Optional[Union[RiskLevel, str]] = None,
        limit: Optional[int] = None,
    ) -> list[AbuseReport]:
        """
        Stored reports matching every given filter, newest first.

        Args:
            account_id: Only this account
            workspace_id: Only this workspace
            risk_level: Only reports at this overall risk
            limit: At most this many reports
        """
        level = RiskLevel(risk_level) if risk_level is not None else None
        with self._lock:
            reports = list(reversed(self._reports.values()))

        reports = [
            r for r in reports
            if (account_id is None or r.account_id == account_id)
            and (workspace_id is None or r.workspace_id == workspace_id)
            and (level is None or r.risk_level == level)
        ]
        # Stable: same-timestamp reports stay in reverse insertion order
        reports.sort(key=lambda r: r.created_at, reverse=True)
        if limit is not None:
            reports = reports[:max(limit, 0)]
        return reports

    def get_reports_for_account(self, account_id: str) -> list[AbuseReport]:
        return self.get_reports(account_id=account_id)

    def mark_false_positive(self, signal_id: str) -> bool:
        """
        Mark a detected signal as a false positive.

        Future checks drop signals with this id; stored reports get a
        flagged copy of the signal (their risk is left as reported).
        The mark is forgotten once no stored report holds the id.

        Returns:
            True if a stored report holds the signal
        """

        def flag(signals: list) -> list:
            return [
                s.model_copy(update={"is_false_positive": True}) if s.id == signal_id else s
                for s in signals
            ]

        with self._lock:
            if signal_id not in self._signal_refs:
                return False

            for report_id, report in self._reports.items():
                if signal_id not in self._report_signal_ids.get(report_id, ()):
                    continue
                update: dict[str, Any] = {"signals": flag(report.signals)}
                for name in ("sharing_analysis", "seat_analysis"):
                    analysis = getattr(report, name)
                    if analysis is not None:
                        update[name] = analysis.model_copy(
                            update={"signals": flag(analysis.signals)}
                        )
                self._reports[report_id] = report.model_copy(update=update)

            newly_marked = signal_id not in self._false_positive_ids
            self._false_positive_ids.add(signal_id)

        if newly_marked:
            metrics.false_positives_total.inc()
            logger.info("Signal %s marked as false positive", signal_id)
        return True

    def get_false_positive_rate(self) -> FalsePositiveRate:
        """Marked share of the distinct signal ids held by stored reports."""
        with self._lock:
            total = len(self._signal_refs)
            false_positives = len(self._false_positive_ids)
        return FalsePositiveRate(
            total=total,
            false_positives=false_positives,
            rate=false_positives / total if total else 0.0,
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_config(self) -> EngineConfig:
        return self.config.model_copy(deep=True)

    def update_config(self, partial: dict[str, Any]) -> EngineConfig:
        """
        Merge-overwrite engine configuration.

        Raises:
            InvalidConfigError: value fails validation
        """
        data = self.config.model_dump()
        data.update(partial)
        try:
            config = EngineConfig.model_validate(data)
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid EngineConfig update: {e}") from e

        self.config = config
        self._reset_detectors()
        logger.info("Engine config updated: %s", sorted(partial))
        return self.get_config()

    def load_plan_configs(self, path: Optional[Path] = None) -> bool:
        """
        Load plan-tier threshold overrides from YAML.

        Expected shape::

            free:
              sharing: {max_concurrent_sessions: 1}
            enterprise:
              seat_abuse: {ghost_seat_threshold_days: 60}

        A failed load keeps the current plan configs.

        Returns:
            True if load successful
        """
        path = path or self.plan_config_path
        if not path or not path.exists():
            return False

        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
            loaded = {tier: PlanConfig.model_validate(body or {}) for tier, body in raw.items()}
        except (OSError, yaml.YAMLError, ValidationError, AttributeError) as e:
            logger.error("Plan config load failed: %s", e)
            return False

        plan_configs = {**self.config.plan_configs, **loaded}
        self.config = self.config.model_copy(update={"plan_configs": plan_configs})
        self._reset_detectors()
        logger.info("Loaded plan configs for tiers: %s", sorted(loaded))
        return True

    def clear(self) -> None:
        """Drop all telemetry, grace periods, reports and false-positive marks."""
        self.get_sharing_detector().clear()
        self.get_seat_detector().clear()
        with self._lock:
            self._reports.clear()
            self._false_positive_ids.clear()
            self._report_signal_ids.clear()
            self._signal_refs.clear()


def create_abuse_engine(
    config: Optional[EngineConfig] = None,
    clock: Optional[Callable[[], int]] = None,
) -> AbuseEngine:
    """
    Build an engine wired to process settings.

    The host owns the returned instance; there is no module-level engine.
    """
    path = Path(settings.abuse_plan_config_path) if settings.abuse_plan_config_path else None
    return AbuseEngine(config=config, clock=clock, plan_config_path=path)
