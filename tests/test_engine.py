"""
Abuse Engine Tests

Tests for combined account checks, plan tiers, report storage,
false-positive handling and configuration loading.
"""

import pytest

from abuse_guard.config import InvalidConfigError
from abuse_guard.engine import AbuseEngine, DetectorKind, EngineConfig, create_abuse_engine
from abuse_guard.schemas import (
    AccountCheckRequest,
    EnforcementAction,
    IndicatorType,
    RiskLevel,
)

NEW_YORK = (40.7128, -74.0060)
LONDON = (51.5074, -0.1278)


@pytest.fixture
def engine(clock):
    return AbuseEngine(EngineConfig(enabled=True), clock=clock)


def request_for(subscription_id: str = "sub_001", plan_tier: str = "professional", **kwargs):
    return AccountCheckRequest(
        account_id=kwargs.get("account_id", f"acct_{subscription_id}"),
        subscription_id=subscription_id,
        workspace_id=kwargs.get("workspace_id", "ws_001"),
        user_id=kwargs.get("user_id", "user_001"),
        plan_tier=plan_tier,
    )


def add_sessions(engine, session_factory, count, subscription_id="sub_001"):
    for i in range(count):
        engine.register_session(session_factory(f"sess_{i}", subscription_id=subscription_id))


@pytest.mark.sanity
@pytest.mark.unit
class TestCheckAccount:
    """Tests for the combined account check."""

    def test_clean_account(self, engine, clock):
        report = engine.check_account(request_for())

        assert report.id.startswith("rpt_")
        assert report.risk_level == RiskLevel.LOW
        assert report.recommended_action == EnforcementAction.NONE
        assert report.signals == []
        assert report.sharing_analysis is not None
        assert report.seat_analysis is not None
        assert report.created_at == clock.now
        assert report.audit_trail[0].action == "abuse_check_completed"
        assert engine.get_report(report.id) == report

    def test_free_tier_stricter(self, engine, session_factory):
        add_sessions(engine, session_factory, 2)

        free = engine.check_account(request_for(plan_tier="free"))
        pro = engine.check_account(request_for(plan_tier="professional"))

        assert free.risk_level == RiskLevel.MEDIUM
        assert free.recommended_action == EnforcementAction.WARN
        assert pro.risk_level == RiskLevel.LOW

    def test_unknown_tier_uses_default(self, engine):
        assert engine.get_plan_config("platinum") == engine.config.default_config
        assert engine.get_sharing_detector("platinum") is engine.get_sharing_detector(None)

    def test_sharing_and_seat_signals_combined(self, engine, session_factory, seat_factory):
        add_sessions(engine, session_factory, 7)
        engine.register_seat(seat_factory("seat_1"))
        for i in range(2, 5):
            engine.register_seat(seat_factory(f"seat_{i}", inactive_days=45))

        report = engine.check_account(request_for())

        indicators = {s.indicator_type for s in report.signals}
        assert indicators == {IndicatorType.CONCURRENT_SESSIONS, IndicatorType.GHOST_SEAT}
        assert report.risk_level == RiskLevel.CRITICAL
        assert report.recommended_action == EnforcementAction.SUSPEND
        assert report.seat_analysis.potential_monthly_savings_cents == 4500

    def test_grace_caps_sharing_only(self, engine, session_factory):
        add_sessions(engine, session_factory, 7)
        engine.grace.start("sub_001")

        report = engine.check_account(request_for())

        assert report.risk_level == RiskLevel.HIGH
        assert report.recommended_action == EnforcementAction.WARN
        assert report.sharing_analysis.in_grace_period

    def test_grace_does_not_hide_seat_abuse(
        self, engine, session_factory, seat_factory, reassignment_factory
    ):
        add_sessions(engine, session_factory, 7)
        engine.register_seat(seat_factory("seat_1"))
        for days_ago in range(1, 6):
            engine.record_reassignment(reassignment_factory("seat_1", days_ago))
        engine.grace.start("sub_001")

        report = engine.check_account(request_for())

        assert report.risk_level == RiskLevel.CRITICAL
        assert report.recommended_action == EnforcementAction.THROTTLE

    def test_only_enabled_categories_run(self, clock, session_factory):
        engine = AbuseEngine(
            EngineConfig(enabled=True, enabled_categories={DetectorKind.SHARING}),
            clock=clock,
        )
        add_sessions(engine, session_factory, 4)

        report = engine.check_account(request_for())

        assert report.seat_analysis is None
        assert report.sharing_analysis.active_session_count == 4
        assert report.audit_trail[0].details["categories"] == ["sharing"]

    def test_disabled_engine_returns_empty_report(self, clock, session_factory):
        engine = AbuseEngine(EngineConfig(enabled=False), clock=clock)
        add_sessions(engine, session_factory, 10)

        report = engine.check_account(request_for())

        assert report.signals == []
        assert report.risk_level == RiskLevel.LOW
        assert report.sharing_analysis is None
        assert engine.get_report(report.id) is None


class TestBatchScan:

    def test_counts_flagged_accounts(self, engine, session_factory):
        add_sessions(engine, session_factory, 7, subscription_id="sub_bad")

        result = engine.batch_scan([
            request_for("sub_bad"),
            request_for("sub_good"),
            request_for("sub_other"),
        ])

        assert result.total_accounts == 3
        assert result.flagged_accounts == 1
        assert [r.subscription_id for r in result.reports] == ["sub_bad", "sub_good", "sub_other"]

    def test_empty_batch(self, engine):
        result = engine.batch_scan([])
        assert result.total_accounts == 0
        assert result.flagged_accounts == 0


class TestReports:

    def test_reports_for_account(self, engine):
        engine.check_account(request_for("sub_a"))
        engine.check_account(request_for("sub_a"))
        engine.check_account(request_for("sub_b"))

        assert len(engine.get_reports_for_account("acct_sub_a")) == 2
        assert engine.get_reports_for_account("acct_unknown") == []

    def test_oldest_reports_evicted(self, clock):
        engine = AbuseEngine(EngineConfig(enabled=True, max_stored_reports=2), clock=clock)

        first = engine.check_account(request_for())
        engine.check_account(request_for())
        engine.check_account(request_for())

        assert engine.get_report(first.id) is None
        assert len(engine.get_reports_for_account("acct_sub_001")) == 2

    def test_unknown_report(self, engine):
        assert engine.get_report("rpt_missing") is None


class TestFalsePositives:
    """Tests for false-positive marking and suppression."""

    @pytest.fixture
    def flagged(self, engine, session_factory):
        add_sessions(engine, session_factory, 7)
        engine.register_session(session_factory("ny", coords=NEW_YORK))
        engine.register_session(session_factory("ldn", coords=LONDON))
        return engine.check_account(request_for())

    def test_mark_and_suppress(self, engine, flagged, clock):
        concurrent = next(
            s for s in flagged.signals
            if s.indicator_type == IndicatorType.CONCURRENT_SESSIONS
        )

        assert engine.mark_false_positive(concurrent.id)

        stored = engine.get_report(flagged.id)
        marked = next(s for s in stored.signals if s.id == concurrent.id)
        assert marked.is_false_positive

        clock.advance(60_000)
        recheck = engine.check_account(request_for())

        assert [s.indicator_type for s in recheck.signals] == [IndicatorType.GEOGRAPHIC_IMPOSSIBILITY]
        assert recheck.risk_level == RiskLevel.HIGH
        assert recheck.audit_trail[0].details["suppressed_false_positives"] == 1

    def test_unknown_signal(self, engine, flagged):
        assert not engine.mark_false_positive("sig_unknown")

    def test_false_positive_rate(self, engine, flagged):
        assert engine.get_false_positive_rate().rate == 0.0

        engine.mark_false_positive(flagged.signals[0].id)
        engine.mark_false_positive(flagged.signals[0].id)

        rate = engine.get_false_positive_rate()
        assert rate.total == 2
        assert rate.false_positives == 1
        assert rate.rate == pytest.approx(0.5)

    def test_rate_with_no_signals(self, engine):
        rate = engine.get_false_positive_rate()
        assert rate.total == 0
        assert rate.rate == 0.0


class TestEngineConfig:

    def test_update_plan_configs(self, engine, session_factory):
        add_sessions(engine, session_factory, 3)
        engine.check_account(request_for(plan_tier="team"))

        engine.update_config({
            "plan_configs": {"team": {"sharing": {"max_concurrent_sessions": 2}}},
        })

        assert engine.get_plan_config("team").sharing.max_concurrent_sessions == 2
        report = engine.check_account(request_for(plan_tier="team"))
        assert report.risk_level == RiskLevel.MEDIUM

    @pytest.mark.parametrize("partial", [
        {"max_stored_reports": 0},
        {"enabled_categories": ["payments"]},
        {"plan_configs": {"team": {"sharing": {"max_unique_devices": -1}}}},
        {"unknown_option": True},
    ])
    def test_invalid_update_rejected(self, engine, partial):
        before = engine.get_config()
        with pytest.raises(InvalidConfigError):
            engine.update_config(partial)
        assert engine.get_config() == before

    def test_load_plan_configs(self, engine, tmp_path):
        path = tmp_path / "plans.yaml"
        path.write_text(
            "enterprise:\n"
            "  sharing:\n"
            "    max_concurrent_sessions: 10\n"
            "  seat_abuse:\n"
            "    ghost_seat_threshold_days: 60\n"
        )

        assert engine.load_plan_configs(path)

        enterprise = engine.get_plan_config("enterprise")
        assert enterprise.sharing.max_concurrent_sessions == 10
        assert enterprise.seat_abuse.ghost_seat_threshold_days == 60
        assert engine.get_plan_config("free").sharing.max_concurrent_sessions == 1

    def test_invalid_plan_file_keeps_config(self, engine, tmp_path):
        path = tmp_path / "plans.yaml"
        path.write_text("free:\n  sharing:\n    max_concurrent_sessions: -5\n")
        before = engine.get_config()

        assert not engine.load_plan_configs(path)
        assert engine.get_config() == before

    def test_missing_plan_file(self, engine, tmp_path):
        assert not engine.load_plan_configs(tmp_path / "absent.yaml")

    def test_plan_file_loaded_on_construction(self, clock, tmp_path):
        path = tmp_path / "plans.yaml"
        path.write_text("team:\n  sharing:\n    max_concurrent_sessions: 2\n")

        engine = AbuseEngine(EngineConfig(enabled=True), clock=clock, plan_config_path=path)

        assert engine.get_plan_config("team").sharing.max_concurrent_sessions == 2


class TestEngineLifecycle:

    def test_clear(self, engine, session_factory, seat_factory):
        add_sessions(engine, session_factory, 7)
        engine.register_seat(seat_factory("seat_1"))
        report = engine.check_account(request_for())
        engine.mark_false_positive(report.signals[0].id)

        engine.clear()

        assert engine.sessions.count() == 0
        assert engine.seats.count() == 0
        assert engine.get_report(report.id) is None
        assert engine.get_false_positive_rate().total == 0

    def test_factory_returns_independent_engines(self, clock):
        a = create_abuse_engine(EngineConfig(enabled=True), clock=clock)
        b = create_abuse_engine(EngineConfig(enabled=True), clock=clock)

        assert a is not b
        assert a.sessions is not b.sessions


class TestQuickCheck:
    """Tests for single-detector checks."""

    def test_sharing_only(self, engine, session_factory):
        add_sessions(engine, session_factory, 7)

        result = engine.quick_check("sharing", request_for())

        assert result.category == "sharing"
        assert result.risk_level == RiskLevel.HIGH
        assert [s.indicator_type for s in result.signals] == [IndicatorType.CONCURRENT_SESSIONS]
        assert engine.get_reports() == []

    def test_seat_abuse_only(self, engine, session_factory, seat_factory):
        add_sessions(engine, session_factory, 7)
        for i in range(3):
            engine.register_seat(seat_factory(f"seat_{i}", inactive_days=45))

        result = engine.quick_check(DetectorKind.SEAT_ABUSE, request_for())

        assert result.category == "seat_abuse"
        assert result.risk_level == RiskLevel.MEDIUM
        assert all(s.indicator_type == IndicatorType.GHOST_SEAT for s in result.signals)

    def test_runs_even_when_category_disabled(self, clock, session_factory):
        engine = AbuseEngine(
            EngineConfig(enabled=True, enabled_categories={DetectorKind.SEAT_ABUSE}),
            clock=clock,
        )
        add_sessions(engine, session_factory, 7)

        assert engine.quick_check("sharing", request_for()).risk_level == RiskLevel.HIGH

    def test_unknown_category(self, engine):
        with pytest.raises(ValueError):
            engine.quick_check("payment_abuse", request_for())

    def test_false_positive_marks_apply(self, engine, session_factory):
        add_sessions(engine, session_factory, 7)
        report = engine.check_account(request_for())
        engine.mark_false_positive(report.signals[0].id)

        result = engine.quick_check("sharing", request_for())

        assert result.signals == []
        assert result.risk_level == RiskLevel.LOW


class TestReportQueries:
    """Tests for filtered report retrieval."""

    @pytest.fixture
    def populated(self, engine, session_factory, clock):
        add_sessions(engine, session_factory, 7, subscription_id="sub_bad")
        engine.check_account(request_for("sub_a", workspace_id="ws_a"))
        clock.advance(1000)
        engine.check_account(request_for("sub_bad", workspace_id="ws_b"))
        clock.advance(1000)
        engine.check_account(request_for("sub_a", workspace_id="ws_a"))
        return engine

    def test_newest_first(self, populated):
        reports = populated.get_reports()

        assert len(reports) == 3
        created = [r.created_at for r in reports]
        assert created == sorted(created, reverse=True)

    def test_same_timestamp_newest_first(self, engine):
        first = engine.check_account(request_for("sub_a"))
        second = engine.check_account(request_for("sub_b"))

        assert [r.id for r in engine.get_reports()] == [second.id, first.id]

    def test_filter_by_account(self, populated):
        reports = populated.get_reports(account_id="acct_sub_a")
        assert len(reports) == 2
        assert all(r.account_id == "acct_sub_a" for r in reports)

    def test_filter_by_workspace(self, populated):
        assert [r.subscription_id for r in populated.get_reports(workspace_id="ws_b")] == ["sub_bad"]

    def test_filter_by_risk_level(self, populated):
        assert len(populated.get_reports(risk_level=RiskLevel.LOW)) == 2
        assert len(populated.get_reports(risk_level="high")) == 1
        assert populated.get_reports(risk_level="critical") == []

    def test_limit(self, populated):
        reports = populated.get_reports(limit=2)
        assert len(reports) == 2
        assert reports[0].created_at >= reports[1].created_at

    def test_filters_combine(self, populated):
        assert populated.get_reports(account_id="acct_sub_a", risk_level="high") == []


class TestRiskDistribution:

    def test_every_level_present(self, engine):
        result = engine.batch_scan([request_for()])

        assert set(result.risk_distribution) == set(RiskLevel)
        assert result.risk_distribution[RiskLevel.LOW] == 1

    def test_counts(self, engine, session_factory):
        add_sessions(engine, session_factory, 7, subscription_id="sub_bad")
        add_sessions(engine, session_factory, 4, subscription_id="sub_warn")

        result = engine.batch_scan([
            request_for("sub_bad"),
            request_for("sub_warn"),
            request_for("sub_ok"),
        ])

        assert result.risk_distribution == {
            RiskLevel.LOW: 1,
            RiskLevel.MEDIUM: 1,
            RiskLevel.HIGH: 1,
            RiskLevel.CRITICAL: 0,
        }
        assert result.flagged_accounts == 2

    def test_empty_batch(self, engine):
        assert engine.batch_scan([]).risk_distribution == {level: 0 for level in RiskLevel}


class TestSuppressedAnalyses:
    """Marked signals are removed from the nested analyses as well."""

    @pytest.fixture
    def marked(self, engine, session_factory):
        add_sessions(engine, session_factory, 7)
        engine.register_session(session_factory("ny", coords=NEW_YORK))
        engine.register_session(session_factory("ldn", coords=LONDON))
        first = engine.check_account(request_for())
        concurrent = next(
            s for s in first.signals
            if s.indicator_type == IndicatorType.CONCURRENT_SESSIONS
        )
        engine.mark_false_positive(concurrent.id)
        return first, concurrent

    def test_nested_sharing_analysis_filtered(self, engine, marked):
        _, concurrent = marked

        report = engine.check_account(request_for())

        nested = report.sharing_analysis
        assert all(s.id != concurrent.id for s in nested.signals)
        assert nested.overall_risk == RiskLevel.HIGH
        assert nested.recommended_action == EnforcementAction.THROTTLE
        assert nested.overall_risk == report.risk_level

    def test_stored_report_nested_signal_flagged(self, engine, marked):
        first, concurrent = marked

        stored = engine.get_report(first.id)

        nested = next(s for s in stored.sharing_analysis.signals if s.id == concurrent.id)
        assert nested.is_false_positive


class TestSignalRetention:
    """Signal ids and false-positive marks are bounded by stored reports."""

    def test_seen_ids_bounded(self, clock, session_factory):
        engine = AbuseEngine(EngineConfig(enabled=True, max_stored_reports=2), clock=clock)

        for n in range(50):
            add_sessions(engine, session_factory, 5, subscription_id=f"sub_{n}")
            engine.check_account(request_for(f"sub_{n}"))

        rate = engine.get_false_positive_rate()
        assert len(engine.get_reports()) == 2
        assert rate.total == 2

    def test_mark_forgotten_with_last_report(self, clock, session_factory):
        engine = AbuseEngine(EngineConfig(enabled=True, max_stored_reports=1), clock=clock)
        add_sessions(engine, session_factory, 7, subscription_id="sub_a")
        report = engine.check_account(request_for("sub_a"))
        signal_id = report.signals[0].id
        engine.mark_false_positive(signal_id)

        engine.check_account(request_for("sub_clean"))

        assert engine.get_false_positive_rate().false_positives == 0
        assert not engine.mark_false_positive(signal_id)

    def test_mark_kept_while_still_detected(self, clock, session_factory):
        engine = AbuseEngine(EngineConfig(enabled=True, max_stored_reports=1), clock=clock)
        add_sessions(engine, session_factory, 7, subscription_id="sub_a")
        report = engine.check_account(request_for("sub_a"))
        engine.mark_false_positive(report.signals[0].id)

        engine.check_account(request_for("sub_a"))
        latest = engine.check_account(request_for("sub_a"))

        assert latest.signals == []
        assert engine.get_false_positive_rate().false_positives == 1
