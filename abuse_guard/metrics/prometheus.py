"""
Prometheus Metrics

Defines all metrics exposed by the abuse detection engine.
Metrics are write-only: nothing here feeds back into scoring.
"""

import logging

from prometheus_client import Counter, Histogram, Gauge, start_http_server

from ..config import settings

logger = logging.getLogger("abuse_guard.metrics")


class AbuseMetrics:
    """
    Container for all Prometheus metrics.

    Organized by category:
    - Analysis metrics
    - Signal metrics
    - Registry metrics
    """

    def __init__(self):
        """Initialize all metrics."""

        # =====================================================================
        # Analysis Metrics
        # =====================================================================
        self.analyses_total = Counter(
            "abuse_analyses_total",
            "Total number of analyses run",
            labelnames=["detector"],
        )

        self.risk_level_total = Counter(
            "abuse_risk_level_total",
            "Analyses by resulting overall risk level",
            labelnames=["detector", "risk_level"],
        )

        self.analysis_latency = Histogram(
            "abuse_analysis_latency_ms",
            "Analysis latency in milliseconds",
            labelnames=["detector"],
            buckets=[0.5, 1, 2, 5, 10, 25, 50, 100],
        )

        # =====================================================================
        # Signal Metrics
        # =====================================================================
        self.signals_total = Counter(
            "abuse_signals_total",
            "Signals generated by category and indicator",
            labelnames=["category", "indicator"],
        )

        self.false_positives_total = Counter(
            "abuse_false_positives_total",
            "Signals marked as false positives",
        )

        # =====================================================================
        # Registry Metrics
        # =====================================================================
        self.tracked_sessions = Gauge(
            "abuse_tracked_sessions",
            "Session records currently held in memory",
        )

        self.tracked_seats = Gauge(
            "abuse_tracked_seats",
            "Seat assignments currently held in memory",
        )


# Global metrics instance
metrics = AbuseMetrics()


def setup_metrics() -> None:
    """
    Setup Prometheus metrics server.

    Starts HTTP server on configured port to expose metrics.
    """
    if settings.metrics_enabled:
        try:
            start_http_server(settings.metrics_port)
            logger.info("Metrics server started on port %d", settings.metrics_port)
        except OSError as e:
            logger.warning("Failed to start metrics server: %s", e)


def record_analysis(detector: str, risk_level: str, signals, latency_ms: float) -> None:
    """
    Record one completed analysis.

    Args:
        detector: "sharing" or "seat_abuse"
        risk_level: Overall risk value
        signals: Signals produced by the analysis
        latency_ms: Wall time spent analysing
    """
    metrics.analyses_total.labels(detector=detector).inc()
    metrics.risk_level_total.labels(detector=detector, risk_level=risk_level).inc()
    metrics.analysis_latency.labels(detector=detector).observe(latency_ms)
    for signal in signals:
        metrics.signals_total.labels(
            category=signal.category.value,
            indicator=signal.indicator_type.value,
        ).inc()
