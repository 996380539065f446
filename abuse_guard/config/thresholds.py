"""
Detection Thresholds

Named thresholds for the anti-sharing and seat-abuse detectors.
Defaults are a fixed contract: tests and downstream dashboards rely
on them, so change them only together with the tests.

Thresholds can be tuned at runtime through ``merge`` (merge-overwrite
of a partial dict, re-validated as a whole).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class InvalidConfigError(ValueError):
    """Raised when a threshold update fails validation."""
    pass


class _ThresholdModel(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    def merge(self, partial: dict[str, Any]) -> "_ThresholdModel":
        """
        Return a copy with ``partial`` applied on top of current values.

        Raises:
            InvalidConfigError: unknown key or out-of-range value
        """
        data = self.model_dump()
        data.update(partial)
        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            raise InvalidConfigError(
                f"Invalid {type(self).__name__} update: {e}"
            ) from e


class AntiSharingConfig(_ThresholdModel):
    """Thresholds for account/credential sharing detection."""

    max_concurrent_sessions: int = Field(
        default=3,
        ge=0,
        description="Active sessions allowed before the concurrency check fires",
    )
    max_unique_devices: int = Field(
        default=5,
        ge=0,
        description="Distinct device fingerprints allowed inside device_window_ms",
    )
    device_window_ms: int = Field(
        default=24 * 60 * 60 * 1000,  # 24 hours
        gt=0,
        description="Look-back window for device diversity",
    )
    max_distinct_ips: int = Field(
        default=10,
        ge=0,
        description="Distinct IP addresses allowed inside ip_window_ms",
    )
    ip_window_ms: int = Field(
        default=60 * 60 * 1000,  # 1 hour
        gt=0,
        description="Look-back window for IP diversity",
    )
    max_plausible_speed_kmh: float = Field(
        default=900.0,  # commercial air travel
        gt=0.0,
        description="Travel speed above which two sessions are physically impossible",
    )
    min_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Concurrent-session signals below this confidence are dropped",
    )
    grace_period_ms: int = Field(
        default=7 * 24 * 60 * 60 * 1000,  # 7 days
        gt=0,
        description="Cooldown after first violation during which only WARN is recommended",
    )


class SeatAbuseConfig(_ThresholdModel):
    """Thresholds for seat abuse detection."""

    ghost_seat_threshold_days: int = Field(
        default=30,
        gt=0,
        description="Days without activity after which a seat is a ghost",
    )
    max_devices_per_seat: int = Field(
        default=3,
        ge=0,
        description="Devices per seat before it is considered shared",
    )
    max_ips_per_seat: int = Field(
        default=5,
        ge=0,
        description="IP addresses per seat before it is considered shared",
    )
    max_locations_per_seat: int = Field(
        default=3,
        ge=0,
        description="Distinct locations per seat before it is considered shared",
    )
    low_utilization_threshold: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="Utilization score (0-100) below which a seat is low usage",
    )
    reassignment_window_ms: int = Field(
        default=30 * 24 * 60 * 60 * 1000,  # 30 days
        gt=0,
        description="Sliding window (ending now) for counting reassignments",
    )
    max_reassignments_per_window: int = Field(
        default=3,
        ge=0,
        description="Reassignments per seat allowed inside the window",
    )
    cost_per_seat_cents: int = Field(
        default=1500,
        ge=0,
        description="Monthly seat price used for savings estimates",
    )


class PlanConfig(BaseModel):
    """Threshold bundle applied to one plan tier."""
    model_config = ConfigDict(extra="forbid")

    sharing: AntiSharingConfig = Field(default_factory=AntiSharingConfig)
    seat_abuse: SeatAbuseConfig = Field(default_factory=SeatAbuseConfig)

