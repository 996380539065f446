# Configuration
from .settings import Settings, get_settings, settings
from .thresholds import (
    AntiSharingConfig,
    SeatAbuseConfig,
    PlanConfig,
    InvalidConfigError,
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "AntiSharingConfig",
    "SeatAbuseConfig",
    "PlanConfig",
    "InvalidConfigError",
]
