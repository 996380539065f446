"""
Session Schemas

Session telemetry pushed by the session data source: login events
and heartbeats upsert a SessionRecord keyed by
(subscription_id, session_id).
"""

import hashlib
from typing import Optional

from pydantic import BaseModel, Field, model_validator

FINGERPRINT_FIELDS = (
    "user_agent",
    "screen_resolution",
    "timezone",
    "language",
    "platform",
)


def compute_fingerprint_hash(
    user_agent: str,
    screen_resolution: str,
    timezone: str,
    language: str,
    platform: str,
) -> str:
    """
    Deterministic grouping key for a device fingerprint.

    Not a security primitive: collisions are tolerable, instability is not.
    """
    raw = "|".join([user_agent, screen_resolution, timezone, language, platform])
    return "fp_" + hashlib.sha256(raw.encode()).hexdigest()[:16]


class DeviceFingerprint(BaseModel):
    """
    Browser/device fingerprint.

    ``hash`` is filled from the five descriptive fields when the
    caller does not supply one.
    """
    hash: str = Field(
        default="",
        description="Grouping key (fp_ + truncated SHA-256)",
    )
    user_agent: str = Field(default="", description="User-Agent header")
    screen_resolution: str = Field(default="", description="e.g. '1920x1080'")
    timezone: str = Field(default="", description="IANA timezone")
    language: str = Field(default="", description="Browser language")
    platform: str = Field(default="", description="navigator.platform")

    @model_validator(mode="after")
    def _fill_hash(self) -> "DeviceFingerprint":
        if not self.hash:
            self.hash = compute_fingerprint_hash(
                *(getattr(self, name) for name in FINGERPRINT_FIELDS)
            )
        return self


class SessionRecord(BaseModel):
    """
    One login session for a subscription.

    No automatic expiry: the caller marks sessions inactive or
    removes them.
    """
    subscription_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    device_fingerprint: DeviceFingerprint
    ip_address: str = Field(..., description="Client IP address")

    # Location (optional, from IP geolocation or client GPS)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None

    started_at: Optional[int] = Field(
        default=None,
        description="Session start (epoch ms)",
    )
    last_active_at: int = Field(
        ...,
        description="Last heartbeat (epoch ms)",
    )
    is_active: bool = True

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
