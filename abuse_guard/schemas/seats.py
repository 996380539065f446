"""
Seat Schemas

Seat assignments and the reassignment history used for seat-abuse
detection.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .sessions import DeviceFingerprint


class SeatLocation(BaseModel):
    """Location a seat was used from."""
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class SeatAssignment(BaseModel):
    """
    A licensed seat held by one user.

    ``devices``, ``ip_addresses`` and ``locations`` accumulate every
    distinct value observed for the seat.
    """
    subscription_id: str = Field(..., min_length=1)
    seat_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    workspace_id: Optional[str] = None
    assigned_at: int = Field(..., description="Assignment time (epoch ms)")
    last_active_at: int = Field(..., description="Last activity (epoch ms)")
    devices: list[DeviceFingerprint] = Field(default_factory=list)
    ip_addresses: list[str] = Field(default_factory=list)
    locations: list[SeatLocation] = Field(default_factory=list)
    is_active: bool = True


class SeatReassignment(BaseModel):
    """A seat moving from one user to another."""
    seat_id: str = Field(..., min_length=1)
    previous_user_id: Optional[str] = None
    new_user_id: str = Field(..., min_length=1)
    reassigned_at: int = Field(..., description="Reassignment time (epoch ms)")
    reassigned_by: Optional[str] = Field(
        default=None,
        description="Admin who performed the reassignment",
    )
