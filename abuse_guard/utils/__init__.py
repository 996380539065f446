# Utilities
from .clock import now_ms, MS_PER_DAY, MS_PER_HOUR, MS_PER_MINUTE

__all__ = ["now_ms", "MS_PER_DAY", "MS_PER_HOUR", "MS_PER_MINUTE"]
