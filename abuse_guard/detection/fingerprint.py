"""
Device Fingerprint Analysis

Groups sessions by device and measures how alike two devices are.
Low similarity across a subscription's devices suggests genuinely
different people rather than one person's browser updates.
"""

from itertools import combinations

from ..schemas import DeviceFingerprint
from ..schemas.sessions import FINGERPRINT_FIELDS, compute_fingerprint_hash


def fingerprint_hash(fingerprint: DeviceFingerprint) -> str:
    """Recompute the grouping key from the descriptive fields."""
    return compute_fingerprint_hash(
        *(getattr(fingerprint, name) for name in FINGERPRINT_FIELDS)
    )


def fingerprint_similarity(a: DeviceFingerprint, b: DeviceFingerprint) -> float:
    """
    Fraction of the five descriptive fields that match exactly.

    Returns:
        Similarity in [0, 1]
    """
    matches = sum(
        1 for name in FINGERPRINT_FIELDS
        if getattr(a, name) == getattr(b, name)
    )
    return matches / len(FINGERPRINT_FIELDS)


def average_pairwise_similarity(fingerprints: list[DeviceFingerprint]) -> float:
    """
    Mean similarity over all pairs.

    A single fingerprint (no pairs) counts as fully similar.
    """
    pairs = list(combinations(fingerprints, 2))
    if not pairs:
        return 1.0
    return sum(fingerprint_similarity(a, b) for a, b in pairs) / len(pairs)
