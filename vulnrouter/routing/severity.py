"""Severity scale: a fixed total order over finding severity labels."""

from enum import StrEnum


class Severity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_RANKS: dict[str, int] = {
    Severity.LOW.value: 1,
    Severity.MEDIUM.value: 2,
    Severity.HIGH.value: 3,
    Severity.CRITICAL.value: 4,
}

# Rank of anything off the scale; below every configurable threshold.
UNRANKED = 0


def normalize_severity(label: str | None) -> str:
    """Return the canonical (stripped, uppercase) form of a severity label."""
    if not label:
        return ""
    return label.strip().upper()


def rank(label: str | None) -> int:
    """Map a severity label to its position in the scale.

    Unrecognized labels, including the empty string, rank 0.
    """
    return SEVERITY_RANKS.get(normalize_severity(label), UNRANKED)


def is_known_severity(label: str | None) -> bool:
    return rank(label) != UNRANKED
