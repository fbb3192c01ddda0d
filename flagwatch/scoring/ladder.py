"""Ordered threshold ladders.

A ladder is a list of (threshold, points) steps sorted from the highest
threshold down. The first step whose threshold is strictly exceeded
wins; steps are never summed.
"""

from typing import Optional, Sequence, Tuple


def first_exceeded(value, ladder: Sequence[Tuple[object, int]]) -> Tuple[Optional[object], int]:
    """Return the (threshold, points) step matched by `value`, or (None, 0)."""
    for threshold, points in ladder:
        if value > threshold:
            return threshold, points
    return None, 0


def categorize(score: int, block: int, review: int, monitor: int) -> str:
    """Map a total risk score to its category, highest first."""
    if score >= block:
        return "Block"
    if score >= review:
        return "Review"
    if score >= monitor:
        return "Monitor"
    return "Normal"
