"""Geographic travel anomaly rule.

Two transactions by the same user from different countries closer
together than a plausible journey point to a compromised account.
Cutoffs are strict: a gap of exactly `impossible_hours` is only
suspicious, and exactly `suspicious_hours` is normal.
"""

from typing import Optional

from flagwatch.models import AnomalyResult, LocationDelta


def classify_travel(
    previous_country: Optional[str],
    country_changed: bool,
    hours_since_previous: Optional[float],
    impossible_hours: float = 4.0,
    suspicious_hours: float = 12.0,
) -> str:
    """Return ImpossibleTravel, SuspiciousTravel or Normal."""
    # A user's first transaction has nothing to compare against
    if previous_country is None or hours_since_previous is None:
        return "Normal"
    if country_changed and hours_since_previous < impossible_hours:
        return "ImpossibleTravel"
    if country_changed and hours_since_previous < suspicious_hours:
        return "SuspiciousTravel"
    return "Normal"


def check_travel(
    transaction_id: str,
    delta: LocationDelta,
    impossible_hours: float = 4.0,
    suspicious_hours: float = 12.0,
) -> AnomalyResult:
    category = classify_travel(
        delta.previous_country,
        delta.country_changed,
        delta.hours_since_previous,
        impossible_hours=impossible_hours,
        suspicious_hours=suspicious_hours,
    )
    return AnomalyResult(
        transaction_id=transaction_id,
        category=category,
        previous_country=delta.previous_country,
        hours_since_previous=delta.hours_since_previous,
    )
