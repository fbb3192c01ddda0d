"""Transaction velocity rule.

Scores how many transactions a sender wallet made inside the trailing
window. A burst of activity on one wallet is a common sign of account
takeover or card testing.
"""

from typing import Sequence, Tuple

from flagwatch.models import RuleResult
from flagwatch.scoring.ladder import first_exceeded

DEFAULT_LADDER = [(10, 30), (5, 20), (3, 10)]


def check_velocity(
    count_in_window: int,
    ladder: Sequence[Tuple[int, int]] = DEFAULT_LADDER,
    window_minutes: int = 60,
) -> RuleResult:
    """Score the wallet's transaction count in the window (current included).

    Only the highest exceeded threshold counts: 11 transactions score
    30, not 30 + 20 + 10.
    """
    threshold, points = first_exceeded(count_in_window, ladder)

    if points:
        return RuleResult(
            score_delta=points,
            reasons=[
                f"Wallet has {count_in_window} transactions in the last "
                f"{window_minutes} minutes (threshold: {threshold})"
            ],
            matched_rules=["VELOCITY"],
        )

    return RuleResult(score_delta=0, reasons=[], matched_rules=[])
