"""Window exposure rule.

Flags wallets whose total outgoing amount inside the trailing window
crosses absolute limits, regardless of how many transactions made it up.
"""

from decimal import Decimal
from typing import Sequence, Tuple

from flagwatch.models import RuleResult
from flagwatch.scoring.ladder import first_exceeded

DEFAULT_LADDER = [(Decimal(10000), 25), (Decimal(5000), 15)]


def check_exposure(
    sum_in_window: Decimal,
    ladder: Sequence[Tuple[Decimal, int]] = DEFAULT_LADDER,
    window_minutes: int = 60,
) -> RuleResult:
    """Score the amount moved by the wallet within the window."""
    threshold, points = first_exceeded(sum_in_window, ladder)

    if points:
        return RuleResult(
            score_delta=points,
            reasons=[
                f"Wallet moved {sum_in_window:.2f} in the last {window_minutes} "
                f"minutes (threshold: {threshold:.2f})"
            ],
            matched_rules=["EXPOSURE"],
        )

    return RuleResult(score_delta=0, reasons=[], matched_rules=[])
