"""Amount anomaly rule.

Compares the transaction amount with the wallet's all-time average.
A payment several times larger than the sender's usual spend is a
strong fraud signal even when the absolute amount is small.
"""

from decimal import Decimal
from typing import Sequence, Tuple

from flagwatch.models import RuleResult

DEFAULT_LADDER = [(Decimal(5), 30), (Decimal(3), 20), (Decimal(2), 10)]


def check_amount(
    amount: Decimal,
    all_time_average: Decimal,
    ladder: Sequence[Tuple[Decimal, int]] = DEFAULT_LADDER,
) -> RuleResult:
    """Score `amount` against multiples of the wallet's average.

    A zero average (a wallet that has only moved zero amounts) has no
    meaningful baseline, so the rule does not fire.
    """
    if all_time_average <= 0:
        return RuleResult(score_delta=0, reasons=[], matched_rules=[])

    # Compare against multiples of the average rather than dividing
    for multiplier, points in ladder:
        if amount > all_time_average * multiplier:
            return RuleResult(
                score_delta=points,
                reasons=[
                    f"Amount {amount:.2f} is more than {multiplier}x the "
                    f"wallet average of {all_time_average:.2f}"
                ],
                matched_rules=["AMOUNT_ANOMALY"],
            )

    return RuleResult(score_delta=0, reasons=[], matched_rules=[])
