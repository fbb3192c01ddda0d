"""Risk score aggregation and category logic.

The score is DETERMINISTIC: same transaction + same wallet history =
same output. It is the plain sum of the velocity, amount anomaly and
exposure components (0-85 with the default ladders), then mapped to a
category, highest first:
  - score >= 50 -> Block
  - score >= 30 -> Review
  - score >= 15 -> Monitor
  - otherwise   -> Normal
"""

from decimal import Decimal

from flagwatch.models import EngineConfig, RiskResult, RuleResult, WindowStats
from flagwatch.scoring.ladder import categorize
from flagwatch.scoring.rules.amount import check_amount
from flagwatch.scoring.rules.exposure import check_exposure
from flagwatch.scoring.rules.velocity import check_velocity


def aggregate_results(
    rule_results: list[RuleResult],
    config: EngineConfig,
) -> tuple[int, str, list[str], list[str]]:
    """Combine results from all risk rules into a score and category.

    Returns:
        Tuple of (risk_score, category, all_reasons, all_matched_rules).
    """
    total_score = 0
    all_reasons: list[str] = []
    all_matched_rules: list[str] = []

    for result in rule_results:
        total_score += result.score_delta
        all_reasons.extend(result.reasons)
        all_matched_rules.extend(result.matched_rules)

    category = categorize(
        total_score,
        block=config.block_score,
        review=config.review_score,
        monitor=config.monitor_score,
    )
    return total_score, category, all_reasons, all_matched_rules


def score_risk(
    transaction_id: str,
    amount: Decimal,
    stats: WindowStats,
    config: EngineConfig,
) -> RiskResult:
    """Run the three risk rules for one transaction and aggregate them."""
    rule_results = [
        check_velocity(
            count_in_window=stats.count_in_window,
            ladder=config.velocity_thresholds,
            window_minutes=config.window_minutes,
        ),
        check_amount(
            amount=amount,
            all_time_average=stats.all_time_average,
            ladder=config.amount_multipliers,
        ),
        check_exposure(
            sum_in_window=stats.sum_in_window,
            ladder=config.exposure_thresholds,
            window_minutes=config.window_minutes,
        ),
    ]

    score, category, reasons, matched_rules = aggregate_results(rule_results, config)
    return RiskResult(
        transaction_id=transaction_id,
        score=score,
        category=category,
        reasons=reasons,
        matched_rules=matched_rules,
    )
