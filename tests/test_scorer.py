"""Tests for the risk score aggregation and category logic."""

from decimal import Decimal

from flagwatch.models import EngineConfig, RuleResult, WindowStats
from flagwatch.scoring.ladder import categorize, first_exceeded
from flagwatch.scoring.scorer import aggregate_results, score_risk


def _stats(count=1, total="100", average="100"):
    return WindowStats(
        count_in_window=count,
        sum_in_window=Decimal(total),
        all_time_average=Decimal(average),
    )


class TestLadder:
    def test_first_match_wins(self):
        assert first_exceeded(11, [(10, 30), (5, 20)]) == (10, 30)

    def test_no_match(self):
        assert first_exceeded(1, [(10, 30), (5, 20)]) == (None, 0)

    def test_category_boundaries(self):
        assert categorize(50, 50, 30, 15) == "Block"
        assert categorize(49, 50, 30, 15) == "Review"
        assert categorize(30, 50, 30, 15) == "Review"
        assert categorize(29, 50, 30, 15) == "Monitor"
        assert categorize(15, 50, 30, 15) == "Monitor"
        assert categorize(14, 50, 30, 15) == "Normal"
        assert categorize(0, 50, 30, 15) == "Normal"


class TestAggregateResults:
    def test_no_rules_triggered(self, config):
        results = [
            RuleResult(score_delta=0, reasons=[], matched_rules=[]),
            RuleResult(score_delta=0, reasons=[], matched_rules=[]),
        ]
        score, category, reasons, rules = aggregate_results(results, config)
        assert score == 0
        assert category == "Normal"
        assert reasons == []
        assert rules == []

    def test_components_are_summed(self, config):
        results = [
            RuleResult(score_delta=30, reasons=["v"], matched_rules=["VELOCITY"]),
            RuleResult(score_delta=30, reasons=["a"], matched_rules=["AMOUNT_ANOMALY"]),
            RuleResult(score_delta=25, reasons=["e"], matched_rules=["EXPOSURE"]),
        ]
        score, category, reasons, rules = aggregate_results(results, config)
        assert score == 85
        assert category == "Block"
        assert reasons == ["v", "a", "e"]
        assert rules == ["VELOCITY", "AMOUNT_ANOMALY", "EXPOSURE"]

    def test_empty_results_list(self, config):
        score, category, _, _ = aggregate_results([], config)
        assert score == 0
        assert category == "Normal"

    def test_custom_cutoffs(self):
        config = EngineConfig(block_score=20, review_score=10, monitor_score=5)
        results = [RuleResult(score_delta=20, reasons=[], matched_rules=["X"])]
        _, category, _, _ = aggregate_results(results, config)
        assert category == "Block"


class TestScoreRisk:
    def test_quiet_transaction(self, config):
        risk = score_risk("tx-1", Decimal("100"), _stats(), config)
        assert risk.score == 0
        assert risk.category == "Normal"
        assert risk.transaction_id == "tx-1"

    def test_velocity_only(self, config):
        risk = score_risk("tx-1", Decimal("100"), _stats(count=11, total="1100"), config)
        assert risk.score == 30
        assert risk.category == "Review"
        assert risk.matched_rules == ["VELOCITY"]

    def test_amount_only(self, config):
        risk = score_risk("tx-1", Decimal("600"), _stats(total="600", average="69"), config)
        assert risk.score == 30
        assert risk.category == "Review"
        assert risk.matched_rules == ["AMOUNT_ANOMALY"]

    def test_monitor(self, config):
        risk = score_risk("tx-1", Decimal("100"), _stats(count=6, total="600"), config)
        assert risk.score == 20
        assert risk.category == "Monitor"

    def test_maximum_score(self, config):
        risk = score_risk(
            "tx-1", Decimal("6000"), _stats(count=12, total="20000", average="1000"), config
        )
        assert risk.score == 85
        assert risk.category == "Block"

    def test_zero_average_guard(self, config):
        risk = score_risk("tx-1", Decimal("0"), _stats(total="0", average="0"), config)
        assert risk.score == 0
