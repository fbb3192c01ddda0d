"""Tests for the per-wallet trailing-window aggregator."""

import random
from datetime import timedelta
from decimal import Decimal

import pytest

from flagwatch.errors import OutOfOrderEvent, StateCapacityExceeded
from flagwatch.state.window import WindowAggregator
from tests.conftest import at


class TestFirstTransaction:
    def test_first_transaction_counts_itself(self, windows):
        stats = windows.observe("W1", at(), Decimal("250.00"))
        assert stats.count_in_window == 1
        assert stats.sum_in_window == Decimal("250.00")
        assert stats.all_time_average == Decimal("250.00")

    def test_zero_amount_first_transaction(self, windows):
        stats = windows.observe("W1", at(), Decimal("0"))
        assert stats.count_in_window == 1
        assert stats.all_time_average == Decimal("0")


class TestWindowRange:
    def test_counts_events_inside_window(self, windows):
        for i in range(5):
            stats = windows.observe("W1", at(minutes=i * 10), Decimal("10"))
        assert stats.count_in_window == 5
        assert stats.sum_in_window == Decimal("50")

    def test_entry_exactly_window_old_is_included(self, windows):
        windows.observe("W1", at(), Decimal("10"))
        stats = windows.observe("W1", at(minutes=60), Decimal("20"))
        assert stats.count_in_window == 2
        assert stats.sum_in_window == Decimal("30")

    def test_entry_older_than_window_is_evicted(self, windows):
        windows.observe("W1", at(), Decimal("10"))
        stats = windows.observe("W1", at(minutes=60) + timedelta(seconds=1), Decimal("20"))
        assert stats.count_in_window == 1
        assert stats.sum_in_window == Decimal("20")

    def test_eviction_subtracts_from_running_sum(self, windows):
        windows.observe("W1", at(), Decimal("1000"))
        windows.observe("W1", at(minutes=30), Decimal("200"))
        stats = windows.observe("W1", at(minutes=90), Decimal("5"))
        # The 10:00 entry is gone, 10:30 and 11:30 remain
        assert stats.count_in_window == 2
        assert stats.sum_in_window == Decimal("205")
        snapshot = windows.snapshot("W1")
        assert [amount for _, amount in snapshot.entries] == [Decimal("200"), Decimal("5")]

    def test_custom_window_length(self):
        aggregator = WindowAggregator(window=timedelta(minutes=10))
        aggregator.observe("W1", at(), Decimal("10"))
        stats = aggregator.observe("W1", at(minutes=15), Decimal("10"))
        assert stats.count_in_window == 1


class TestAllTimeAverage:
    def test_average_covers_whole_history(self, windows):
        windows.observe("W1", at(), Decimal("100"))
        windows.observe("W1", at(hours=5), Decimal("200"))
        stats = windows.observe("W1", at(hours=10), Decimal("600"))
        assert stats.count_in_window == 1
        assert stats.all_time_average == Decimal("300")

    def test_average_is_not_truncated(self, windows):
        windows.observe("W1", at(), Decimal("1"))
        stats = windows.observe("W1", at(minutes=1), Decimal("2"))
        assert stats.all_time_average == Decimal("1.5")

    def test_decimal_amounts_are_exact(self, windows):
        windows.observe("W1", at(), Decimal("0.1"))
        stats = windows.observe("W1", at(minutes=1), Decimal("0.2"))
        assert stats.sum_in_window == Decimal("0.3")


class TestWalletIsolation:
    def test_wallets_do_not_share_state(self, windows):
        for i in range(4):
            windows.observe("W1", at(minutes=i), Decimal("10"))
        stats = windows.observe("W2", at(minutes=5), Decimal("10"))
        assert stats.count_in_window == 1
        assert len(windows) == 2


class TestOrdering:
    def test_out_of_order_rejected(self, windows):
        windows.observe("W1", at(minutes=30), Decimal("10"))
        with pytest.raises(OutOfOrderEvent) as exc_info:
            windows.observe("W1", at(minutes=10), Decimal("99"), transaction_id="late")
        assert exc_info.value.key == "W1"
        assert exc_info.value.transaction_id == "late"

    def test_out_of_order_leaves_state_untouched(self, windows):
        windows.observe("W1", at(minutes=30), Decimal("10"))
        with pytest.raises(OutOfOrderEvent):
            windows.observe("W1", at(minutes=10), Decimal("99"))
        snapshot = windows.snapshot("W1")
        assert snapshot.all_time_count == 1
        assert snapshot.window_sum == Decimal("10")
        assert snapshot.last_timestamp == at(minutes=30)

    def test_equal_timestamps_accepted(self, windows):
        windows.observe("W1", at(), Decimal("10"))
        stats = windows.observe("W1", at(), Decimal("10"))
        assert stats.count_in_window == 2

    def test_check_order_does_not_mutate(self, windows):
        windows.check_order("W1", at())
        assert windows.snapshot("W1") is None
        windows.observe("W1", at(minutes=5), Decimal("1"))
        with pytest.raises(OutOfOrderEvent):
            windows.check_order("W1", at())


class TestDeterminism:
    def _events(self):
        rng = random.Random(42)
        t = at()
        events = []
        for _ in range(200):
            t += timedelta(minutes=rng.randint(0, 25))
            events.append((t, Decimal(rng.randint(1, 50000)) / 100))
        return events

    def test_counts_match_range_definition(self):
        events = self._events()
        aggregator = WindowAggregator(window=timedelta(hours=1))
        for i, (ts, amount) in enumerate(events):
            stats = aggregator.observe("W1", ts, amount)
            expected = [a for t, a in events[: i + 1] if ts - timedelta(hours=1) <= t <= ts]
            assert stats.count_in_window == len(expected)
            assert stats.sum_in_window == sum(expected)

    def test_rebuilding_from_scratch_is_identical(self):
        events = self._events()
        first = WindowAggregator()
        second = WindowAggregator()
        run1 = [first.observe("W1", ts, amount) for ts, amount in events]
        run2 = [second.observe("W1", ts, amount) for ts, amount in events]
        assert run1 == run2


class TestCapacity:
    def test_new_key_beyond_limit_is_fatal(self):
        aggregator = WindowAggregator(max_keys=2)
        aggregator.observe("W1", at(), Decimal("1"))
        aggregator.observe("W2", at(), Decimal("1"))
        # Existing keys keep working
        aggregator.observe("W1", at(minutes=1), Decimal("1"))
        with pytest.raises(StateCapacityExceeded):
            aggregator.observe("W3", at(), Decimal("1"))

    def test_check_capacity_only_refuses_new_keys(self):
        aggregator = WindowAggregator(max_keys=1)
        aggregator.observe("W1", at(), Decimal("1"))
        aggregator.check_capacity("W1")
        with pytest.raises(StateCapacityExceeded):
            aggregator.check_capacity("W2")
        assert len(aggregator) == 1
