"""Per-wallet trailing-window aggregation.

The window is a time range, not a row count: an entry stays while
`event_time - window <= entry_time <= event_time`. Irregularly spaced
transactions would silently change the size of a fixed-row window.

Each wallet keeps a deque of (timestamp, amount) pairs plus a running
window sum. New events are appended and stale entries are popped from
the left with their amounts subtracted, so the sum is never recomputed
from scratch. The all-time count and sum back the long-run average.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Deque, Optional, Tuple

from flagwatch.errors import OutOfOrderEvent
from flagwatch.models import WindowStats
from flagwatch.state.shards import ShardedState

logger = logging.getLogger(__name__)


@dataclass
class WalletWindowState:
    """Window contents and lifetime totals for one sender wallet."""
    entries: Deque[Tuple[datetime, Decimal]] = field(default_factory=deque)
    window_sum: Decimal = Decimal(0)
    all_time_count: int = 0
    all_time_sum: Decimal = Decimal(0)
    last_timestamp: Optional[datetime] = None


class WindowAggregator:
    """Maintains WalletWindowState for every wallet seen on the stream."""

    def __init__(
        self,
        window: timedelta = timedelta(hours=1),
        shards: int = 16,
        max_keys: Optional[int] = None,
    ) -> None:
        self.window = window
        self._states: ShardedState[WalletWindowState] = ShardedState(
            WalletWindowState, shards=shards, max_keys=max_keys
        )

    def lock_for(self, wallet_id: str):
        return self._states.lock_for(wallet_id)

    def check_order(
        self,
        wallet_id: str,
        timestamp: datetime,
        transaction_id: Optional[str] = None,
    ) -> None:
        """Raise OutOfOrderEvent if `timestamp` precedes the wallet's last event."""
        state = self._states.get(wallet_id)
        if state is not None:
            _ensure_in_order(wallet_id, state, timestamp, transaction_id)

    def check_capacity(self, wallet_id: str) -> None:
        self._states.check_capacity(wallet_id)

    def observe(
        self,
        wallet_id: str,
        timestamp: datetime,
        amount: Decimal,
        transaction_id: Optional[str] = None,
    ) -> WindowStats:
        """Record a transaction and return the window aggregates including it."""
        with self._states.entry(wallet_id) as state:
            _ensure_in_order(wallet_id, state, timestamp, transaction_id)

            state.entries.append((timestamp, amount))
            state.window_sum += amount
            state.all_time_count += 1
            state.all_time_sum += amount
            state.last_timestamp = timestamp

            # Evict everything strictly older than the window start
            window_start = timestamp - self.window
            while state.entries and state.entries[0][0] < window_start:
                _, evicted_amount = state.entries.popleft()
                state.window_sum -= evicted_amount

            stats = WindowStats(
                count_in_window=len(state.entries),
                sum_in_window=state.window_sum,
                all_time_average=state.all_time_sum / state.all_time_count,
            )

        logger.debug(
            "wallet %s: %d in window, sum %s, average %s",
            wallet_id,
            stats.count_in_window,
            stats.sum_in_window,
            stats.all_time_average,
        )
        return stats

    def snapshot(self, wallet_id: str) -> Optional[WalletWindowState]:
        """Return a copy of the wallet's state, or None if never seen."""
        with self._states.lock_for(wallet_id):
            state = self._states.get(wallet_id)
            if state is None:
                return None
            return WalletWindowState(
                entries=deque(state.entries),
                window_sum=state.window_sum,
                all_time_count=state.all_time_count,
                all_time_sum=state.all_time_sum,
                last_timestamp=state.last_timestamp,
            )

    def __len__(self) -> int:
        return len(self._states)


def _ensure_in_order(
    key: str,
    state: WalletWindowState,
    timestamp: datetime,
    transaction_id: Optional[str],
) -> None:
    if state.last_timestamp is not None and timestamp < state.last_timestamp:
        raise OutOfOrderEvent(
            key, state.last_timestamp, timestamp, transaction_id=transaction_id
        )
