"""Core scoring orchestrator.

For each completed transaction:
  1. Window aggregation for the sender wallet
  2. Location delta for the sender user
  3. Risk score (velocity + amount anomaly + exposure)
  4. Travel anomaly classification

Actionable results are handed to the flag sink. State for a user (and
that user's wallets) is only touched while holding the user's lock, so
each key has a single writer and its results come out in timestamp
order.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from flagwatch.errors import ScoringError, StateCapacityExceeded
from flagwatch.ingest import is_scorable, normalize
from flagwatch.models import (
    AnomalyResult,
    EngineConfig,
    FlagRecord,
    Rejection,
    RiskResult,
    ScoringResponse,
    TransactionRequest,
    WindowStats,
)
from flagwatch.scoring.rules.travel import check_travel
from flagwatch.scoring.scorer import score_risk
from flagwatch.state.location import LocationTracker
from flagwatch.state.window import WindowAggregator
from flagwatch.storage.sink import FlagSink

logger = logging.getLogger(__name__)

# Marks a transaction id whose processing is in flight
_PENDING = object()

RULE_FLAG_TYPES = {
    "VELOCITY": "Velocity",
    "AMOUNT_ANOMALY": "Amount_Anomaly",
    "EXPOSURE": "Exposure",
}

CENTS = 2


class ScoringEngine:
    """Orchestrates per-transaction state updates, scoring and emission."""

    def __init__(
        self,
        config: EngineConfig,
        sink: Optional[FlagSink] = None,
        windows: Optional[WindowAggregator] = None,
        locations: Optional[LocationTracker] = None,
        max_rejections: int = 10_000,
    ) -> None:
        self.config = config
        self.sink = sink
        if windows is None:
            windows = WindowAggregator(
                window=timedelta(minutes=config.window_minutes),
                shards=config.shards,
                max_keys=config.max_tracked_keys,
            )
        if locations is None:
            locations = LocationTracker(
                shards=config.shards,
                max_keys=config.max_tracked_keys,
            )
        self.windows = windows
        self.locations = locations
        self._results: Dict[str, Any] = {}
        self._results_lock = threading.Lock()
        self._rejections: Deque[Rejection] = deque(maxlen=max_rejections)
        self._rejections_lock = threading.Lock()
        self.fatal_error: Optional[StateCapacityExceeded] = None

    def update_config(self, config: EngineConfig) -> None:
        """Apply new thresholds to subsequent transactions.

        A longer window only takes effect as new entries accumulate;
        entries already evicted are not restored.
        """
        self.config = config
        self.windows.window = timedelta(minutes=config.window_minutes)
        logger.info("Engine configuration updated: window=%d min", config.window_minutes)

    def process(
        self, record: Union[TransactionRequest, Mapping[str, Any]]
    ) -> ScoringResponse:
        """Score a single transaction.

        Raises MalformedInput or OutOfOrderEvent without touching any
        state. Replaying an already processed transaction id returns the
        original result flagged as a duplicate.

        StateCapacityExceeded halts the engine: every later call raises
        it again until an operator restarts the service.
        """
        transaction = normalize(record)
        transaction_id = transaction.transaction_id

        if self.fatal_error is not None:
            raise StateCapacityExceeded(
                f"engine halted: {self.fatal_error}", transaction_id=transaction_id
            )

        if not is_scorable(transaction):
            logger.debug(
                "Transaction %s has status %s, not scored",
                transaction_id,
                transaction.status,
            )
            return ScoringResponse(transaction_id=transaction_id, scored=False)

        with self._results_lock:
            previous = self._results.get(transaction_id)
            if previous is None:
                limit = self.config.max_tracked_transactions
                if limit is not None and len(self._results) >= limit:
                    raise self._halt(StateCapacityExceeded(
                        f"tracking {len(self._results)} transaction ids, limit is {limit}",
                        transaction_id=transaction_id,
                    ))
                self._results[transaction_id] = _PENDING
        if previous is not None:
            return self._duplicate(transaction_id, previous)

        try:
            response = self._score(transaction)
        except StateCapacityExceeded as exc:
            self._release(transaction_id)
            if exc.transaction_id is None:
                exc.transaction_id = transaction_id
            raise self._halt(exc)
        except BaseException:
            self._release(transaction_id)
            raise

        with self._results_lock:
            self._results[transaction_id] = response
        return response

    def process_batch(
        self, records: Iterable[Union[TransactionRequest, Mapping[str, Any]]]
    ) -> Tuple[List[ScoringResponse], List[Rejection]]:
        """Score records in order; rejected records do not stop the batch.

        StateCapacityExceeded is not a per-record rejection and propagates.
        """
        results: List[ScoringResponse] = []
        rejections: List[Rejection] = []
        for record in records:
            try:
                results.append(self.process(record))
            except StateCapacityExceeded:
                raise
            except ScoringError as exc:
                rejections.append(self.reject(exc))
        return results, rejections

    def reject(self, exc: ScoringError) -> Rejection:
        """Report a rejected record on the error channel."""
        rejection = Rejection(
            transaction_id=exc.transaction_id,
            error=type(exc).__name__,
            detail=str(exc),
            received_at=datetime.now(timezone.utc),
        )
        logger.warning(
            "Rejected transaction %s: %s: %s",
            exc.transaction_id,
            rejection.error,
            rejection.detail,
        )
        with self._rejections_lock:
            self._rejections.append(rejection)
        return rejection

    @property
    def rejections(self) -> List[Rejection]:
        with self._rejections_lock:
            return list(self._rejections)

    def _halt(self, exc: StateCapacityExceeded) -> StateCapacityExceeded:
        if self.fatal_error is None:
            self.fatal_error = exc
            logger.critical("State capacity exhausted, engine halted: %s", exc)
        return exc

    def _release(self, transaction_id: str) -> None:
        with self._results_lock:
            self._results.pop(transaction_id, None)

    def _score(self, transaction: TransactionRequest) -> ScoringResponse:
        config = self.config
        transaction_id = transaction.transaction_id
        user_id = transaction.sender_user_id
        wallet_id = transaction.sender_wallet_id

        # Lock order is always user, then wallet
        with self.locations.lock_for(user_id), self.windows.lock_for(wallet_id):
            # Validate both keys first so a rejection mutates neither
            self.windows.check_order(wallet_id, transaction.timestamp, transaction_id)
            self.locations.check_order(user_id, transaction.timestamp, transaction_id)
            self.windows.check_capacity(wallet_id)
            self.locations.check_capacity(user_id)

            stats = self.windows.observe(
                wallet_id, transaction.timestamp, transaction.amount, transaction_id
            )
            delta = self.locations.observe(
                user_id, transaction.timestamp, transaction.country_code, transaction_id
            )

            risk = score_risk(transaction_id, transaction.amount, stats, config)
            anomaly = check_travel(
                transaction_id,
                delta,
                impossible_hours=config.impossible_travel_hours,
                suspicious_hours=config.suspicious_travel_hours,
            )

            # Only actionable results are persisted
            flagged = risk.score > 0 or anomaly.category != "Normal"
            if flagged and self.sink is not None:
                self.sink.emit(build_flag(transaction, stats, risk, anomaly))

        logger.debug(
            "Transaction %s: risk %d (%s), travel %s",
            transaction_id,
            risk.score,
            risk.category,
            anomaly.category,
        )
        return ScoringResponse(
            transaction_id=transaction_id,
            scored=True,
            flagged=flagged,
            risk=risk,
            anomaly=anomaly,
        )

    def _duplicate(self, transaction_id: str, previous: Any) -> ScoringResponse:
        logger.info("Transaction %s already processed, ignoring replay", transaction_id)
        if previous is _PENDING:
            return ScoringResponse(
                transaction_id=transaction_id, scored=False, duplicate=True
            )
        return previous.model_copy(update={"duplicate": True})


def build_flag(
    transaction: TransactionRequest,
    stats: WindowStats,
    risk: RiskResult,
    anomaly: AnomalyResult,
) -> FlagRecord:
    """Package one transaction's results as a flag store record."""
    flag_types = [
        RULE_FLAG_TYPES[rule] for rule in risk.matched_rules if rule in RULE_FLAG_TYPES
    ]
    if anomaly.category != "Normal":
        flag_types.append("Geographic")

    hours = anomaly.hours_since_previous
    return FlagRecord(
        transaction_id=transaction.transaction_id,
        sender_wallet_id=transaction.sender_wallet_id,
        sender_user_id=transaction.sender_user_id,
        risk_score=risk.score,
        risk_category=risk.category,
        anomaly_category=anomaly.category,
        flag_types=flag_types,
        transactions_in_window=stats.count_in_window,
        amount_in_window=round(stats.sum_in_window, CENTS),
        wallet_average_amount=round(stats.all_time_average, CENTS),
        previous_country=anomaly.previous_country,
        current_country=transaction.country_code,
        hours_since_previous=round(hours, CENTS) if hours is not None else None,
        amount=transaction.amount,
        currency=transaction.currency,
        transaction_time=transaction.timestamp,
        flagged_at=datetime.now(timezone.utc),
    )
