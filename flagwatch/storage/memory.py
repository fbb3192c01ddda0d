"""In-memory flag store.

Stands in for the downstream fraud flag table. Writes are idempotent on
transaction_id: the sink delivers at least once, so a replayed flag is
simply ignored. All data lives in memory and is lost on restart.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from flagwatch.models import FlagRecord


class FlagStore:
    """Thread-safe in-memory store of emitted flags, keyed by transaction id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Insertion-ordered, so iteration follows arrival
        self._flags: Dict[str, FlagRecord] = {}

    def add(self, flag: FlagRecord) -> bool:
        """Store a flag. Returns False if the transaction was already flagged."""
        with self._lock:
            if flag.transaction_id in self._flags:
                return False
            self._flags[flag.transaction_id] = flag
            return True

    def get(self, transaction_id: str) -> Optional[FlagRecord]:
        with self._lock:
            return self._flags.get(transaction_id)

    def set_status(self, transaction_id: str, status: str) -> Optional[FlagRecord]:
        """Update the investigation status of a flag; None if it does not exist."""
        with self._lock:
            flag = self._flags.get(transaction_id)
            if flag is None:
                return None
            updated = flag.model_copy(update={"investigation_status": status})
            self._flags[transaction_id] = updated
            return updated

    def list(
        self,
        risk_category: Optional[str] = None,
        anomaly_category: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        order_by: Literal["arrival", "risk"] = "arrival",
    ) -> List[FlagRecord]:
        """Return flags, optionally filtered by category and transaction time.

        order_by="risk" sorts by risk score, then transaction time, both
        descending. Bounds without a timezone are taken as UTC.
        """
        since = _as_utc(since)
        until = _as_utc(until)
        with self._lock:
            flags = list(self._flags.values())

        results: List[FlagRecord] = []
        for flag in flags:
            if risk_category is not None and flag.risk_category != risk_category:
                continue
            if anomaly_category is not None and flag.anomaly_category != anomaly_category:
                continue
            if since is not None and flag.transaction_time < since:
                continue
            if until is not None and flag.transaction_time > until:
                continue
            results.append(flag)

        if order_by == "risk":
            results.sort(
                key=lambda f: (f.risk_score, f.transaction_time), reverse=True
            )
        return results

    def __len__(self) -> int:
        with self._lock:
            return len(self._flags)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
