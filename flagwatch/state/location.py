"""Per-user last-known location tracking.

The delta is read against the previous state and only then is the new
(country, timestamp) committed, so each transaction is compared with
the one before it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flagwatch.errors import OutOfOrderEvent
from flagwatch.models import LocationDelta
from flagwatch.state.shards import ShardedState

logger = logging.getLogger(__name__)


@dataclass
class UserLocationState:
    last_country: Optional[str] = None
    last_timestamp: Optional[datetime] = None


class LocationTracker:
    """Maintains UserLocationState for every user seen on the stream."""

    def __init__(self, shards: int = 16, max_keys: Optional[int] = None) -> None:
        self._states: ShardedState[UserLocationState] = ShardedState(
            UserLocationState, shards=shards, max_keys=max_keys
        )

    def lock_for(self, user_id: str):
        return self._states.lock_for(user_id)

    def check_order(
        self,
        user_id: str,
        timestamp: datetime,
        transaction_id: Optional[str] = None,
    ) -> None:
        state = self._states.get(user_id)
        if state is not None and state.last_timestamp is not None:
            if timestamp < state.last_timestamp:
                raise OutOfOrderEvent(
                    user_id, state.last_timestamp, timestamp,
                    transaction_id=transaction_id,
                )

    def check_capacity(self, user_id: str) -> None:
        self._states.check_capacity(user_id)

    def observe(
        self,
        user_id: str,
        timestamp: datetime,
        country: str,
        transaction_id: Optional[str] = None,
    ) -> LocationDelta:
        """Compare against the previous location, then commit this one."""
        with self._states.entry(user_id) as state:
            if state.last_timestamp is None:
                delta = LocationDelta()
            else:
                if timestamp < state.last_timestamp:
                    raise OutOfOrderEvent(
                        user_id, state.last_timestamp, timestamp,
                        transaction_id=transaction_id,
                    )
                elapsed = timestamp - state.last_timestamp
                delta = LocationDelta(
                    previous_country=state.last_country,
                    hours_since_previous=elapsed.total_seconds() / 3600,
                    country_changed=country != state.last_country,
                )

            state.last_country = country
            state.last_timestamp = timestamp

        logger.debug("user %s: %s -> %s", user_id, delta.previous_country, country)
        return delta

    def snapshot(self, user_id: str) -> Optional[UserLocationState]:
        with self._states.lock_for(user_id):
            state = self._states.get(user_id)
            if state is None:
                return None
            return UserLocationState(state.last_country, state.last_timestamp)

    def __len__(self) -> int:
        return len(self._states)
