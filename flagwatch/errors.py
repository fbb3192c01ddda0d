"""Error taxonomy for the scoring pipeline.

Per-record errors (MalformedInput, OutOfOrderEvent) reject a single
transaction and leave every key's state untouched. SinkUnavailable is
retried by the sink. StateCapacityExceeded is fatal and needs an
operator.
"""

from datetime import datetime
from typing import Optional


class ScoringError(Exception):
    """Base class for errors raised while ingesting or scoring."""

    def __init__(self, message: str, transaction_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.transaction_id = transaction_id


class MalformedInput(ScoringError):
    """A record is missing a required field or has an invalid value."""


class OutOfOrderEvent(ScoringError):
    """A timestamp precedes the last processed timestamp for its key."""

    def __init__(
        self,
        key: str,
        last_timestamp: datetime,
        timestamp: datetime,
        transaction_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"event for '{key}' at {timestamp.isoformat()} precedes "
            f"last processed event at {last_timestamp.isoformat()}",
            transaction_id=transaction_id,
        )
        self.key = key
        self.last_timestamp = last_timestamp
        self.timestamp = timestamp


class StateCapacityExceeded(ScoringError):
    """Per-key state grew past the configured number of tracked keys."""


class SinkUnavailable(Exception):
    """The downstream flag store could not accept a write."""


class StreamClosed(Exception):
    """Input was submitted after the stream processor was closed."""
