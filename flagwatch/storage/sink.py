"""Flag emitter.

Scoring never waits on the flag store: emit() only enqueues. A single
background thread delivers flags in FIFO order, so flags for the same
key reach the store in the order they were scored. SinkUnavailable is
retried with exponential backoff; flags that run out of retries are
logged and kept in `dead_letters`.

Delivery is at-least-once. The store must treat transaction_id as an
idempotency key.
"""

import logging
import queue
import threading
import time
from typing import List, Optional, Protocol

from flagwatch.errors import SinkUnavailable, StreamClosed
from flagwatch.models import FlagRecord

logger = logging.getLogger(__name__)

_STOP = object()


class FlagWriter(Protocol):
    def add(self, flag: FlagRecord) -> bool: ...


class FlagSink:
    """Asynchronous, retrying delivery of flags to a FlagWriter."""

    def __init__(
        self,
        store: FlagWriter,
        max_retries: int = 5,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.store = store
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.dead_letters: List[FlagRecord] = []
        self.delivered = 0
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = False
        self._close_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run, name="flag-sink", daemon=True
        )
        self._thread.start()

    def emit(self, flag: FlagRecord) -> None:
        """Queue a flag for delivery and return immediately."""
        with self._close_lock:
            if self._closed:
                raise StreamClosed("flag sink is closed")
            self._queue.put(flag)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every queued flag has been delivered or dead-lettered."""
        if timeout is None:
            self._queue.join()
            return
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                raise TimeoutError("flag sink did not drain in time")
            time.sleep(0.01)

    def close(self) -> None:
        """Stop accepting flags, drain the queue and stop the delivery thread."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
        self._thread.join()
        logger.info(
            "Flag sink closed: %d delivered, %d dead-lettered",
            self.delivered,
            len(self.dead_letters),
        )

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, flag: FlagRecord) -> None:
        for attempt in range(self.max_retries + 1):
            try:
                inserted = self.store.add(flag)
            except SinkUnavailable as exc:
                if attempt == self.max_retries:
                    logger.error(
                        "Giving up on flag for transaction %s after %d attempts: %s",
                        flag.transaction_id,
                        attempt + 1,
                        exc,
                    )
                    self.dead_letters.append(flag)
                    return
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Flag store unavailable for transaction %s (attempt %d), "
                    "retrying in %.2fs: %s",
                    flag.transaction_id,
                    attempt + 1,
                    delay,
                    exc,
                )
                time.sleep(delay)
                continue

            if inserted:
                self.delivered += 1
            else:
                logger.debug("Duplicate flag for transaction %s ignored", flag.transaction_id)
            return
