"""Partitioned stream processor.

A fixed pool of worker threads, each draining its own FIFO queue.
Records are routed by a stable hash of the sender user id, so every
transaction of a user (and of each of that user's wallets) is handled
by one worker in arrival order. Different users run in parallel.
"""

import logging
import queue
import threading
from typing import Any, Callable, List, Mapping, Optional, Union

from flagwatch.errors import MalformedInput, ScoringError, StateCapacityExceeded, StreamClosed
from flagwatch.ingest import normalize
from flagwatch.models import Rejection, ScoringResponse, TransactionRequest
from flagwatch.scoring.engine import ScoringEngine
from flagwatch.state.shards import shard_index

logger = logging.getLogger(__name__)

_STOP = object()


class StreamProcessor:
    """Feeds a transaction stream through a ScoringEngine on N workers."""

    def __init__(
        self,
        engine: ScoringEngine,
        workers: int = 4,
        on_result: Optional[Callable[[ScoringResponse], None]] = None,
        on_error: Optional[Callable[[Rejection], None]] = None,
    ) -> None:
        self.engine = engine
        self.on_result = on_result
        self.on_error = on_error
        self.fatal_error: Optional[BaseException] = None
        self._closed = False
        self._stopping = False
        self._submit_lock = threading.Lock()
        self._queues: List["queue.Queue[object]"] = [queue.Queue() for _ in range(workers)]
        self._threads = [
            threading.Thread(
                target=self._run, args=(q,), name=f"scoring-worker-{i}", daemon=True
            )
            for i, q in enumerate(self._queues)
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Stream processor started with %d workers", workers)

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, record: Union[TransactionRequest, Mapping[str, Any]]) -> bool:
        """Route a record to its user's worker.

        Returns False if the record was malformed and rejected. Raises
        StreamClosed once the processor is closed or has hit a fatal error.
        """
        try:
            transaction = normalize(record)
        except MalformedInput as exc:
            self._report(self.engine.reject(exc))
            return False

        with self._submit_lock:
            if self._closed or self.engine.fatal_error is not None:
                raise StreamClosed("stream processor is not accepting input")
            index = shard_index(transaction.sender_user_id, len(self._queues))
            self._queues[index].put(transaction)
        return True

    def join(self) -> None:
        """Wait until every submitted record has been processed."""
        for q in self._queues:
            q.join()

    def close(self) -> None:
        """Reject new input, drain in-flight work and stop the workers."""
        with self._submit_lock:
            self._closed = True
            if not self._stopping:
                self._stopping = True
                for q in self._queues:
                    q.put(_STOP)
        for thread in self._threads:
            thread.join()
        logger.info("Stream processor closed")

    def _run(self, work: "queue.Queue[object]") -> None:
        while True:
            item = work.get()
            try:
                if item is _STOP:
                    return
                self._handle(item)
            finally:
                work.task_done()

    def _handle(self, transaction: TransactionRequest) -> None:
        try:
            response = self.engine.process(transaction)
        except StateCapacityExceeded as exc:
            logger.critical(
                "State capacity exhausted, stream halted: %s", exc
            )
            self.fatal_error = exc
            with self._submit_lock:
                self._closed = True
            return
        except ScoringError as exc:
            self._report(self.engine.reject(exc))
            return

        if self.on_result is not None:
            self.on_result(response)

    def _report(self, rejection: Rejection) -> None:
        if self.on_error is not None:
            self.on_error(rejection)
