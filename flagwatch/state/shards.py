"""Sharded key -> state arena.

Each shard is a plain dict guarded by its own re-entrant lock, so two
keys in different shards never contend and there is no global lock.
Holding a key's shard lock makes the caller the single writer for that
key.
"""

import threading
import zlib
from contextlib import contextmanager
from typing import Callable, Dict, Generic, Iterator, Optional, TypeVar

from flagwatch.errors import StateCapacityExceeded

S = TypeVar("S")


def shard_index(key: str, shards: int) -> int:
    """Stable shard/partition index for a key (same across processes)."""
    return zlib.crc32(key.encode("utf-8")) % shards


class _Shard(Generic[S]):
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.entries: Dict[str, S] = {}


class ShardedState(Generic[S]):
    """Per-key state split across independently locked shards."""

    def __init__(
        self,
        factory: Callable[[], S],
        shards: int = 16,
        max_keys: Optional[int] = None,
    ) -> None:
        self._factory = factory
        self._shards = [_Shard() for _ in range(shards)]
        self._max_keys = max_keys

    def _shard(self, key: str) -> "_Shard[S]":
        return self._shards[shard_index(key, len(self._shards))]

    def lock_for(self, key: str) -> threading.RLock:
        """Return the lock that serializes writers of `key`."""
        return self._shard(key).lock

    def check_capacity(self, key: str) -> None:
        """Raise StateCapacityExceeded if `key` is new and the arena is full."""
        if self._max_keys is None or key in self:
            return
        if len(self) >= self._max_keys:
            raise StateCapacityExceeded(
                f"tracking {len(self)} keys, limit is {self._max_keys}"
            )

    @contextmanager
    def entry(self, key: str) -> Iterator[S]:
        """Yield the state for `key`, creating it if needed, under its shard lock."""
        shard = self._shard(key)
        with shard.lock:
            state = shard.entries.get(key)
            if state is None:
                self.check_capacity(key)
                state = self._factory()
                shard.entries[key] = state
            yield state

    def get(self, key: str) -> Optional[S]:
        """Return the state for `key` without creating it."""
        shard = self._shard(key)
        with shard.lock:
            return shard.entries.get(key)

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
