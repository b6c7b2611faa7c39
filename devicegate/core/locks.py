"""Striped per-key locks.

Writes to one device record are serialized in-process by hashing the device id
onto a fixed table of ``threading.Lock`` stripes. Unrelated devices almost
always land on different stripes and proceed in parallel; the table never
grows, so there is nothing to clean up.

NOTE: like any in-process lock this only covers one worker. Across workers the
store additionally takes a row lock (``SELECT ... FOR UPDATE``) inside the
same transaction.
"""

import hashlib
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class KeyedLock:
    """A fixed pool of locks addressed by string key."""

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._locks = [Lock() for _ in range(stripes)]

    @property
    def stripes(self) -> int:
        return len(self._locks)

    def _index(self, key: str) -> int:
        # Python's hash() is salted per process; a digest keeps stripes stable
        digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % len(self._locks)

    def lock_for(self, key: str) -> Lock:
        return self._locks[self._index(key)]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the stripe for ``key`` for the duration of the block."""
        lock = self.lock_for(key)
        with lock:
            yield
