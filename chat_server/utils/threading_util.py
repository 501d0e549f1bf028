"""Threading helpers shared by the messaging layer."""
import threading
from typing import Hashable, List

DEFAULT_STRIPES = 64


class StripedLock:
    """Fixed pool of locks addressed by key.

    The same key always maps to the same lock, so callers serialize per key
    while memory stays bounded no matter how many distinct keys show up.
    Unrelated keys may share a stripe; that only costs some contention.
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key: Hashable) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def __len__(self):
        return len(self._locks)
