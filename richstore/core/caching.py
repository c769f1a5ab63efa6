"""
Block digest cache for the rich store.

A bounded, thread-safe LRU map from block hash to BlockDigest. It accelerates
digest reads and short-circuits re-indexing of blocks that were already seen.
It is never the system of record: dropping it loses nothing.
"""

import threading
from collections import OrderedDict
from typing import Optional

from richstore.core.models import BlockDigest


class BlockDigestCache:
    """LRU cache of block digests keyed by block hash"""

    def __init__(self, capacity: int = 512):
        """
        Initialize the cache

        Args:
            capacity: Maximum number of digests kept
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[bytes, BlockDigest]" = OrderedDict()
        self._lock = threading.RLock()

        # Statistics
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, block_hash: bytes) -> Optional[BlockDigest]:
        """Get a digest, promoting it to most recently used"""
        with self._lock:
            digest = self._entries.get(block_hash)
            if digest is None:
                self.misses += 1
                return None
            self._entries.move_to_end(block_hash)
            self.hits += 1
            return digest

    def put(self, block_hash: bytes, digest: BlockDigest):
        """Insert or update a digest, evicting the least recently used one when full"""
        with self._lock:
            if block_hash in self._entries:
                self._entries.move_to_end(block_hash)
            self._entries[block_hash] = digest
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
                self.evictions += 1

    def remove(self, block_hash: bytes) -> bool:
        """Purge a digest; returns whether it was present"""
        with self._lock:
            return self._entries.pop(block_hash, None) is not None

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, block_hash: bytes) -> bool:
        with self._lock:
            return block_hash in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> dict:
        """Get cache statistics"""
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / total if total else 0.0,
            }
