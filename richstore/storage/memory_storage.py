"""
Memory Storage Module for RichStore

This module provides an in-memory primary store. It keeps blocks, transactions,
chain indexes, nonces and staged transaction ids in plain dictionaries and is
used by tests and as the base of the file-backed store.
"""

import threading
from datetime import datetime
from typing import Iterable, Iterator, Optional, Tuple
from uuid import UUID

from richstore.core.models import Block, BlockDigest, Transaction
from richstore.storage.base_store import BaseStore


class MemoryStore(BaseStore):
    """Simple in-memory primary store"""

    def __init__(self):
        self.blocks: dict[bytes, Block] = {}
        self.transactions: dict[bytes, Transaction] = {}
        self.chain_indexes: dict[UUID, list[bytes]] = {}
        self.tx_nonces: dict[UUID, dict[bytes, int]] = {}
        self.staged_tx_ids: set[bytes] = set()
        self.perceived_times: dict[bytes, datetime] = {}
        self.canonical_chain_id: UUID | None = None
        self._lock = threading.RLock()

    def _changed(self):
        """Hook called after every mutation."""
        pass

    # Chains

    def list_chain_ids(self) -> Iterator[UUID]:
        with self._lock:
            return iter(list(self.chain_indexes))

    def delete_chain_id(self, chain_id: UUID):
        with self._lock:
            self.chain_indexes.pop(chain_id, None)
            self.tx_nonces.pop(chain_id, None)
            self._changed()

    def get_canonical_chain_id(self) -> Optional[UUID]:
        return self.canonical_chain_id

    def set_canonical_chain_id(self, chain_id: UUID):
        with self._lock:
            self.canonical_chain_id = chain_id
            self._changed()

    # Chain indexes

    def count_index(self, chain_id: UUID) -> int:
        with self._lock:
            return len(self.chain_indexes.get(chain_id, []))

    def iterate_indexes(self, chain_id: UUID, offset: int = 0, limit: Optional[int] = None) -> Iterator[bytes]:
        with self._lock:
            hashes = self.chain_indexes.get(chain_id, [])
            end = None if limit is None else offset + limit
            return iter(hashes[offset:end])

    def index_block_hash(self, chain_id: UUID, index: int) -> Optional[bytes]:
        with self._lock:
            hashes = self.chain_indexes.get(chain_id, [])
            if index < 0:
                index += len(hashes)
            if 0 <= index < len(hashes):
                return hashes[index]
            return None

    def append_index(self, chain_id: UUID, block_hash: bytes) -> int:
        with self._lock:
            hashes = self.chain_indexes.setdefault(chain_id, [])
            hashes.append(block_hash)
            self._changed()
            return len(hashes) - 1

    def fork_block_indexes(self, source_chain_id: UUID, destination_chain_id: UUID, branch_point: bytes):
        with self._lock:
            source = self.chain_indexes.get(source_chain_id, [])
            if branch_point not in source:
                raise KeyError(f"Branch point {branch_point.hex()} is not in chain {source_chain_id}")
            self.chain_indexes[destination_chain_id] = source[:source.index(branch_point) + 1]
            self._changed()

    # Transactions

    def put_transaction(self, tx: Transaction):
        with self._lock:
            self.transactions[tx.id] = tx
            self._changed()

    def get_transaction(self, tx_id: bytes) -> Optional[Transaction]:
        return self.transactions.get(tx_id)

    def delete_transaction(self, tx_id: bytes) -> bool:
        with self._lock:
            if self.transactions.pop(tx_id, None) is None:
                return False
            self._changed()
            return True

    def contains_transaction(self, tx_id: bytes) -> bool:
        return tx_id in self.transactions

    def iterate_transaction_ids(self) -> Iterator[bytes]:
        with self._lock:
            return iter(list(self.transactions))

    def count_transactions(self) -> int:
        return len(self.transactions)

    def stage_transaction_ids(self, tx_ids: Iterable[bytes]):
        with self._lock:
            self.staged_tx_ids.update(tx_ids)
            self._changed()

    def unstage_transaction_ids(self, tx_ids: Iterable[bytes]):
        with self._lock:
            self.staged_tx_ids.difference_update(tx_ids)
            self._changed()

    def iterate_staged_transaction_ids(self) -> Iterator[bytes]:
        with self._lock:
            return iter(sorted(self.staged_tx_ids))

    # Blocks

    def put_block(self, block: Block):
        with self._lock:
            for tx in block.transactions:
                self.transactions[tx.id] = tx
            self.blocks[block.hash] = block
            self._changed()

    def get_block(self, block_hash: bytes) -> Optional[Block]:
        return self.blocks.get(block_hash)

    def get_block_digest(self, block_hash: bytes) -> Optional[BlockDigest]:
        block = self.blocks.get(block_hash)
        return block.to_digest() if block is not None else None

    def get_block_index(self, block_hash: bytes) -> Optional[int]:
        block = self.blocks.get(block_hash)
        return block.index if block is not None else None

    def delete_block(self, block_hash: bytes) -> bool:
        with self._lock:
            if self.blocks.pop(block_hash, None) is None:
                return False
            self.perceived_times.pop(block_hash, None)
            self._changed()
            return True

    def contains_block(self, block_hash: bytes) -> bool:
        return block_hash in self.blocks

    def iterate_block_hashes(self) -> Iterator[bytes]:
        with self._lock:
            return iter(list(self.blocks))

    def count_blocks(self) -> int:
        return len(self.blocks)

    def set_block_perceived_time(self, block_hash: bytes, perceived_time: datetime):
        with self._lock:
            self.perceived_times[block_hash] = perceived_time
            self._changed()

    def get_block_perceived_time(self, block_hash: bytes) -> Optional[datetime]:
        return self.perceived_times.get(block_hash)

    # Nonces

    def get_tx_nonce(self, chain_id: UUID, address: bytes) -> int:
        return self.tx_nonces.get(chain_id, {}).get(address, 0)

    def increase_tx_nonce(self, chain_id: UUID, signer: bytes, delta: int = 1):
        with self._lock:
            nonces = self.tx_nonces.setdefault(chain_id, {})
            nonces[signer] = nonces.get(signer, 0) + delta
            self._changed()

    def list_tx_nonces(self, chain_id: UUID) -> Iterator[Tuple[bytes, int]]:
        with self._lock:
            return iter(list(self.tx_nonces.get(chain_id, {}).items()))

    def fork_tx_nonces(self, source_chain_id: UUID, destination_chain_id: UUID):
        with self._lock:
            self.tx_nonces[destination_chain_id] = dict(self.tx_nonces.get(source_chain_id, {}))
            self._changed()

    def clear(self):
        """Clear all data"""
        with self._lock:
            self.blocks.clear()
            self.transactions.clear()
            self.chain_indexes.clear()
            self.tx_nonces.clear()
            self.staged_tx_ids.clear()
            self.perceived_times.clear()
            self.canonical_chain_id = None
            self._changed()
