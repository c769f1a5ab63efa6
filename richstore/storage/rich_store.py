"""
Rich store facade

RichStore wraps a primary store and keeps a reference index alongside it.
Every primary store operation is delegated unchanged; block and transaction
writes and deletes additionally drive the index and the block digest cache,
and the index's paginated readers are exposed as added capability.

The index is a read optimisation, not the system of record. Index failures on
the write path are logged and swallowed so the primary write still succeeds;
index failures on the read path propagate as BackendUnavailableError.
Primary store errors always propagate unchanged.
"""

import logging
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Tuple
from uuid import UUID

from richstore.adapters.database.base_index import ReferenceIndex
from richstore.core.exceptions import BackendUnavailableError, RichStoreError
from richstore.core.models import (
    Block,
    BlockDigest,
    Transaction,
    TxReference,
    SignerReference,
    UpdatedAddressReference,
)
from richstore.storage.base_store import BaseStore

logger = logging.getLogger(__name__)


class RichStore(BaseStore):
    """Primary store augmented with secondary reference indices"""

    def __init__(self, store: BaseStore, index: ReferenceIndex):
        """
        Initialize the facade

        Args:
            store: Authoritative primary store
            index: Reference index variant, chosen once at construction
        """
        self.store = store
        self.index = index
        logger.info(f"RichStore initialized over {type(store).__name__} with {type(index).__name__}")

    @property
    def block_cache(self):
        return self.index.block_cache

    @property
    def supports_block_listing(self) -> bool:
        return self.index.supports_block_listing

    def _index_safely(self, action: str, func, *args):
        try:
            func(*args)
        except Exception as e:
            logger.error(f"Index update skipped ({action}): {e}")
            logger.debug("Index failure details", exc_info=True)

    @staticmethod
    def _read(func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (RichStoreError, ValueError):
            raise
        except Exception as e:
            logger.error(f"Index read failed: {e}")
            raise BackendUnavailableError(f"Index read failed: {e}") from e

    # Chains

    def list_chain_ids(self) -> Iterator[UUID]:
        return self.store.list_chain_ids()

    def delete_chain_id(self, chain_id: UUID):
        self.store.delete_chain_id(chain_id)

    def get_canonical_chain_id(self) -> Optional[UUID]:
        return self.store.get_canonical_chain_id()

    def set_canonical_chain_id(self, chain_id: UUID):
        self.store.set_canonical_chain_id(chain_id)

    # Chain indexes

    def count_index(self, chain_id: UUID) -> int:
        return self.store.count_index(chain_id)

    def iterate_indexes(self, chain_id: UUID, offset: int = 0, limit: Optional[int] = None) -> Iterator[bytes]:
        return self.store.iterate_indexes(chain_id, offset, limit)

    def index_block_hash(self, chain_id: UUID, index: int) -> Optional[bytes]:
        return self.store.index_block_hash(chain_id, index)

    def append_index(self, chain_id: UUID, block_hash: bytes) -> int:
        return self.store.append_index(chain_id, block_hash)

    def fork_block_indexes(self, source_chain_id: UUID, destination_chain_id: UUID, branch_point: bytes):
        self.store.fork_block_indexes(source_chain_id, destination_chain_id, branch_point)

    # Transactions

    def put_transaction(self, tx: Transaction):
        self.store.put_transaction(tx)
        self._index_safely(f"tx {tx.id.hex()}", self.index.index_transaction, tx)

    def get_transaction(self, tx_id: bytes) -> Optional[Transaction]:
        return self.store.get_transaction(tx_id)

    def delete_transaction(self, tx_id: bytes) -> bool:
        deleted = self.store.delete_transaction(tx_id)
        self._index_safely(f"delete tx {tx_id.hex()}", self.index.delete_transaction, tx_id)
        return deleted

    def contains_transaction(self, tx_id: bytes) -> bool:
        return self.store.contains_transaction(tx_id)

    def iterate_transaction_ids(self) -> Iterator[bytes]:
        return self.store.iterate_transaction_ids()

    def count_transactions(self) -> int:
        return self.store.count_transactions()

    def stage_transaction_ids(self, tx_ids: Iterable[bytes]):
        self.store.stage_transaction_ids(tx_ids)

    def unstage_transaction_ids(self, tx_ids: Iterable[bytes]):
        self.store.unstage_transaction_ids(tx_ids)

    def iterate_staged_transaction_ids(self) -> Iterator[bytes]:
        return self.store.iterate_staged_transaction_ids()

    # Blocks

    def put_block(self, block: Block):
        self.store.put_block(block)
        self._index_safely(f"block #{block.index}", self.index.index, block)

    def get_block(self, block_hash: bytes) -> Optional[Block]:
        return self.store.get_block(block_hash)

    def get_block_digest(self, block_hash: bytes) -> Optional[BlockDigest]:
        digest = self.block_cache.get(block_hash)
        if digest is not None:
            return digest
        return self.store.get_block_digest(block_hash)

    def get_block_index(self, block_hash: bytes) -> Optional[int]:
        digest = self.block_cache.get(block_hash)
        if digest is not None:
            return digest.index
        return self.store.get_block_index(block_hash)

    def delete_block(self, block_hash: bytes) -> bool:
        deleted = self.store.delete_block(block_hash)
        self.block_cache.remove(block_hash)
        self._index_safely(f"delete block {block_hash.hex()}", self.index.delete_block, block_hash)
        return deleted

    def contains_block(self, block_hash: bytes) -> bool:
        if block_hash in self.block_cache:
            return True
        return self.store.contains_block(block_hash)

    def iterate_block_hashes(self) -> Iterator[bytes]:
        return self.store.iterate_block_hashes()

    def count_blocks(self) -> int:
        return self.store.count_blocks()

    def set_block_perceived_time(self, block_hash: bytes, perceived_time: datetime):
        self.store.set_block_perceived_time(block_hash, perceived_time)

    def get_block_perceived_time(self, block_hash: bytes) -> Optional[datetime]:
        return self.store.get_block_perceived_time(block_hash)

    # Nonces

    def get_tx_nonce(self, chain_id: UUID, address: bytes) -> int:
        return self.store.get_tx_nonce(chain_id, address)

    def increase_tx_nonce(self, chain_id: UUID, signer: bytes, delta: int = 1):
        self.store.increase_tx_nonce(chain_id, signer, delta)

    def list_tx_nonces(self, chain_id: UUID) -> Iterator[Tuple[bytes, int]]:
        return self.store.list_tx_nonces(chain_id)

    def fork_tx_nonces(self, source_chain_id: UUID, destination_chain_id: UUID):
        self.store.fork_tx_nonces(source_chain_id, destination_chain_id)

    # References

    def iterate_tx_references(
        self,
        tx_id: Optional[bytes] = None,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TxReference]:
        return self._read(self.index.iterate_tx_references, tx_id, desc=desc, offset=offset, limit=limit)

    def iterate_signer_references(
        self,
        signer: bytes,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[SignerReference]:
        return self._read(self.index.iterate_signer_references, signer, desc=desc, offset=offset, limit=limit)

    def iterate_updated_address_references(
        self,
        address: bytes,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[UpdatedAddressReference]:
        return self._read(
            self.index.iterate_updated_address_references, address, desc=desc, offset=offset, limit=limit
        )

    def list_block_hashes(
        self,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
        miner: Optional[bytes] = None,
        exclude_empty_txs: bool = False,
    ) -> List[bytes]:
        """Indexed block hashes ordered by block index (relational index only)."""
        return self._read(
            self.index.iterate_block_hashes,
            desc=desc,
            offset=offset,
            limit=limit,
            miner=miner,
            exclude_empty_txs=exclude_empty_txs,
        )

    def get_tx_block_hash(self, tx_id: bytes) -> Optional[bytes]:
        """Hash of the block that included a transaction, if indexed."""
        refs = self.iterate_tx_references(tx_id, limit=1)
        return refs[0].block_hash if refs else None

    # Lifecycle

    def flush(self):
        """Make every accepted index write visible to readers."""
        self.index.flush()

    def close(self):
        try:
            self.index.close()
        finally:
            self.store.close()
        logger.info("RichStore closed")
