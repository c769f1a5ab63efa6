"""
Reference index capability interface.

A ReferenceIndex derives the three reference kinds from blocks and
transactions and serves them back as ordered, paginated sequences. The rich
store talks only to this interface; which backend sits behind it is decided
once, when the index is constructed.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from richstore.core.caching import BlockDigestCache
from richstore.core.exceptions import UnsupportedQueryError
from richstore.core.models import Block, Transaction, TxReference, SignerReference, UpdatedAddressReference

logger = logging.getLogger(__name__)


def check_page(offset: int, limit: Optional[int]):
    """Reject pagination arguments no backend can serve."""
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")
    if limit is not None and limit < 0:
        raise ValueError(f"limit must not be negative, got {limit}")


class ReferenceIndex(ABC):
    """
    Base class for reference index backends.

    Subclasses implement the `_write_*` hooks and the `iterate_*` readers.
    Indexing a block whose hash is already in the digest cache is a no-op,
    so replayed ingestion never produces duplicate work.
    """

    supports_block_listing = False

    def __init__(self, cache_size: int = 512):
        self.block_cache = BlockDigestCache(capacity=cache_size)

    def index(self, block: Block) -> bool:
        """
        Derive and store the references of every transaction in a block.

        Returns:
            True if the block was indexed, False if it was already known
        """
        if block.hash in self.block_cache:
            logger.debug(f"Block #{block.index} already indexed, skipping")
            return False

        self._write_block(block)
        self.block_cache.put(block.hash, block.to_digest())
        return True

    def index_transaction(self, tx: Transaction):
        """Store the signer and updated-address references of a standalone transaction."""
        self._write_transaction(tx)

    @abstractmethod
    def _write_block(self, block: Block):
        pass

    @abstractmethod
    def _write_transaction(self, tx: Transaction):
        pass

    @abstractmethod
    def iterate_tx_references(
        self,
        tx_id: Optional[bytes] = None,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TxReference]:
        """Tx references ordered by transaction nonce, optionally for a single tx id."""
        pass

    @abstractmethod
    def iterate_signer_references(
        self,
        signer: bytes,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[SignerReference]:
        """Transactions signed by `signer`, ordered by nonce."""
        pass

    @abstractmethod
    def iterate_updated_address_references(
        self,
        address: bytes,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[UpdatedAddressReference]:
        """Transactions that updated `address`, ordered by nonce."""
        pass

    def iterate_block_hashes(
        self,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
        miner: Optional[bytes] = None,
        exclude_empty_txs: bool = False,
    ) -> List[bytes]:
        """Block hashes ordered by block index."""
        raise UnsupportedQueryError(f"{type(self).__name__} does not index blocks")

    @abstractmethod
    def delete_transaction(self, tx_id: bytes):
        """Remove every reference row owned by a transaction."""
        pass

    @abstractmethod
    def delete_block(self, block_hash: bytes):
        """Remove the rows owned by a block and purge its cached digest."""
        pass

    def flush(self):
        """Make every accepted write visible to readers."""
        pass

    def close(self):
        """Flush and release backend resources."""
        self.flush()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
