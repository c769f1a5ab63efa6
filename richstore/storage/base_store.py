"""
Primary store contract.

The primary store is the authoritative, append-only home of blocks and
transactions. The rich store wraps any implementation of this contract and
delegates to it unchanged. Lookups of absent hashes / ids return None.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Iterator, Optional, Tuple
from uuid import UUID

from richstore.core.models import Block, BlockDigest, Transaction


class BaseStore(ABC):
    """Abstract primary block/transaction store"""

    # Chains

    @abstractmethod
    def list_chain_ids(self) -> Iterator[UUID]:
        pass

    @abstractmethod
    def delete_chain_id(self, chain_id: UUID):
        pass

    @abstractmethod
    def get_canonical_chain_id(self) -> Optional[UUID]:
        pass

    @abstractmethod
    def set_canonical_chain_id(self, chain_id: UUID):
        pass

    # Chain indexes

    @abstractmethod
    def count_index(self, chain_id: UUID) -> int:
        pass

    @abstractmethod
    def iterate_indexes(self, chain_id: UUID, offset: int = 0, limit: Optional[int] = None) -> Iterator[bytes]:
        pass

    @abstractmethod
    def index_block_hash(self, chain_id: UUID, index: int) -> Optional[bytes]:
        """Block hash at a chain index; negative indexes count from the tip."""
        pass

    @abstractmethod
    def append_index(self, chain_id: UUID, block_hash: bytes) -> int:
        """Append a block hash to a chain and return its index."""
        pass

    @abstractmethod
    def fork_block_indexes(self, source_chain_id: UUID, destination_chain_id: UUID, branch_point: bytes):
        pass

    # Transactions

    @abstractmethod
    def put_transaction(self, tx: Transaction):
        pass

    @abstractmethod
    def get_transaction(self, tx_id: bytes) -> Optional[Transaction]:
        pass

    @abstractmethod
    def delete_transaction(self, tx_id: bytes) -> bool:
        pass

    @abstractmethod
    def contains_transaction(self, tx_id: bytes) -> bool:
        pass

    @abstractmethod
    def iterate_transaction_ids(self) -> Iterator[bytes]:
        pass

    @abstractmethod
    def count_transactions(self) -> int:
        pass

    @abstractmethod
    def stage_transaction_ids(self, tx_ids: Iterable[bytes]):
        pass

    @abstractmethod
    def unstage_transaction_ids(self, tx_ids: Iterable[bytes]):
        pass

    @abstractmethod
    def iterate_staged_transaction_ids(self) -> Iterator[bytes]:
        pass

    # Blocks

    @abstractmethod
    def put_block(self, block: Block):
        """Store a block together with its transactions."""
        pass

    @abstractmethod
    def get_block(self, block_hash: bytes) -> Optional[Block]:
        pass

    @abstractmethod
    def get_block_digest(self, block_hash: bytes) -> Optional[BlockDigest]:
        pass

    @abstractmethod
    def get_block_index(self, block_hash: bytes) -> Optional[int]:
        pass

    @abstractmethod
    def delete_block(self, block_hash: bytes) -> bool:
        pass

    @abstractmethod
    def contains_block(self, block_hash: bytes) -> bool:
        pass

    @abstractmethod
    def iterate_block_hashes(self) -> Iterator[bytes]:
        pass

    @abstractmethod
    def count_blocks(self) -> int:
        pass

    @abstractmethod
    def set_block_perceived_time(self, block_hash: bytes, perceived_time: datetime):
        pass

    @abstractmethod
    def get_block_perceived_time(self, block_hash: bytes) -> Optional[datetime]:
        pass

    # Nonces

    @abstractmethod
    def get_tx_nonce(self, chain_id: UUID, address: bytes) -> int:
        pass

    @abstractmethod
    def increase_tx_nonce(self, chain_id: UUID, signer: bytes, delta: int = 1):
        pass

    @abstractmethod
    def list_tx_nonces(self, chain_id: UUID) -> Iterator[Tuple[bytes, int]]:
        pass

    @abstractmethod
    def fork_tx_nonces(self, source_chain_id: UUID, destination_chain_id: UUID):
        pass

    # Lifecycle

    def close(self):
        """Release resources held by the store."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
