"""
Explorer queries over a rich store.

Consumers ask for (desc, offset, limit, optional filter) and get back domain
objects. Index rows are resolved through the primary store, which stays the
source of truth. A negative offset counts back from the canonical chain tip;
an offset past the tip yields nothing.
"""

import logging
from typing import Iterator, List, Optional

from richstore.core.models import Block, Transaction
from richstore.storage.rich_store import RichStore

logger = logging.getLogger(__name__)


class ExplorerQuery:
    """Block and transaction listing for explorers"""

    def __init__(self, rich_store: RichStore):
        self.store = rich_store

    def tip_index(self) -> int:
        """Index of the canonical tip, or -1 for an empty (or missing) chain."""
        chain_id = self.store.get_canonical_chain_id()
        if chain_id is None:
            return -1
        return self.store.count_index(chain_id) - 1

    def _resolve_offset(self, offset: int) -> Optional[int]:
        tip = self.tip_index()
        if offset < 0:
            offset = tip + offset + 1
        if offset < 0 or offset > tip:
            return None
        return offset

    def get_block_by_hash(self, block_hash: bytes) -> Optional[Block]:
        return self.store.get_block(block_hash)

    def get_block_by_index(self, index: int) -> Optional[Block]:
        chain_id = self.store.get_canonical_chain_id()
        if chain_id is None:
            return None
        block_hash = self.store.index_block_hash(chain_id, index)
        return self.store.get_block(block_hash) if block_hash is not None else None

    def get_transaction(self, tx_id: bytes) -> Optional[Transaction]:
        return self.store.get_transaction(tx_id)

    def list_blocks(
        self,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
        exclude_empty_txs: bool = False,
        miner: Optional[bytes] = None,
    ) -> List[Block]:
        """
        List canonical blocks ordered by index

        Args:
            desc: Newest first
            offset: Rows to skip; negative counts back from the tip
            limit: Maximum number of blocks, None for all
            exclude_empty_txs: Skip blocks without transactions
            miner: Only blocks mined by this address
        """
        offset = self._resolve_offset(offset)
        if offset is None or limit == 0:
            return []

        if self.store.supports_block_listing:
            hashes = self.store.list_block_hashes(
                desc=desc, offset=offset, limit=limit, miner=miner, exclude_empty_txs=exclude_empty_txs
            )
            return self._resolve_blocks(hashes)

        blocks = []
        for block in self._walk_chain(desc):
            if miner is not None and block.miner != miner:
                continue
            if exclude_empty_txs and not block.transactions:
                continue
            if offset > 0:
                offset -= 1
                continue
            blocks.append(block)
            if limit is not None and len(blocks) >= limit:
                break
        return blocks

    def list_transactions(
        self,
        signer: Optional[bytes] = None,
        involved: Optional[bytes] = None,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """
        List transactions ordered by nonce

        Args:
            signer: Only transactions signed by this address (takes precedence over involved)
            involved: Only transactions that updated this address
            desc: Highest nonce first
            offset: Rows to skip; negative counts back from the tip
            limit: Maximum number of transactions, None for all
        """
        offset = self._resolve_offset(offset)
        if offset is None or limit == 0:
            return []

        if signer is not None:
            tx_ids = [r.tx_id for r in self.store.iterate_signer_references(signer, desc, offset, limit)]
        elif involved is not None:
            tx_ids = [r.tx_id for r in self.store.iterate_updated_address_references(involved, desc, offset, limit)]
        else:
            tx_ids = [r.tx_id for r in self.store.iterate_tx_references(None, desc, offset, limit)]
        return self._resolve_transactions(tx_ids)

    def list_staged_transactions(
        self,
        signer: Optional[bytes] = None,
        involved: Optional[bytes] = None,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """Staged transactions ordered by timestamp; negative offsets are rejected."""
        if offset < 0:
            raise ValueError("list_staged_transactions does not support a negative offset")

        txs = []
        for tx_id in self.store.iterate_staged_transaction_ids():
            tx = self.store.get_transaction(tx_id)
            if tx is not None and self._matches(tx, signer, involved):
                txs.append(tx)
        txs.sort(key=lambda tx: tx.timestamp, reverse=desc)
        end = None if limit is None else offset + limit
        return txs[offset:end]

    @staticmethod
    def _matches(tx: Transaction, signer: Optional[bytes], involved: Optional[bytes]) -> bool:
        if signer is not None:
            return tx.signer == signer
        if involved is not None:
            return involved in tx.updated_addresses
        return True

    def _walk_chain(self, desc: bool) -> Iterator[Block]:
        chain_id = self.store.get_canonical_chain_id()
        if chain_id is None:
            return
        hashes = list(self.store.iterate_indexes(chain_id))
        for block_hash in reversed(hashes) if desc else hashes:
            block = self.store.get_block(block_hash)
            if block is not None:
                yield block

    def _resolve_blocks(self, hashes: List[bytes]) -> List[Block]:
        blocks = []
        for block_hash in hashes:
            block = self.store.get_block(block_hash)
            if block is None:
                logger.warning(f"Indexed block {block_hash.hex()} is missing from the primary store")
                continue
            blocks.append(block)
        return blocks

    def _resolve_transactions(self, tx_ids: List[bytes]) -> List[Transaction]:
        txs = []
        for tx_id in tx_ids:
            tx = self.store.get_transaction(tx_id)
            if tx is None:
                logger.warning(f"Indexed tx {tx_id.hex()} is missing from the primary store")
                continue
            txs.append(tx)
        return txs
