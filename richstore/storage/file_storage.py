"""
File storage adapter for RichStore

This module provides a directory-backed primary store. Blocks and transactions
are stored as one JSON document each, in separate folders; chain indexes,
nonces, staged transaction ids and perceived times live in a single metadata
document that is rewritten whenever it changes.

Layout:
    <storage_path>/blocks/<block hash hex>.json
    <storage_path>/transactions/<tx id hex>.json
    <storage_path>/meta.json
"""

import json
import os
import logging
import re
from pathlib import Path
from typing import Iterator, Optional
from uuid import UUID

from richstore.core.models import Block, BlockDigest, Transaction, parse_timestamp, format_timestamp
from richstore.storage.memory_storage import MemoryStore

logger = logging.getLogger(__name__)


class FileStore(MemoryStore):
    """File-based primary store"""

    META_FILE = "meta.json"

    def __init__(self, storage_path: str = "blockchain_data"):
        """
        Initialize file storage

        Args:
            storage_path: Base directory for storing blockchain data
        """
        super().__init__()
        self.storage_path = Path(storage_path)
        self.blocks_path = self.storage_path / "blocks"
        self.transactions_path = self.storage_path / "transactions"
        self.meta_file = self.storage_path / self.META_FILE

        self._create_directories()
        self._load_meta()
        logger.info(f"File store opened at: {self.storage_path}")

    @staticmethod
    def _validate_filename(name: str) -> None:
        """Only lowercase hex names are ever produced or accepted (CWE-22)."""
        if not re.match(r'^[0-9a-f]+$', name):
            raise ValueError(f"Security: Invalid name '{name}'. Only lowercase hex is allowed.")

    def _create_directories(self):
        for directory in (self.storage_path, self.blocks_path, self.transactions_path):
            directory.mkdir(parents=True, exist_ok=True)

    def _block_file(self, block_hash: bytes) -> Path:
        name = block_hash.hex()
        self._validate_filename(name)
        return self.blocks_path / f"{name}.json"

    def _tx_file(self, tx_id: bytes) -> Path:
        name = tx_id.hex()
        self._validate_filename(name)
        return self.transactions_path / f"{name}.json"

    @staticmethod
    def _write_json(path: Path, data: dict):
        # Write then rename so readers never see a half-written document
        tmp_path = path.with_suffix(".json.partial")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, path)

    @staticmethod
    def _read_json(path: Path) -> Optional[dict]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def _load_meta(self):
        data = self._read_json(self.meta_file)
        if data is None:
            return
        self.chain_indexes = {
            UUID(chain_id): [bytes.fromhex(h) for h in hashes]
            for chain_id, hashes in data.get("chain_indexes", {}).items()
        }
        self.tx_nonces = {
            UUID(chain_id): {bytes.fromhex(a): n for a, n in nonces.items()}
            for chain_id, nonces in data.get("tx_nonces", {}).items()
        }
        self.staged_tx_ids = {bytes.fromhex(t) for t in data.get("staged_tx_ids", [])}
        self.perceived_times = {
            bytes.fromhex(h): parse_timestamp(t) for h, t in data.get("perceived_times", {}).items()
        }
        canonical = data.get("canonical_chain_id")
        self.canonical_chain_id = UUID(canonical) if canonical else None

    def _changed(self):
        self._write_json(self.meta_file, {
            "chain_indexes": {
                str(chain_id): [h.hex() for h in hashes] for chain_id, hashes in self.chain_indexes.items()
            },
            "tx_nonces": {
                str(chain_id): {a.hex(): n for a, n in nonces.items()} for chain_id, nonces in self.tx_nonces.items()
            },
            "staged_tx_ids": sorted(t.hex() for t in self.staged_tx_ids),
            "perceived_times": {h.hex(): format_timestamp(t) for h, t in self.perceived_times.items()},
            "canonical_chain_id": str(self.canonical_chain_id) if self.canonical_chain_id else None,
        })

    # Transactions

    def put_transaction(self, tx: Transaction):
        self._write_json(self._tx_file(tx.id), tx.to_dict())

    def get_transaction(self, tx_id: bytes) -> Optional[Transaction]:
        data = self._read_json(self._tx_file(tx_id))
        return Transaction.from_dict(data) if data is not None else None

    def delete_transaction(self, tx_id: bytes) -> bool:
        try:
            self._tx_file(tx_id).unlink()
            return True
        except FileNotFoundError:
            return False

    def contains_transaction(self, tx_id: bytes) -> bool:
        return self._tx_file(tx_id).exists()

    def iterate_transaction_ids(self) -> Iterator[bytes]:
        for path in sorted(self.transactions_path.glob("*.json")):
            yield bytes.fromhex(path.stem)

    def count_transactions(self) -> int:
        return sum(1 for _ in self.transactions_path.glob("*.json"))

    # Blocks

    def put_block(self, block: Block):
        for tx in block.transactions:
            self.put_transaction(tx)
        self._write_json(self._block_file(block.hash), block.to_dict())

    def get_block(self, block_hash: bytes) -> Optional[Block]:
        data = self._read_json(self._block_file(block_hash))
        return Block.from_dict(data) if data is not None else None

    def get_block_digest(self, block_hash: bytes) -> Optional[BlockDigest]:
        block = self.get_block(block_hash)
        return block.to_digest() if block is not None else None

    def get_block_index(self, block_hash: bytes) -> Optional[int]:
        block = self.get_block(block_hash)
        return block.index if block is not None else None

    def delete_block(self, block_hash: bytes) -> bool:
        try:
            self._block_file(block_hash).unlink()
        except FileNotFoundError:
            return False
        with self._lock:
            if self.perceived_times.pop(block_hash, None) is not None:
                self._changed()
        return True

    def contains_block(self, block_hash: bytes) -> bool:
        return self._block_file(block_hash).exists()

    def iterate_block_hashes(self) -> Iterator[bytes]:
        for path in sorted(self.blocks_path.glob("*.json")):
            yield bytes.fromhex(path.stem)

    def count_blocks(self) -> int:
        return sum(1 for _ in self.blocks_path.glob("*.json"))

    def clear(self):
        for path in list(self.blocks_path.glob("*.json")) + list(self.transactions_path.glob("*.json")):
            path.unlink()
        super().clear()
