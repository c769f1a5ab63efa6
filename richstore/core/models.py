"""
Domain records for the rich store.

Blocks and transactions are immutable and keyed by hash / id. The three
reference records are the rows of the secondary indices derived from them:

- TxReference: which block a transaction was included in
- SignerReference: which transactions an address signed
- UpdatedAddressReference: which transactions touched an address
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple


HASH_SIZE = 32
ADDRESS_SIZE = 20


def to_hex(value: Optional[bytes]) -> Optional[str]:
    """Lowercase hex of raw bytes, passing None through."""
    if value is None:
        return None
    return value.hex()


def from_hex(value: Optional[str]) -> Optional[bytes]:
    """Raw bytes from hex, tolerating a 0x prefix and passing None through."""
    if value is None:
        return None
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


def normalize_timestamp(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_timestamp(value: datetime) -> str:
    return normalize_timestamp(value).isoformat()


def parse_timestamp(value: str) -> datetime:
    return normalize_timestamp(datetime.fromisoformat(value))


def _check_size(name: str, value: Optional[bytes], size: int, nullable: bool = False):
    if value is None:
        if not nullable:
            raise ValueError(f"{name} is required")
        return
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")


@dataclass(frozen=True)
class Transaction:
    """A signed transaction. Immutable, keyed by id."""

    id: bytes
    nonce: int
    signer: bytes
    signature: bytes
    timestamp: datetime
    public_key: bytes
    genesis_hash: Optional[bytes] = None
    bytes_length: int = 0
    updated_addresses: FrozenSet[bytes] = field(default_factory=frozenset)

    def __post_init__(self):
        _check_size("id", self.id, HASH_SIZE)
        _check_size("signer", self.signer, ADDRESS_SIZE)
        _check_size("genesis_hash", self.genesis_hash, HASH_SIZE, nullable=True)
        for address in self.updated_addresses:
            _check_size("updated address", address, ADDRESS_SIZE)
        object.__setattr__(self, "timestamp", normalize_timestamp(self.timestamp))
        object.__setattr__(self, "updated_addresses", frozenset(self.updated_addresses))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": to_hex(self.id),
            "nonce": self.nonce,
            "signer": to_hex(self.signer),
            "signature": to_hex(self.signature),
            "timestamp": format_timestamp(self.timestamp),
            "public_key": to_hex(self.public_key),
            "genesis_hash": to_hex(self.genesis_hash),
            "bytes_length": self.bytes_length,
            "updated_addresses": sorted(to_hex(a) for a in self.updated_addresses),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            id=from_hex(data["id"]),
            nonce=int(data["nonce"]),
            signer=from_hex(data["signer"]),
            signature=from_hex(data["signature"]),
            timestamp=parse_timestamp(data["timestamp"]),
            public_key=from_hex(data["public_key"]),
            genesis_hash=from_hex(data.get("genesis_hash")),
            bytes_length=int(data.get("bytes_length", 0)),
            updated_addresses=frozenset(from_hex(a) for a in data.get("updated_addresses", [])),
        )


@dataclass(frozen=True)
class BlockDigest:
    """Compact block summary kept in the digest cache."""

    index: int
    hash: bytes
    previous_hash: Optional[bytes]
    timestamp: datetime
    miner: Optional[bytes]
    tx_ids: Tuple[bytes, ...] = ()


@dataclass(frozen=True)
class Block:
    """A block and its transactions. Immutable, keyed by hash."""

    index: int
    hash: bytes
    pre_evaluation_hash: bytes
    difficulty: int
    total_difficulty: int
    nonce: bytes
    timestamp: datetime
    state_root_hash: Optional[bytes] = None
    miner: Optional[bytes] = None
    previous_hash: Optional[bytes] = None
    tx_hash: Optional[bytes] = None
    bytes_length: int = 0
    transactions: Tuple[Transaction, ...] = ()

    def __post_init__(self):
        _check_size("hash", self.hash, HASH_SIZE)
        _check_size("pre_evaluation_hash", self.pre_evaluation_hash, HASH_SIZE)
        _check_size("state_root_hash", self.state_root_hash, HASH_SIZE, nullable=True)
        _check_size("miner", self.miner, ADDRESS_SIZE, nullable=True)
        _check_size("previous_hash", self.previous_hash, HASH_SIZE, nullable=True)
        _check_size("tx_hash", self.tx_hash, HASH_SIZE, nullable=True)
        object.__setattr__(self, "timestamp", normalize_timestamp(self.timestamp))
        object.__setattr__(self, "transactions", tuple(self.transactions))

    def to_digest(self) -> BlockDigest:
        return BlockDigest(
            index=self.index,
            hash=self.hash,
            previous_hash=self.previous_hash,
            timestamp=self.timestamp,
            miner=self.miner,
            tx_ids=tuple(tx.id for tx in self.transactions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "hash": to_hex(self.hash),
            "pre_evaluation_hash": to_hex(self.pre_evaluation_hash),
            "state_root_hash": to_hex(self.state_root_hash),
            "difficulty": self.difficulty,
            "total_difficulty": self.total_difficulty,
            "nonce": to_hex(self.nonce),
            "miner": to_hex(self.miner),
            "previous_hash": to_hex(self.previous_hash),
            "timestamp": format_timestamp(self.timestamp),
            "tx_hash": to_hex(self.tx_hash),
            "bytes_length": self.bytes_length,
            "transactions": [tx.to_dict() for tx in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        return cls(
            index=int(data["index"]),
            hash=from_hex(data["hash"]),
            pre_evaluation_hash=from_hex(data["pre_evaluation_hash"]),
            state_root_hash=from_hex(data.get("state_root_hash")),
            difficulty=int(data["difficulty"]),
            total_difficulty=int(data["total_difficulty"]),
            nonce=from_hex(data["nonce"]),
            miner=from_hex(data.get("miner")),
            previous_hash=from_hex(data.get("previous_hash")),
            timestamp=parse_timestamp(data["timestamp"]),
            tx_hash=from_hex(data.get("tx_hash")),
            bytes_length=int(data.get("bytes_length", 0)),
            transactions=tuple(Transaction.from_dict(tx) for tx in data.get("transactions", [])),
        )


@dataclass(frozen=True)
class TxReference:
    """Transaction -> containing block. Natural key: tx_id."""

    tx_id: bytes
    block_hash: bytes
    tx_nonce: int


@dataclass(frozen=True)
class SignerReference:
    """Signer -> signed transaction. Natural key: (signer, tx_id)."""

    signer: bytes
    tx_id: bytes
    tx_nonce: int


@dataclass(frozen=True)
class UpdatedAddressReference:
    """Updated address -> transaction. Natural key: (address, tx_id)."""

    address: bytes
    tx_id: bytes
    tx_nonce: int
