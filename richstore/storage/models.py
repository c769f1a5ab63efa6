"""
SQLAlchemy Models for the relational rich store.

This module defines the five tables the bulk loader fills. Values are stored
as the same hex / decimal strings the staging files carry, so a staging file
loads column for column with no conversion. Natural keys are the primary
keys, which is what makes bulk loading with REPLACE an upsert.
"""

from sqlalchemy import Column, BigInteger, String, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BlockModel(Base):
    """
    Represents a block header.
    """
    __tablename__ = 'block'

    index = Column(BigInteger, nullable=False)
    hash = Column(String(64), primary_key=True)
    pre_evaluation_hash = Column(String(64), nullable=False)
    state_root_hash = Column(String(64), nullable=True)
    difficulty = Column(BigInteger, nullable=False)
    total_difficulty = Column(BigInteger, nullable=False)
    nonce = Column(Text, nullable=False)
    miner = Column(String(40), nullable=True)
    previous_hash = Column(String(64), nullable=True)
    timestamp = Column(String(40), nullable=False)
    tx_hash = Column(String(64), nullable=True)
    bytes_length = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_block_index', 'index'),
        Index('idx_block_miner_index', 'miner', 'index'),
    )

    def __repr__(self):
        return f"<Block(index={self.index}, hash='{self.hash[:8]}...')>"


class TransactionModel(Base):
    """
    Represents a signed transaction.
    """
    __tablename__ = 'transaction'

    tx_id = Column(String(64), primary_key=True)
    nonce = Column(BigInteger, nullable=False)
    signer = Column(String(40), nullable=False)
    signature = Column(Text, nullable=False)
    timestamp = Column(String(40), nullable=False)
    public_key = Column(Text, nullable=False)
    genesis_hash = Column(String(64), nullable=True)
    bytes_length = Column(BigInteger, nullable=False)

    def __repr__(self):
        return f"<Transaction(tx_id='{self.tx_id[:8]}...', nonce={self.nonce})>"


class TxReferenceModel(Base):
    """
    Transaction -> block that included it. Re-inclusion on a fork overwrites.
    """
    __tablename__ = 'tx_references'

    tx_id = Column(String(64), primary_key=True)
    block_hash = Column(String(64), nullable=False)
    tx_nonce = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_tx_references_nonce', 'tx_nonce', 'tx_id'),
        Index('idx_tx_references_block_hash', 'block_hash'),
    )


class SignerReferenceModel(Base):
    """
    Signer -> transactions it signed.
    """
    __tablename__ = 'signer_references'

    signer = Column(String(40), primary_key=True)
    tx_id = Column(String(64), primary_key=True)
    tx_nonce = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_signer_references_signer_nonce', 'signer', 'tx_nonce', 'tx_id'),
        Index('idx_signer_references_tx_id', 'tx_id'),
    )


class UpdatedAddressReferenceModel(Base):
    """
    Address -> transactions that updated its state.
    """
    __tablename__ = 'updated_address_references'

    updated_address = Column(String(40), primary_key=True)
    tx_id = Column(String(64), primary_key=True)
    tx_nonce = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_updated_address_references_address_nonce', 'updated_address', 'tx_nonce', 'tx_id'),
        Index('idx_updated_address_references_tx_id', 'tx_id'),
    )
