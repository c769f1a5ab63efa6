"""
MongoDB reference index for RichStore

This module provides the document-store variant of the reference index.
References are upserted synchronously, one document per row, into three
collections. Each collection carries a compound index on (filter key,
ordering key) so paginated reads are served by an ordered index scan.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from richstore.adapters.database.base_index import ReferenceIndex, check_page
from richstore.core.exceptions import BackendUnavailableError
from richstore.core.models import (
    Block,
    Transaction,
    TxReference,
    SignerReference,
    UpdatedAddressReference,
    to_hex,
    from_hex,
)
from richstore.storage.bulk_format import references_for_transaction

logger = logging.getLogger(__name__)


class MongoReferenceIndex(ReferenceIndex):
    """MongoDB-backed reference index"""

    TX_REF_COLLECTION = "tx_references"
    SIGNER_REF_COLLECTION = "signer_references"
    UPDATED_ADDRESS_REF_COLLECTION = "updated_address_references"

    def __init__(self, database, cache_size: int = 512, client: Optional[MongoClient] = None):
        """
        Initialize the index over an open database

        Args:
            database: pymongo Database (or a compatible object)
            cache_size: Capacity of the block digest cache
            client: Owning client, closed by close() when given
        """
        super().__init__(cache_size=cache_size)
        self.db = database
        self.client = client
        self._create_indexes()

    @classmethod
    def connect(cls, connection_string: str, database_name: str = "richstore", cache_size: int = 512):
        """
        Connect to MongoDB and build an index on `database_name`

        Args:
            connection_string: MongoDB connection string
                Format: "mongodb://localhost:27017/" or MongoDB Atlas URI
            database_name: Name of the database to use
            cache_size: Capacity of the block digest cache
        """
        try:
            client = MongoClient(connection_string)
            # Test the connection
            client.admin.command('ping')
            logger.info("Connected to MongoDB database")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise BackendUnavailableError(f"MongoDB unavailable: {e}") from e
        return cls(client[database_name], cache_size=cache_size, client=client)

    @property
    def tx_refs(self):
        return self.db[self.TX_REF_COLLECTION]

    @property
    def signer_refs(self):
        return self.db[self.SIGNER_REF_COLLECTION]

    @property
    def updated_address_refs(self):
        return self.db[self.UPDATED_ADDRESS_REF_COLLECTION]

    def _create_indexes(self):
        """Create natural-key and ordering indexes for the reference collections"""
        self.tx_refs.create_index("tx_id", unique=True)
        self.tx_refs.create_index([("tx_nonce", ASCENDING), ("tx_id", ASCENDING)])
        self.tx_refs.create_index("block_hash")

        self.signer_refs.create_index([("signer", ASCENDING), ("tx_id", ASCENDING)], unique=True)
        self.signer_refs.create_index([("signer", ASCENDING), ("tx_nonce", ASCENDING), ("tx_id", ASCENDING)])
        self.signer_refs.create_index("tx_id")

        self.updated_address_refs.create_index([("address", ASCENDING), ("tx_id", ASCENDING)], unique=True)
        self.updated_address_refs.create_index([("address", ASCENDING), ("tx_nonce", ASCENDING), ("tx_id", ASCENDING)])
        self.updated_address_refs.create_index("tx_id")
        logger.debug("MongoDB reference indexes ensured")

    def _write_transaction(self, tx: Transaction):
        signer_ref, address_refs = references_for_transaction(tx)
        signer_doc = {
            "signer": to_hex(signer_ref.signer),
            "tx_id": to_hex(signer_ref.tx_id),
            "tx_nonce": signer_ref.tx_nonce,
        }
        self.signer_refs.replace_one(
            {"signer": signer_doc["signer"], "tx_id": signer_doc["tx_id"]}, signer_doc, upsert=True
        )

        for ref in address_refs:
            doc = {"address": to_hex(ref.address), "tx_id": to_hex(ref.tx_id), "tx_nonce": ref.tx_nonce}
            self.updated_address_refs.replace_one({"address": doc["address"], "tx_id": doc["tx_id"]}, doc, upsert=True)

    def _write_block(self, block: Block):
        for tx in block.transactions:
            doc = {"tx_id": to_hex(tx.id), "block_hash": to_hex(block.hash), "tx_nonce": tx.nonce}
            self.tx_refs.replace_one({"tx_id": doc["tx_id"]}, doc, upsert=True)
            self._write_transaction(tx)
        logger.debug(f"Indexed block #{block.index} ({len(block.transactions)} txs) in MongoDB")

    @staticmethod
    def _find(collection, query: Dict[str, Any], desc: bool, offset: int, limit: Optional[int]) -> List[Dict[str, Any]]:
        check_page(offset, limit)
        if limit == 0:
            return []

        direction = DESCENDING if desc else ASCENDING
        try:
            cursor = collection.find(query, {"_id": 0}).sort(
                [("tx_nonce", direction), ("tx_id", direction)]
            ).skip(offset)
            if limit is not None:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            logger.error(f"Failed to read {collection.name}: {e}")
            raise BackendUnavailableError(f"MongoDB read failed: {e}") from e

    def iterate_tx_references(
        self,
        tx_id: Optional[bytes] = None,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TxReference]:
        query = {} if tx_id is None else {"tx_id": to_hex(tx_id)}
        return [
            TxReference(tx_id=from_hex(doc["tx_id"]), block_hash=from_hex(doc["block_hash"]), tx_nonce=doc["tx_nonce"])
            for doc in self._find(self.tx_refs, query, desc, offset, limit)
        ]

    def iterate_signer_references(
        self,
        signer: bytes,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[SignerReference]:
        return [
            SignerReference(signer=from_hex(doc["signer"]), tx_id=from_hex(doc["tx_id"]), tx_nonce=doc["tx_nonce"])
            for doc in self._find(self.signer_refs, {"signer": to_hex(signer)}, desc, offset, limit)
        ]

    def iterate_updated_address_references(
        self,
        address: bytes,
        desc: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[UpdatedAddressReference]:
        return [
            UpdatedAddressReference(address=from_hex(doc["address"]), tx_id=from_hex(doc["tx_id"]), tx_nonce=doc["tx_nonce"])
            for doc in self._find(self.updated_address_refs, {"address": to_hex(address)}, desc, offset, limit)
        ]

    def delete_transaction(self, tx_id: bytes):
        key = {"tx_id": to_hex(tx_id)}
        self.tx_refs.delete_many(key)
        self.signer_refs.delete_many(key)
        self.updated_address_refs.delete_many(key)
        logger.debug(f"Deleted references of tx {tx_id.hex()}")

    def delete_block(self, block_hash: bytes):
        self.block_cache.remove(block_hash)
        self.tx_refs.delete_many({"block_hash": to_hex(block_hash)})
        logger.debug(f"Deleted tx references of block {block_hash.hex()}")

    def close(self):
        """Close database connection"""
        super().close()
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
