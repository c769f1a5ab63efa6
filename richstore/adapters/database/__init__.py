"""
Database adapters for the rich store reference index.

This module provides the two reference index variants:
- SqlReferenceIndex: bulk-loaded relational index (MySQL in production, SQLite for tests)
- MongoReferenceIndex: synchronously upserted document index

Call sites never branch on the variant; the backend is chosen once, by
create_reference_index(), from configuration.
"""

import logging
from typing import Any, Dict, Optional

from richstore.adapters.database.base_index import ReferenceIndex
from richstore.adapters.database.bulk_loader import staging_dir_for
from richstore.config import settings
from richstore.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def create_reference_index(config: Optional[Dict[str, Any]] = None, name: Optional[str] = None) -> ReferenceIndex:
    """
    Build the configured reference index variant

    Args:
        config: Index configuration; defaults to settings.get_index_config()
        name: Logical store name, used to scope the staging directory

    Returns:
        A ready-to-use ReferenceIndex
    """
    config = config or settings.get_index_config()
    backend = config.get("backend", "sql")
    cache_size = config.get("cache_size", 512)

    if backend == "sql":
        from richstore.adapters.database.sql_index import SqlReferenceIndex

        return SqlReferenceIndex(
            config["database_url"],
            staging_dir_for(config["staging_dir"], name),
            flush_block_count=config.get("flush_block_count", 50),
            flush_interval=config.get("flush_interval", 10.0),
            cache_size=cache_size,
        )

    if backend == "mongodb":
        from richstore.adapters.database.mongodb_index import MongoReferenceIndex

        mongodb = config.get("mongodb", {})
        return MongoReferenceIndex.connect(
            mongodb.get("uri", "mongodb://localhost:27017/"),
            mongodb.get("database", "richstore"),
            cache_size=cache_size,
        )

    logger.error(f"Unknown index backend: {backend}")
    raise ConfigurationError(f"Unknown index backend '{backend}', expected 'sql' or 'mongodb'")


__all__ = ["ReferenceIndex", "create_reference_index"]
