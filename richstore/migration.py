"""
One-time migration between a primary store and a relational rich store.

export_store() reads a primary store end to end and writes one flat file per
table (<table>.csv) in the bulk-load row format. import_directory() bulk loads
such a directory into a relational backend, table by table in load order.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from sqlalchemy.engine import Engine

from richstore.adapters.database.loaders import BulkLoad, create_bulk_load
from richstore.adapters.database.sql_index import create_index_engine
from richstore.storage.base_store import BaseStore
from richstore.storage.bulk_format import (
    LOAD_ORDER,
    TABLE_COLUMNS,
    format_line,
    header_line,
    rows_for_block,
    rows_for_transaction,
)
from richstore.storage.models import Base

logger = logging.getLogger(__name__)

EXPORT_SUFFIX = ".csv"


def export_path(directory: str, table: str) -> Path:
    return Path(directory) / f"{table}{EXPORT_SUFFIX}"


def export_store(store: BaseStore, output_dir: str, header: bool = False) -> Dict[str, int]:
    """
    Write every block and transaction of `store` as flat files

    Transactions that are not part of any stored block are exported with
    their transaction, signer and updated-address rows only.

    Args:
        store: Primary store to read
        output_dir: Directory receiving <table>.csv files
        header: Write the column names as the first line

    Returns:
        Rows written per table
    """
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    counts = {table: 0 for table in TABLE_COLUMNS}
    files = {table: open(export_path(output_dir, table), "w", encoding="utf-8", newline="") for table in TABLE_COLUMNS}
    try:
        if header:
            for table, f in files.items():
                f.write(header_line(table))

        def write(rows):
            for table, table_rows in rows.items():
                for row in table_rows:
                    files[table].write(format_line(row))
                counts[table] += len(table_rows)

        exported_tx_ids = set()
        for block_hash in store.iterate_block_hashes():
            block = store.get_block(block_hash)
            if block is None:
                continue
            write(rows_for_block(block))
            exported_tx_ids.update(tx.id for tx in block.transactions)

        for tx_id in store.iterate_transaction_ids():
            if tx_id in exported_tx_ids:
                continue
            tx = store.get_transaction(tx_id)
            if tx is not None:
                write(rows_for_transaction(tx))
    finally:
        for f in files.values():
            f.close()

    logger.info(f"Exported {counts} rows to {output_dir}")
    return counts


def import_directory(bulk_load: BulkLoad, input_dir: str, has_header: bool = False) -> Dict[str, int]:
    """
    Bulk load the <table>.csv files of an export directory

    Missing files are skipped, so a partial export can be loaded.

    Returns:
        Rows the engine reports as affected, per loaded table
    """
    loaded = {}
    for table in LOAD_ORDER:
        path = export_path(input_dir, table)
        if not path.exists():
            logger.warning(f"No {path.name} in {input_dir}, skipping {table}")
            continue
        loaded[table] = bulk_load.load(table, str(path), has_header=has_header)
        logger.info(f"Loaded {path.name} into {table}")
    return loaded


def import_into_database(
    input_dir: str,
    database_url: Optional[str] = None,
    engine: Optional[Engine] = None,
    has_header: bool = False,
) -> Dict[str, int]:
    """Create the rich store tables on a database and bulk load an export into them."""
    if engine is None:
        if database_url is None:
            raise ValueError("Either database_url or engine is required")
        engine = create_index_engine(database_url)
    Base.metadata.create_all(engine)
    return import_directory(create_bulk_load(engine), input_dir, has_header=has_header)
