"""
Engine-native bulk load primitives.

Each primitive ingests one flat file (see richstore.storage.bulk_format) into
one table in a single operation, replacing rows whose natural key already
exists. Loading the same file twice therefore leaves the table unchanged.
"""

import os
import logging
from abc import ABC, abstractmethod

from sqlalchemy import insert, text
from sqlalchemy.engine import Engine

from richstore.core.exceptions import ConfigurationError
from richstore.storage.bulk_format import TABLE_COLUMNS, DELIMITER, read_rows
from richstore.storage.models import Base

logger = logging.getLogger(__name__)


class BulkLoad(ABC):
    """Load a flat file into a table with replace-on-duplicate-key semantics"""

    def __init__(self, engine: Engine):
        self.engine = engine

    @abstractmethod
    def load(self, table: str, path: str, has_header: bool = False) -> int:
        """
        Load `path` into `table`.

        Returns:
            Number of rows the engine reports as affected
        """
        pass


class MySQLBulkLoad(BulkLoad):
    """LOAD DATA LOCAL INFILE ... REPLACE, executed by the server in one pass"""

    def build_statement(self, table: str, has_header: bool = False):
        preparer = self.engine.dialect.identifier_preparer
        columns = ", ".join(preparer.quote(column) for column in TABLE_COLUMNS[table])
        ignore = "IGNORE 1 LINES " if has_header else ""
        return text(
            f"LOAD DATA LOCAL INFILE :path REPLACE INTO TABLE {preparer.quote(table)} "
            f"CHARACTER SET utf8mb4 "
            f"FIELDS TERMINATED BY '{DELIMITER}' LINES TERMINATED BY '\\n' "
            f"{ignore}({columns})"
        )

    def load(self, table: str, path: str, has_header: bool = False) -> int:
        statement = self.build_statement(table, has_header)
        with self.engine.begin() as conn:
            result = conn.execute(statement, {"path": os.path.abspath(path)})
        logger.debug(f"LOAD DATA into {table} from {path}: {result.rowcount} rows affected")
        return result.rowcount


class SQLiteBulkLoad(BulkLoad):
    """INSERT OR REPLACE of the parsed file inside one transaction"""

    BATCH_SIZE = 1000

    def load(self, table: str, path: str, has_header: bool = False) -> int:
        statement = insert(Base.metadata.tables[table]).prefix_with("OR REPLACE")
        count = 0
        batch = []
        with self.engine.begin() as conn:
            for row in read_rows(table, path, has_header):
                batch.append(row)
                if len(batch) >= self.BATCH_SIZE:
                    conn.execute(statement, batch)
                    count += len(batch)
                    batch = []
            if batch:
                conn.execute(statement, batch)
                count += len(batch)
        logger.debug(f"Loaded {count} rows into {table} from {path}")
        return count


def create_bulk_load(engine: Engine) -> BulkLoad:
    """Pick the bulk load primitive for an engine's SQL dialect."""
    dialect = engine.dialect.name
    if dialect in ("mysql", "mariadb"):
        return MySQLBulkLoad(engine)
    if dialect == "sqlite":
        return SQLiteBulkLoad(engine)
    raise ConfigurationError(f"No bulk load primitive for SQL dialect '{dialect}'")
