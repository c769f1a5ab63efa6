"""
Batched bulk loading of reference rows.

Rows are not written to the database one by one. Each indexed block appends
its rows to five staging files (one per table) inside an instance-scoped
staging directory. When enough blocks have accumulated, or enough time has
passed since the last load, the files are closed, swapped for fresh ones and
bulk loaded into their tables.

States: Collecting -> Flushing -> Collecting. The swap happens under the
lock; the bulk load itself runs outside it so ingestion is not blocked while
the database works.

A file whose load fails is kept and queued. Every later load retries the
queue first, table by table and oldest batch first, and a table's newer
files wait behind a kept one. A block file loads only after the other files
of its batch, so a block row being present means its references are.

Any *.tmp file found in the staging directory at construction belongs to a
batch a previous process never loaded. Those are queued the same way (or
quarantined when unreadable) before the first write is accepted. Loads
replace on duplicate keys, so loading a batch twice is harmless.
"""

import os
import time
import uuid
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from richstore.adapters.database.loaders import BulkLoad
from richstore.core.exceptions import MalformedStagingFileError
from richstore.storage.bulk_format import (
    BLOCK_TABLE,
    LOAD_ORDER,
    TABLE_COLUMNS,
    Row,
    format_line,
    table_from_filename,
    validate_file,
)

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".tmp"
CORRUPT_SUFFIX = ".corrupt"


class StagingBatch:
    """Five open staging files sharing one prefix"""

    def __init__(self, staging_dir: Path):
        # Time-ordered so batches of one process sort in staging order
        self.prefix = f"{time.time_ns():016x}{uuid.uuid4().hex[:16]}"
        self.paths: Dict[str, Path] = {
            table: staging_dir / f"{self.prefix}.{table}{STAGING_SUFFIX}" for table in TABLE_COLUMNS
        }
        self._files = {
            table: open(path, "w", encoding="utf-8", newline="") for table, path in self.paths.items()
        }
        self.row_count = 0
        self.closed = False

    def append(self, rows: Dict[str, List[Row]]):
        for table, table_rows in rows.items():
            f = self._files[table]
            for row in table_rows:
                f.write(format_line(row))
            self.row_count += len(table_rows)

    def close(self):
        if self.closed:
            return
        for f in self._files.values():
            f.flush()
            os.fsync(f.fileno())
            f.close()
        self.closed = True

    def discard(self):
        """Close and delete the files; only valid for an empty batch."""
        self.close()
        for path in self.paths.values():
            path.unlink(missing_ok=True)

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0


class BatchedBulkLoader:
    """Accumulates rows in staging files and bulk loads them on a threshold"""

    def __init__(
        self,
        bulk_load: BulkLoad,
        staging_dir: str,
        flush_block_count: int = 50,
        flush_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the loader and recover orphaned batches

        Args:
            bulk_load: Engine-native load primitive
            staging_dir: Directory owned by this store instance
            flush_block_count: Blocks per batch before a load is triggered
            flush_interval: Seconds since the last load before a load is triggered
            clock: Monotonic time source
        """
        if flush_block_count <= 0:
            raise ValueError("flush_block_count must be positive")
        if flush_interval <= 0:
            raise ValueError("flush_interval must be positive")

        self.bulk_load = bulk_load
        self.staging_dir = Path(staging_dir)
        self.flush_block_count = flush_block_count
        self.flush_interval = flush_interval
        self.clock = clock

        self._lock = threading.Lock()
        self._load_lock = threading.Lock()
        # (prefix, files still to load) per batch, oldest first
        self._pending: List[Tuple[str, Dict[str, Path]]] = []

        self.staging_dir.mkdir(parents=True, exist_ok=True)
        self.recovered_files = self.recover()

        self._batch = StagingBatch(self.staging_dir)
        self._block_count = 0
        self._last_flush = self.clock()
        self.flush_count = 0

    @property
    def pending_blocks(self) -> int:
        return self._block_count

    @property
    def current_paths(self) -> Dict[str, Path]:
        return dict(self._batch.paths)

    def append(self, rows: Dict[str, List[Row]], blocks: int = 1) -> bool:
        """
        Stage rows and load the batch if a threshold is reached.

        Args:
            rows: Rows keyed by table name
            blocks: Number of blocks these rows came from (0 for a standalone transaction)

        Returns:
            True if this call triggered a load
        """
        with self._lock:
            self._batch.append(rows)
            self._block_count += blocks
            if not self._should_flush():
                return False
            batch = self._swap()

        self._load_batch(batch)
        return True

    def flush(self) -> bool:
        """Load whatever is staged, regardless of thresholds. Kept files are retried too."""
        with self._lock:
            if self._batch.is_empty:
                self._block_count = 0
                self._last_flush = self.clock()
                batch = None
            else:
                batch = self._swap()

        if batch is None:
            with self._load_lock:
                if self._pending:
                    self._load_pending()
            return False
        self._load_batch(batch)
        return True

    def close(self):
        """Load the pending batch and remove the empty staging files left behind."""
        self.flush()
        with self._lock:
            self._batch.discard()

    def _should_flush(self) -> bool:
        if self._block_count >= self.flush_block_count:
            return True
        return self.clock() - self._last_flush >= self.flush_interval

    def _swap(self) -> StagingBatch:
        """Close the current batch and start a fresh one. Caller holds the lock."""
        batch = self._batch
        batch.close()
        self._batch = StagingBatch(self.staging_dir)
        self._block_count = 0
        self._last_flush = self.clock()
        return batch

    def _load_batch(self, batch: StagingBatch):
        # Loads are serialized so batches reach the database in staging order
        with self._load_lock:
            self._pending.append((batch.prefix, self._non_empty(batch.paths)))
            loaded = self._load_pending()
            self.flush_count += 1

            kept = self.kept_file_count
            if kept:
                logger.warning(
                    f"Batch {batch.prefix}: {loaded} files loaded, "
                    f"{kept} kept and retried on the next load"
                )
            else:
                logger.info(f"Loaded batch of {batch.row_count} rows ({loaded} files)")

    @staticmethod
    def _non_empty(paths: Dict[str, Path]) -> Dict[str, Path]:
        remaining = {}
        for table, path in paths.items():
            if path.stat().st_size == 0:
                path.unlink()
            else:
                remaining[table] = path
        return remaining

    def _load_pending(self) -> int:
        """
        Load every pending staging file that may go in now. Caller holds the load lock.

        Per table, files load oldest batch first and stop at the first
        failure, so a newer row never lands before an older one it must
        replace. A block file waits until every other file of its batch
        has loaded.

        Returns:
            Number of files loaded
        """
        loaded = 0
        for table in LOAD_ORDER:
            for _, paths in self._pending:
                path = paths.get(table)
                if path is None:
                    continue
                if table == BLOCK_TABLE and len(paths) > 1:
                    break
                if not self._load_file(table, path):
                    break
                del paths[table]
                loaded += 1
        self._pending = [(prefix, paths) for prefix, paths in self._pending if paths]
        return loaded

    @property
    def kept_file_count(self) -> int:
        """Staging files of earlier batches still waiting to be loaded."""
        return sum(len(paths) for _, paths in self._pending)

    def _load_file(self, table: str, path: Path) -> bool:
        """Load one staging file and delete it; on failure the file is kept."""
        try:
            self.bulk_load.load(table, str(path))
        except Exception as e:
            logger.error(f"Failed to bulk load {path.name} into {table}: {e}")
            return False
        path.unlink()
        return True

    def recover(self) -> int:
        """
        Load and delete staging files left behind by a previous process.

        Files are grouped by batch and loaded oldest batch first, with the
        same ordering rules as a live load. An unreadable file is renamed
        with a .corrupt suffix and skipped. Files that fail to load stay
        queued ahead of any new batch.

        Returns:
            Number of orphaned files loaded
        """
        batches: Dict[str, Dict[str, Path]] = {}
        for path in self.staging_dir.glob(f"*{STAGING_SUFFIX}"):
            table = table_from_filename(path.name)
            if table is None:
                logger.warning(f"Ignoring unrecognised staging file {path.name}")
                continue
            if path.stat().st_size == 0:
                path.unlink()
                continue
            try:
                validate_file(table, str(path))
            except MalformedStagingFileError as e:
                logger.error(f"Skipping malformed staging file: {e}")
                path.rename(path.with_suffix(CORRUPT_SUFFIX))
                continue
            prefix = path.name[:-len(f".{table}{STAGING_SUFFIX}")]
            batches.setdefault(prefix, {})[table] = path

        total = sum(len(paths) for paths in batches.values())
        if not total:
            return 0
        logger.info(f"Recovering {total} orphaned staging files from {self.staging_dir}")

        ordered = sorted(
            batches.items(),
            key=lambda item: (min(p.stat().st_mtime for p in item[1].values()), item[0]),
        )
        with self._load_lock:
            self._pending[:0] = ordered
            recovered = self._load_pending()

        logger.info(f"Recovered {recovered} of {total} orphaned staging files")
        return recovered

    def staged_files(self) -> List[Path]:
        """Every staging file currently in the directory."""
        return sorted(self.staging_dir.glob(f"*{STAGING_SUFFIX}"))

    def quarantined_files(self) -> List[Path]:
        return sorted(self.staging_dir.glob(f"*{CORRUPT_SUFFIX}"))


def staging_dir_for(base_dir: str, name: Optional[str]) -> str:
    """Instance-scoped staging directory: one subdirectory per logical store."""
    return os.path.join(base_dir, name) if name else base_dir
