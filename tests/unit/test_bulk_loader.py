"""
Unit tests for the batched bulk loader: thresholds, rotation, partial failure
and recovery of orphaned staging files.
"""

import os

import pytest

from factories import FakeClock, make_block, make_chain, make_tx
from richstore.adapters.database.bulk_loader import BatchedBulkLoader, staging_dir_for
from richstore.adapters.database.loaders import BulkLoad
from richstore.storage.bulk_format import (
    BLOCK_TABLE,
    LOAD_ORDER,
    SIGNER_REFERENCES_TABLE,
    TRANSACTION_TABLE,
    TX_REFERENCES_TABLE,
    UPDATED_ADDRESS_REFERENCES_TABLE,
    format_line,
    read_rows,
    rows_for_block,
    rows_for_transaction,
)


class RecordingBulkLoad(BulkLoad):
    """Parses each file it is asked to load and remembers the rows"""

    def __init__(self, failing_tables=()):
        super().__init__(engine=None)
        self.failing_tables = set(failing_tables)
        self.loads = []
        self.rows = {}

    def load(self, table, path, has_header=False):
        if table in self.failing_tables:
            raise RuntimeError(f"{table} is locked")
        rows = list(read_rows(table, path, has_header))
        self.loads.append(table)
        self.rows.setdefault(table, []).extend(rows)
        return len(rows)


def _loader(tmp_path, bulk_load=None, clock=None, **kwargs):
    return BatchedBulkLoader(
        bulk_load or RecordingBulkLoad(),
        str(tmp_path / "staging"),
        clock=clock or FakeClock(),
        **kwargs,
    )


def test_flush_triggers_on_fiftieth_block(tmp_path):
    """No load happens before the 50th block; the 50th block loads the batch"""
    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load)

    blocks = make_chain(50)
    for block in blocks[:49]:
        assert loader.append(rows_for_block(block)) is False
    assert bulk_load.loads == []
    assert loader.pending_blocks == 49

    assert loader.append(rows_for_block(blocks[49])) is True
    assert loader.flush_count == 1
    assert loader.pending_blocks == 0
    assert len(bulk_load.rows[TX_REFERENCES_TABLE]) == 50
    assert len(bulk_load.rows[BLOCK_TABLE]) == 50


def test_flush_triggers_early_on_elapsed_time(tmp_path):
    clock = FakeClock()
    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load, clock=clock)

    blocks = make_chain(3)
    assert loader.append(rows_for_block(blocks[0])) is False
    clock.advance(9.5)
    assert loader.append(rows_for_block(blocks[1])) is False
    clock.advance(0.5)
    assert loader.append(rows_for_block(blocks[2])) is True
    assert len(bulk_load.rows[BLOCK_TABLE]) == 3


def test_tables_load_in_order_with_block_last(tmp_path):
    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load, flush_block_count=1)
    loader.append(rows_for_block(make_chain(1)[0]))
    assert bulk_load.loads == list(LOAD_ORDER)


def test_staging_files_rotate_after_flush(tmp_path):
    loader = _loader(tmp_path, flush_block_count=2)
    before = loader.current_paths

    for block in make_chain(2):
        loader.append(rows_for_block(block))

    after = loader.current_paths
    assert set(before.values()).isdisjoint(after.values())
    assert not any(path.exists() for path in before.values())
    assert all(path.stat().st_size == 0 for path in after.values())


def test_standalone_transactions_do_not_count_as_blocks(tmp_path):
    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load, flush_block_count=2)

    for n in range(5):
        assert loader.append(rows_for_transaction(make_tx(f"loose{n}", nonce=n)), blocks=0) is False
    assert loader.pending_blocks == 0

    assert loader.flush() is True
    assert len(bulk_load.rows[TRANSACTION_TABLE]) == 5
    assert TX_REFERENCES_TABLE not in bulk_load.rows


def test_flush_of_empty_batch_is_noop(tmp_path):
    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load)
    assert loader.flush() is False
    assert bulk_load.loads == []


def test_partial_failure_holds_back_block_file(tmp_path):
    """Other reference tables still load; the block row waits for its references"""
    bulk_load = RecordingBulkLoad(failing_tables={TX_REFERENCES_TABLE})
    loader = _loader(tmp_path, bulk_load, flush_block_count=1)

    loader.append(rows_for_block(make_chain(1)[0]))

    assert bulk_load.loads == [TRANSACTION_TABLE, SIGNER_REFERENCES_TABLE, UPDATED_ADDRESS_REFERENCES_TABLE]
    assert loader.kept_file_count == 2
    leftovers = [p for p in loader.staged_files() if p.stat().st_size > 0]
    assert sorted(p.name.split(".")[1] for p in leftovers) == [BLOCK_TABLE, TX_REFERENCES_TABLE]

    # The next instance picks the files up, block last
    retry = RecordingBulkLoad()
    recovered = _loader(tmp_path, retry)
    assert recovered.recovered_files == 2
    assert retry.loads == [TX_REFERENCES_TABLE, BLOCK_TABLE]


def test_kept_file_loads_before_newer_batch(tmp_path):
    """A transaction re-included in a fork keeps pointing at the fork block"""
    bulk_load = RecordingBulkLoad(failing_tables={TX_REFERENCES_TABLE})
    loader = _loader(tmp_path, bulk_load, flush_block_count=1)

    tx = make_tx("forked", nonce=0)
    block_a = make_block(0, [tx], label="a")
    block_b = make_block(0, [tx], label="b")

    loader.append(rows_for_block(block_a))
    bulk_load.failing_tables.clear()
    loader.append(rows_for_block(block_b))

    refs = bulk_load.rows[TX_REFERENCES_TABLE]
    assert [row["block_hash"] for row in refs] == [block_a.hash.hex(), block_b.hash.hex()]
    assert [row["hash"] for row in bulk_load.rows[BLOCK_TABLE]] == [block_a.hash.hex(), block_b.hash.hex()]
    assert loader.kept_file_count == 0

    # Nothing is left for a restart to replay over the newer mapping
    retry = RecordingBulkLoad()
    assert _loader(tmp_path, retry).recovered_files == 0
    assert retry.loads == []


def test_newer_files_wait_behind_kept_file(tmp_path):
    bulk_load = RecordingBulkLoad(failing_tables={TX_REFERENCES_TABLE})
    loader = _loader(tmp_path, bulk_load, flush_block_count=1)

    for block in make_chain(2):
        loader.append(rows_for_block(block))

    assert TX_REFERENCES_TABLE not in bulk_load.rows
    assert BLOCK_TABLE not in bulk_load.rows
    assert loader.kept_file_count == 4

    bulk_load.failing_tables.clear()
    assert loader.flush() is False
    assert bulk_load.loads[-4:] == [TX_REFERENCES_TABLE, TX_REFERENCES_TABLE, BLOCK_TABLE, BLOCK_TABLE]
    assert loader.kept_file_count == 0


def _write_orphan(directory, prefix, table, rows):
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"{prefix}.{table}.tmp")
    with open(path, "w", encoding="utf-8", newline="") as f:
        for row in rows:
            f.write(format_line(row))
    return path


def test_recovery_loads_and_deletes_orphans(tmp_path):
    staging = tmp_path / "staging"
    blocks = make_chain(3)
    for n, block in enumerate(blocks):
        for table, rows in rows_for_block(block).items():
            _write_orphan(staging, f"orphan{n}", table, rows)

    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load)

    assert loader.recovered_files == 15
    assert len(bulk_load.rows[BLOCK_TABLE]) == 3
    assert all(path.stat().st_size == 0 for path in loader.staged_files())
    assert len(loader.staged_files()) == 5  # the fresh, empty batch


def test_recovery_quarantines_malformed_orphan(tmp_path):
    staging = tmp_path / "staging"
    block = make_chain(1)[0]
    _write_orphan(staging, "good", TX_REFERENCES_TABLE, rows_for_block(block)[TX_REFERENCES_TABLE])
    bad = _write_orphan(staging, "bad", BLOCK_TABLE, [("1", "deadbeef")])

    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load)

    assert loader.recovered_files == 1
    assert bulk_load.loads == [TX_REFERENCES_TABLE]
    assert not os.path.exists(bad)
    assert [p.name for p in loader.quarantined_files()] == ["bad.block.corrupt"]


def test_recovery_removes_empty_orphans(tmp_path):
    staging = tmp_path / "staging"
    empty = _write_orphan(staging, "empty", BLOCK_TABLE, [])

    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load)

    assert loader.recovered_files == 0
    assert bulk_load.loads == []
    assert not os.path.exists(empty)


def test_close_leaves_no_staging_files(tmp_path):
    bulk_load = RecordingBulkLoad()
    loader = _loader(tmp_path, bulk_load)
    loader.append(rows_for_block(make_chain(1)[0]))
    loader.close()

    assert len(bulk_load.rows[BLOCK_TABLE]) == 1
    assert loader.staged_files() == []


def test_invalid_thresholds(tmp_path):
    with pytest.raises(ValueError):
        _loader(tmp_path, flush_block_count=0)
    with pytest.raises(ValueError):
        _loader(tmp_path, flush_interval=0)


def test_staging_dir_for():
    assert staging_dir_for("data/staging", "mainnet") == os.path.join("data/staging", "mainnet")
    assert staging_dir_for("data/staging", None) == "data/staging"
