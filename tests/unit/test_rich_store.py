"""
Unit tests for the RichStore facade: delegation, the availability policy on
index failures and block digest cache coherence.
"""

import logging
import uuid
from datetime import datetime, timezone

import pytest

from factories import make_address, make_chain, make_tx
from richstore.core.exceptions import BackendUnavailableError
from richstore.storage.memory_storage import MemoryStore
from richstore.storage.rich_store import RichStore


@pytest.fixture
def rich_store(memory_store, reference_index):
    store = RichStore(memory_store, reference_index)
    yield store


def test_put_block_writes_primary_and_index(rich_store, memory_store):
    signer = make_address("alice")
    blocks = make_chain(3, signer=signer)
    for block in blocks:
        rich_store.put_block(block)
    rich_store.flush()

    assert memory_store.count_blocks() == 3
    assert memory_store.count_transactions() == 3
    assert [r.tx_nonce for r in rich_store.iterate_signer_references(signer)] == [0, 1, 2]
    assert rich_store.get_tx_block_hash(blocks[1].transactions[0].id) == blocks[1].hash


def test_put_transaction_indexes_standalone_tx(rich_store, memory_store):
    tx = make_tx("loose", nonce=4, updated_addresses=[make_address("z")])
    rich_store.put_transaction(tx)
    rich_store.flush()

    assert memory_store.get_transaction(tx.id) == tx
    assert [r.tx_id for r in rich_store.iterate_updated_address_references(make_address("z"))] == [tx.id]
    assert rich_store.get_tx_block_hash(tx.id) is None


def test_index_write_failure_does_not_fail_primary_write(memory_store, sql_index, monkeypatch, caplog):
    """Index errors on the write path are logged and swallowed"""
    def broken_append(rows, blocks=1):
        raise OSError("disk full")

    monkeypatch.setattr(sql_index.loader, "append", broken_append)
    store = RichStore(memory_store, sql_index)
    block = make_chain(1)[0]

    with caplog.at_level(logging.ERROR, logger="richstore.storage.rich_store"):
        store.put_block(block)
        store.put_transaction(make_tx("loose"))

    assert store.get_block(block.hash) == block
    assert "disk full" in caplog.text
    # Not cached either, so a later replay indexes it
    assert block.hash not in store.block_cache


def test_primary_write_failure_propagates(sql_index):
    class BrokenStore(MemoryStore):
        def put_block(self, block):
            raise IOError("primary store is read-only")

    store = RichStore(BrokenStore(), sql_index)
    block = make_chain(1)[0]

    with pytest.raises(IOError):
        store.put_block(block)
    assert sql_index.loader.pending_blocks == 0


def test_index_read_failure_propagates(rich_store, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(rich_store.index, "iterate_signer_references", broken)
    with pytest.raises(BackendUnavailableError):
        rich_store.iterate_signer_references(make_address("alice"))


def test_invalid_page_is_not_wrapped(rich_store):
    with pytest.raises(ValueError):
        rich_store.iterate_tx_references(offset=-5)


def test_cache_coherence_after_delete(rich_store, memory_store):
    """After deleting h, containment is false and lookups agree with the primary store"""
    blocks = make_chain(2)
    for block in blocks:
        rich_store.put_block(block)
    target = blocks[0].hash

    assert target in rich_store.block_cache
    assert rich_store.get_block_digest(target) == memory_store.get_block_digest(target)

    assert rich_store.delete_block(target) is True

    assert target not in rich_store.block_cache
    assert rich_store.contains_block(target) is False
    assert rich_store.get_block_digest(target) is None
    assert rich_store.get_block_digest(target) == memory_store.get_block_digest(target)
    assert rich_store.delete_block(target) is False


def test_digest_reads_fall_through_without_populating_cache(rich_store, memory_store):
    block = make_chain(1)[0]
    memory_store.put_block(block)

    assert rich_store.get_block_digest(block.hash) == block.to_digest()
    assert rich_store.get_block_index(block.hash) == 0
    assert rich_store.contains_block(block.hash) is True
    assert block.hash not in rich_store.block_cache


def test_delete_transaction_cascades(rich_store, memory_store):
    signer = make_address("bob")
    blocks = make_chain(2, signer=signer)
    for block in blocks:
        rich_store.put_block(block)
    tx = blocks[0].transactions[0]

    assert rich_store.delete_transaction(tx.id) is True
    rich_store.flush()

    assert memory_store.get_transaction(tx.id) is None
    assert rich_store.iterate_tx_references(tx.id) == []
    assert [r.tx_id for r in rich_store.iterate_signer_references(signer)] == [blocks[1].transactions[0].id]


def test_untouched_operations_are_delegated(rich_store, memory_store):
    chain_id = uuid.uuid4()
    block = make_chain(1)[0]
    when = datetime(2024, 3, 1, tzinfo=timezone.utc)

    rich_store.put_block(block)
    rich_store.set_canonical_chain_id(chain_id)
    assert rich_store.append_index(chain_id, block.hash) == 0
    rich_store.increase_tx_nonce(chain_id, make_address("alice"), 3)
    rich_store.stage_transaction_ids([block.transactions[0].id])
    rich_store.set_block_perceived_time(block.hash, when)

    assert memory_store.get_canonical_chain_id() == chain_id
    assert rich_store.index_block_hash(chain_id, -1) == block.hash
    assert rich_store.count_index(chain_id) == 1
    assert rich_store.get_tx_nonce(chain_id, make_address("alice")) == 3
    assert list(rich_store.iterate_staged_transaction_ids()) == [block.transactions[0].id]
    assert rich_store.get_block_perceived_time(block.hash) == when
    assert list(rich_store.list_chain_ids()) == [chain_id]


def test_close_closes_index_and_store(memory_store, sql_index, monkeypatch):
    closed = []
    monkeypatch.setattr(memory_store, "close", lambda: closed.append("store"))
    store = RichStore(memory_store, sql_index)
    store.put_block(make_chain(1)[0])

    store.close()

    assert closed == ["store"]
    assert sql_index.loader.staged_files() == []
