"""
Behaviour shared by both reference index variants: row counts, idempotency,
ordering, pagination, filters and cascading deletes.
"""

import dataclasses

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from factories import make_address, make_chain, make_tx
from richstore.adapters.database.mongodb_index import MongoReferenceIndex
from richstore.adapters.database.sql_index import SqlReferenceIndex


def _index_all(index, blocks):
    for block in blocks:
        index.index(block)
    index.flush()


def test_index_row_counts(reference_index):
    """N transactions give N tx and signer references, one address reference per updated address"""
    signer = make_address("alice")
    blocks = make_chain(4, txs_per_block=2, addresses_per_tx=3, signer=signer)
    _index_all(reference_index, blocks)

    assert len(reference_index.iterate_tx_references()) == 8
    assert len(reference_index.iterate_signer_references(signer)) == 8
    for tx in blocks[0].transactions:
        for address in tx.updated_addresses:
            refs = reference_index.iterate_updated_address_references(address)
            assert [r.tx_id for r in refs] == [tx.id]


def test_index_is_idempotent(reference_index):
    signer = make_address("alice")
    blocks = make_chain(3, signer=signer)

    assert reference_index.index(blocks[0]) is True
    assert reference_index.index(blocks[0]) is False
    _index_all(reference_index, blocks)
    _index_all(reference_index, blocks)

    assert len(reference_index.iterate_tx_references()) == 3
    assert len(reference_index.iterate_signer_references(signer)) == 3
    assert blocks[2].hash in reference_index.block_cache


def test_tx_reference_lookup_by_id(reference_index):
    blocks = make_chain(3)
    _index_all(reference_index, blocks)

    tx = blocks[1].transactions[0]
    refs = reference_index.iterate_tx_references(tx.id)
    assert len(refs) == 1
    assert refs[0].block_hash == blocks[1].hash
    assert refs[0].tx_nonce == tx.nonce


def test_fork_reinclusion_overwrites_tx_reference(reference_index):
    """A transaction re-included by another block points at the latest block"""
    main = make_chain(2)
    fork = make_chain(2, label="fork")
    tx = main[1].transactions[0]
    fork_block = dataclasses.replace(fork[1], transactions=(tx,))
    _index_all(reference_index, main + [fork_block])

    refs = reference_index.iterate_tx_references(tx.id)
    assert [r.block_hash for r in refs] == [fork_block.hash]


def test_ordering_is_by_nonce_not_insertion(reference_index):
    signer = make_address("bob")
    txs = [make_tx(f"n{nonce}", nonce=nonce, signer=signer) for nonce in (5, 1, 3)]
    for tx in txs:
        reference_index.index_transaction(tx)
    reference_index.flush()

    assert [r.tx_nonce for r in reference_index.iterate_signer_references(signer)] == [1, 3, 5]
    assert [r.tx_nonce for r in reference_index.iterate_signer_references(signer, desc=True)] == [5, 3, 1]


def test_pagination_and_offset_past_end(reference_index):
    signer = make_address("carol")
    _index_all(reference_index, make_chain(10, signer=signer))

    page = reference_index.iterate_signer_references(signer, offset=3, limit=4)
    assert [r.tx_nonce for r in page] == [3, 4, 5, 6]

    page = reference_index.iterate_signer_references(signer, desc=True, offset=3, limit=4)
    assert [r.tx_nonce for r in page] == [6, 5, 4, 3]

    assert reference_index.iterate_signer_references(signer, offset=10) == []
    assert reference_index.iterate_signer_references(signer, offset=50, limit=5) == []
    assert reference_index.iterate_signer_references(signer, limit=0) == []


def test_unknown_filter_is_empty(reference_index):
    _index_all(reference_index, make_chain(2))
    assert reference_index.iterate_signer_references(make_address("nobody")) == []
    assert reference_index.iterate_updated_address_references(make_address("nobody")) == []


def test_negative_pagination_arguments_rejected(reference_index):
    with pytest.raises(ValueError):
        reference_index.iterate_tx_references(offset=-1)
    with pytest.raises(ValueError):
        reference_index.iterate_tx_references(limit=-1)


def test_standalone_transaction_has_no_tx_reference(reference_index):
    tx = make_tx("loose", nonce=0, updated_addresses=[make_address("z")])
    reference_index.index_transaction(tx)
    reference_index.flush()

    assert reference_index.iterate_tx_references(tx.id) == []
    assert [r.tx_id for r in reference_index.iterate_signer_references(tx.signer)] == [tx.id]
    assert [r.tx_id for r in reference_index.iterate_updated_address_references(make_address("z"))] == [tx.id]


def test_delete_transaction_cascades(reference_index):
    signer = make_address("dave")
    blocks = make_chain(3, signer=signer)
    _index_all(reference_index, blocks)
    tx = blocks[1].transactions[0]

    reference_index.delete_transaction(tx.id)

    assert reference_index.iterate_tx_references(tx.id) == []
    assert tx.id not in [r.tx_id for r in reference_index.iterate_signer_references(signer)]
    for address in tx.updated_addresses:
        assert reference_index.iterate_updated_address_references(address) == []


def test_delete_block_removes_tx_references_and_cache_entry(reference_index):
    blocks = make_chain(2)
    _index_all(reference_index, blocks)

    reference_index.delete_block(blocks[0].hash)

    assert blocks[0].hash not in reference_index.block_cache
    remaining = reference_index.iterate_tx_references()
    assert [r.block_hash for r in remaining] == [blocks[1].hash]


def test_delete_before_flush_is_not_resurrected(reference_index):
    """Rows still staged when a delete arrives stay deleted after later loads"""
    signer = make_address("erin")
    blocks = make_chain(2, signer=signer)
    for block in blocks:
        reference_index.index(block)
    tx = blocks[0].transactions[0]

    reference_index.delete_transaction(tx.id)
    reference_index.flush()

    assert [r.tx_id for r in reference_index.iterate_signer_references(signer)] == [blocks[1].transactions[0].id]


def test_block_listing_capability(reference_index):
    if isinstance(reference_index, SqlReferenceIndex):
        assert reference_index.supports_block_listing is True
    else:
        assert isinstance(reference_index, MongoReferenceIndex)
        assert reference_index.supports_block_listing is False


SIGNER = make_address("hypothesis")
CHAIN = make_chain(12, signer=SIGNER)


@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    offset=st.integers(min_value=0, max_value=15),
    limit=st.one_of(st.none(), st.integers(min_value=0, max_value=15)),
    desc=st.booleans(),
)
def test_pagination_matches_slice(reference_index, offset, limit, desc):
    """Any (offset, limit, desc) page equals the same slice of the nonce-ordered rows"""
    for block in CHAIN:
        reference_index.index(block)
    reference_index.flush()

    nonces = sorted(tx.nonce for block in CHAIN for tx in block.transactions)
    if desc:
        nonces.reverse()
    end = None if limit is None else offset + limit
    expected = nonces[offset:end]

    page = reference_index.iterate_signer_references(SIGNER, desc=desc, offset=offset, limit=limit)
    assert [r.tx_nonce for r in page] == expected
