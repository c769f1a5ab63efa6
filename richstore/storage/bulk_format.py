"""
Flat-file row format shared by the bulk loader and the export tool.

One row per line, fields separated by ';', lines terminated by '\\n', columns
in the fixed order of TABLE_COLUMNS, NULL written as '\\N'. Bytes are written
as lowercase hex, integers in decimal and timestamps as ISO-8601 with a UTC
offset. None of these encodings can contain the separator, so no quoting is
needed.
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from richstore.core.exceptions import MalformedStagingFileError
from richstore.core.models import (
    Block,
    Transaction,
    TxReference,
    SignerReference,
    UpdatedAddressReference,
    to_hex,
    format_timestamp,
)

DELIMITER = ";"
LINE_TERMINATOR = "\n"
NULL = "\\N"

BLOCK_TABLE = "block"
TRANSACTION_TABLE = "transaction"
TX_REFERENCES_TABLE = "tx_references"
SIGNER_REFERENCES_TABLE = "signer_references"
UPDATED_ADDRESS_REFERENCES_TABLE = "updated_address_references"

TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    BLOCK_TABLE: (
        "index", "hash", "pre_evaluation_hash", "state_root_hash", "difficulty",
        "total_difficulty", "nonce", "miner", "previous_hash", "timestamp",
        "tx_hash", "bytes_length",
    ),
    TRANSACTION_TABLE: (
        "tx_id", "nonce", "signer", "signature", "timestamp", "public_key",
        "genesis_hash", "bytes_length",
    ),
    TX_REFERENCES_TABLE: ("tx_id", "block_hash", "tx_nonce"),
    SIGNER_REFERENCES_TABLE: ("signer", "tx_id", "tx_nonce"),
    UPDATED_ADDRESS_REFERENCES_TABLE: ("updated_address", "tx_id", "tx_nonce"),
}

# Columns that must parse as integers; everything else is text
INTEGER_COLUMNS: Dict[str, frozenset] = {
    BLOCK_TABLE: frozenset({"index", "difficulty", "total_difficulty", "bytes_length"}),
    TRANSACTION_TABLE: frozenset({"nonce", "bytes_length"}),
    TX_REFERENCES_TABLE: frozenset({"tx_nonce"}),
    SIGNER_REFERENCES_TABLE: frozenset({"tx_nonce"}),
    UPDATED_ADDRESS_REFERENCES_TABLE: frozenset({"tx_nonce"}),
}

NULLABLE_COLUMNS: Dict[str, frozenset] = {
    BLOCK_TABLE: frozenset({"state_root_hash", "miner", "previous_hash", "tx_hash"}),
    TRANSACTION_TABLE: frozenset({"genesis_hash"}),
    TX_REFERENCES_TABLE: frozenset(),
    SIGNER_REFERENCES_TABLE: frozenset(),
    UPDATED_ADDRESS_REFERENCES_TABLE: frozenset(),
}

# The block table goes last: a block row being present implies its
# references have already been loaded.
LOAD_ORDER: Tuple[str, ...] = (
    TRANSACTION_TABLE,
    TX_REFERENCES_TABLE,
    SIGNER_REFERENCES_TABLE,
    UPDATED_ADDRESS_REFERENCES_TABLE,
    BLOCK_TABLE,
)

Row = Tuple[Any, ...]


def block_row(block: Block) -> Row:
    return (
        block.index,
        to_hex(block.hash),
        to_hex(block.pre_evaluation_hash),
        to_hex(block.state_root_hash),
        block.difficulty,
        block.total_difficulty,
        to_hex(block.nonce),
        to_hex(block.miner),
        to_hex(block.previous_hash),
        format_timestamp(block.timestamp),
        to_hex(block.tx_hash),
        block.bytes_length,
    )


def transaction_row(tx: Transaction) -> Row:
    return (
        to_hex(tx.id),
        tx.nonce,
        to_hex(tx.signer),
        to_hex(tx.signature),
        format_timestamp(tx.timestamp),
        to_hex(tx.public_key),
        to_hex(tx.genesis_hash),
        tx.bytes_length,
    )


def tx_reference_row(ref: TxReference) -> Row:
    return to_hex(ref.tx_id), to_hex(ref.block_hash), ref.tx_nonce


def signer_reference_row(ref: SignerReference) -> Row:
    return to_hex(ref.signer), to_hex(ref.tx_id), ref.tx_nonce


def updated_address_reference_row(ref: UpdatedAddressReference) -> Row:
    return to_hex(ref.address), to_hex(ref.tx_id), ref.tx_nonce


def references_for_transaction(tx: Transaction) -> Tuple[SignerReference, List[UpdatedAddressReference]]:
    """Signer reference and one updated-address reference per updated address."""
    signer_ref = SignerReference(signer=tx.signer, tx_id=tx.id, tx_nonce=tx.nonce)
    address_refs = [
        UpdatedAddressReference(address=address, tx_id=tx.id, tx_nonce=tx.nonce)
        for address in sorted(tx.updated_addresses)
    ]
    return signer_ref, address_refs


def rows_for_transaction(tx: Transaction) -> Dict[str, List[Row]]:
    """Rows a standalone transaction contributes (no tx reference)."""
    signer_ref, address_refs = references_for_transaction(tx)
    return {
        TRANSACTION_TABLE: [transaction_row(tx)],
        SIGNER_REFERENCES_TABLE: [signer_reference_row(signer_ref)],
        UPDATED_ADDRESS_REFERENCES_TABLE: [updated_address_reference_row(r) for r in address_refs],
    }


def rows_for_block(block: Block) -> Dict[str, List[Row]]:
    """Rows a block contributes to each of the five tables."""
    rows: Dict[str, List[Row]] = {table: [] for table in TABLE_COLUMNS}
    for tx in block.transactions:
        for table, tx_rows in rows_for_transaction(tx).items():
            rows[table].extend(tx_rows)
        rows[TX_REFERENCES_TABLE].append(
            tx_reference_row(TxReference(tx_id=tx.id, block_hash=block.hash, tx_nonce=tx.nonce))
        )
    rows[BLOCK_TABLE].append(block_row(block))
    return rows


def format_line(values: Iterable[Any]) -> str:
    return DELIMITER.join(NULL if v is None else str(v) for v in values) + LINE_TERMINATOR


def header_line(table: str) -> str:
    return DELIMITER.join(TABLE_COLUMNS[table]) + LINE_TERMINATOR


def parse_line(table: str, line: str, path: str = "<memory>", line_number: int = 0) -> Dict[str, Any]:
    """Parse one line into a column -> value mapping, validating its shape."""
    columns = TABLE_COLUMNS[table]
    fields = line.rstrip("\r\n").split(DELIMITER)
    if len(fields) != len(columns):
        raise MalformedStagingFileError(
            path, line_number, f"expected {len(columns)} fields for {table}, got {len(fields)}"
        )

    row: Dict[str, Any] = {}
    for column, value in zip(columns, fields):
        if value == NULL:
            if column not in NULLABLE_COLUMNS[table]:
                raise MalformedStagingFileError(path, line_number, f"{column} must not be NULL")
            row[column] = None
        elif column in INTEGER_COLUMNS[table]:
            try:
                row[column] = int(value)
            except ValueError:
                raise MalformedStagingFileError(path, line_number, f"{column} is not an integer: {value!r}")
        else:
            row[column] = value
    return row


def read_rows(table: str, path: str, has_header: bool = False) -> Iterator[Dict[str, Any]]:
    """Yield parsed rows of a flat file; blank lines are ignored."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        for line_number, line in enumerate(f, start=1):
            if has_header and line_number == 1:
                continue
            if not line.strip():
                continue
            yield parse_line(table, line, path, line_number)


def validate_file(table: str, path: str, has_header: bool = False) -> int:
    """Parse a whole file, returning its row count or raising MalformedStagingFileError."""
    count = 0
    for _ in read_rows(table, path, has_header):
        count += 1
    return count


def table_from_filename(filename: str) -> Optional[str]:
    """Table a '<random>.<table>.tmp' staging file or '<table>.csv' export belongs to."""
    for suffix in (".tmp", ".csv"):
        if filename.endswith(suffix):
            stem = filename[:-len(suffix)]
            table = stem.rsplit(".", 1)[-1]
            return table if table in TABLE_COLUMNS else None
    return None
