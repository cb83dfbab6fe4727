"""
RingCT core data structures and wire format.
"""

from ringct.core.serialization import (
    ByteReader,
    ByteWriter,
    encode_leb128,
    decode_leb128,
    encode_leb128_list,
    decode_leb128_list,
    serialize_varint,
    deserialize_varint,
)
from ringct.core.types import KeyPair, Recipient, UTXO, UTXOCT, AnonOutput
from ringct.core.transaction import (
    OutPoint,
    TxInput,
    StandardOutput,
    CTOutput,
    RingCTOutput,
    DataOutput,
    Transaction,
    compute_txid,
    get_fee_from_outputs,
)

__all__ = [
    # Serialization
    "ByteReader",
    "ByteWriter",
    "encode_leb128",
    "decode_leb128",
    "encode_leb128_list",
    "decode_leb128_list",
    "serialize_varint",
    "deserialize_varint",
    # Types
    "KeyPair",
    "Recipient",
    "UTXO",
    "UTXOCT",
    "AnonOutput",
    # Transactions
    "OutPoint",
    "TxInput",
    "StandardOutput",
    "CTOutput",
    "RingCTOutput",
    "DataOutput",
    "Transaction",
    "compute_txid",
    "get_fee_from_outputs",
]
