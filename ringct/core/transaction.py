"""
RingCT Transaction Wire Format

Layout:
    version_low(1) | tx_type(1) | has_witness(1) | lock_time(u32)
    varint(n_inputs)  | inputs
    varint(n_outputs) | outputs (type byte + payload)
    [witness stack per input, when has_witness]

Anonymous inputs (prevout.n == ANON_MARKER) carry an extra stack
(key image) after the sequence field. Only key images and ring member
indices survive on the wire; full ring contents do not.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Tuple, Union

from ringct.constants import (
    ANON_MARKER,
    COMMITMENT_SIZE,
    HASH_SIZE,
    PUBLIC_KEY_SIZE,
    SEQUENCE_FINAL,
    TX_VERSION,
    DataOutputType,
    OutputType,
    TransactionType,
)
from ringct.core.serialization import (
    ByteReader,
    ByteWriter,
    decode_leb128,
    decode_leb128_list,
    encode_leb128,
)
from ringct.crypto.hashing import sha256d
from ringct.errors import FormatError, UnknownOutputTypeError


# ==============================================================================
# INPUTS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class OutPoint:
    """Reference to a previous output (or anonymous-input metadata)."""
    hash: bytes = field(default_factory=lambda: bytes(HASH_SIZE))
    n: int = 0

    def __post_init__(self):
        if len(self.hash) != HASH_SIZE:
            raise FormatError(f"Prevout hash must be {HASH_SIZE} bytes, got {len(self.hash)}")

    @property
    def is_anon(self) -> bool:
        return self.n == ANON_MARKER

    @classmethod
    def anon(cls, ring_size: int, n_inputs: int = 1) -> OutPoint:
        """
        Anonymous input marker.

        The hash encodes n_inputs (u32 LE, bytes 0..3) and ring size
        (u32 LE, bytes 4..7); the rest is zero.
        """
        data = n_inputs.to_bytes(4, "little") + ring_size.to_bytes(4, "little")
        return cls(hash=data + bytes(HASH_SIZE - 8), n=ANON_MARKER)

    def anon_info(self) -> Tuple[int, int]:
        """Return (n_inputs, ring_size) from an anonymous prevout."""
        return (
            int.from_bytes(self.hash[0:4], "little"),
            int.from_bytes(self.hash[4:8], "little"),
        )


@dataclass(frozen=True, slots=True)
class TxInput:
    prevout: OutPoint
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL
    script_data: Tuple[bytes, ...] = ()
    script_witness: Tuple[bytes, ...] = ()

    @property
    def key_image(self) -> Optional[bytes]:
        if self.prevout.is_anon and self.script_data:
            return self.script_data[0]
        return None

    @property
    def ring_indices(self) -> List[int]:
        """Ring member indices decoded from the first witness item."""
        if not self.script_witness:
            return []
        return decode_leb128_list(self.script_witness[0])


# ==============================================================================
# OUTPUTS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class StandardOutput:
    output_type: ClassVar[OutputType] = OutputType.STANDARD
    amount: int
    script_pubkey: bytes


@dataclass(frozen=True, slots=True)
class CTOutput:
    output_type: ClassVar[OutputType] = OutputType.CT
    commitment: bytes
    data: bytes
    script_pubkey: bytes
    range_proof: bytes


@dataclass(frozen=True, slots=True)
class RingCTOutput:
    output_type: ClassVar[OutputType] = OutputType.RINGCT
    pubkey: bytes
    commitment: bytes
    data: bytes
    range_proof: bytes

    @property
    def ephemeral_pubkey(self) -> Optional[bytes]:
        """Ephemeral pubkey from vData, with or without a 0x21 length prefix."""
        return ephemeral_from_vdata(self.data)


@dataclass(frozen=True, slots=True)
class DataOutput:
    output_type: ClassVar[OutputType] = OutputType.DATA
    data: bytes

    @classmethod
    def fee(cls, amount: int) -> DataOutput:
        return cls(bytes([DataOutputType.FEE]) + encode_leb128(amount))

    @property
    def fee_amount(self) -> Optional[int]:
        if not self.data or self.data[0] != DataOutputType.FEE:
            return None
        value, _ = decode_leb128(self.data, 1)
        return value


TxOutput = Union[StandardOutput, CTOutput, RingCTOutput, DataOutput]


def ephemeral_from_vdata(data: bytes) -> Optional[bytes]:
    if len(data) >= PUBLIC_KEY_SIZE + 1 and data[0] == PUBLIC_KEY_SIZE:
        return data[1:PUBLIC_KEY_SIZE + 1]
    if len(data) >= PUBLIC_KEY_SIZE and data[0] in (0x02, 0x03):
        return data[:PUBLIC_KEY_SIZE]
    return None


def serialize_output_body(output: TxOutput) -> bytes:
    """
    Serialize an output WITHOUT its type byte.

    This is the form hashed into the MLSAG preimage and the CT sighash.
    """
    w = ByteWriter()
    match output:
        case StandardOutput():
            w.write_u64(output.amount).write_bytes(output.script_pubkey)
        case CTOutput():
            w.write_raw(output.commitment)
            w.write_bytes(output.data)
            w.write_bytes(output.script_pubkey)
            w.write_bytes(output.range_proof)
        case RingCTOutput():
            w.write_raw(output.pubkey)
            w.write_raw(output.commitment)
            w.write_bytes(output.data)
            w.write_bytes(output.range_proof)
        case DataOutput():
            w.write_bytes(output.data)
        case _:
            raise UnknownOutputTypeError(getattr(output, "output_type", -1))
    return w.to_bytes()


def serialize_output(output: TxOutput) -> bytes:
    """Serialize an output with its leading type byte."""
    return bytes([output.output_type]) + serialize_output_body(output)


def deserialize_output(reader: ByteReader) -> TxOutput:
    """Read one type-tagged output from reader."""
    output_type = reader.read_u8()
    if output_type == OutputType.STANDARD:
        return StandardOutput(amount=reader.read_u64(), script_pubkey=reader.read_bytes())
    if output_type == OutputType.CT:
        return CTOutput(
            commitment=reader.read_fixed_bytes(COMMITMENT_SIZE),
            data=reader.read_bytes(),
            script_pubkey=reader.read_bytes(),
            range_proof=reader.read_bytes(),
        )
    if output_type == OutputType.RINGCT:
        return RingCTOutput(
            pubkey=reader.read_fixed_bytes(PUBLIC_KEY_SIZE),
            commitment=reader.read_fixed_bytes(COMMITMENT_SIZE),
            data=reader.read_bytes(),
            range_proof=reader.read_bytes(),
        )
    if output_type == OutputType.DATA:
        return DataOutput(data=reader.read_bytes())
    raise UnknownOutputTypeError(output_type)


# ==============================================================================
# TRANSACTION
# ==============================================================================

@dataclass(frozen=True, slots=True)
class Transaction:
    version: int = TX_VERSION
    tx_type: int = TransactionType.STANDARD
    has_witness: bool = True
    lock_time: int = 0
    inputs: Tuple[TxInput, ...] = ()
    outputs: Tuple[TxOutput, ...] = ()

    def serialize(self) -> bytes:
        w = ByteWriter()
        w.write_u8(self.version & 0xFF)
        w.write_u8(self.tx_type & 0xFF)
        w.write_u8(1 if self.has_witness else 0)
        w.write_u32(self.lock_time)

        w.write_varint(len(self.inputs))
        for txin in self.inputs:
            w.write_raw(txin.prevout.hash)
            w.write_u32(txin.prevout.n)
            w.write_bytes(txin.script_sig)
            w.write_u32(txin.sequence)
            if txin.prevout.is_anon:
                w.write_stack(list(txin.script_data))

        w.write_varint(len(self.outputs))
        for output in self.outputs:
            w.write_raw(serialize_output(output))

        if self.has_witness:
            for txin in self.inputs:
                w.write_stack(list(txin.script_witness))

        return w.to_bytes()

    @classmethod
    def deserialize(cls, data: bytes) -> Transaction:
        """
        Parse wire bytes.

        Raises:
            FormatError: truncated data, trailing bytes or unknown output type
        """
        reader = ByteReader(data)
        version = reader.read_u8()
        tx_type = reader.read_u8()
        has_witness = reader.read_u8() != 0
        lock_time = reader.read_u32()

        inputs = []
        for _ in range(reader.read_varint()):
            prevout = OutPoint(hash=reader.read_fixed_bytes(HASH_SIZE), n=reader.read_u32())
            script_sig = reader.read_bytes()
            sequence = reader.read_u32()
            script_data: Tuple[bytes, ...] = ()
            if prevout.is_anon:
                script_data = tuple(reader.read_stack())
            inputs.append(TxInput(prevout, script_sig, sequence, script_data))

        outputs = tuple(deserialize_output(reader) for _ in range(reader.read_varint()))

        if has_witness:
            inputs = [
                TxInput(i.prevout, i.script_sig, i.sequence, i.script_data, tuple(reader.read_stack()))
                for i in inputs
            ]

        if not reader.is_empty():
            raise FormatError(f"{reader.remaining()} trailing bytes after transaction")

        return cls(
            version=version,
            tx_type=tx_type,
            has_witness=has_witness,
            lock_time=lock_time,
            inputs=tuple(inputs),
            outputs=outputs,
        )

    def to_hex(self) -> str:
        return self.serialize().hex()

    @classmethod
    def from_hex(cls, tx_hex: str) -> Transaction:
        try:
            raw = bytes.fromhex(tx_hex)
        except ValueError as e:
            raise FormatError(f"Transaction hex is not valid hex: {e}") from e
        return cls.deserialize(raw)

    @property
    def txid(self) -> str:
        return compute_txid(self.serialize())

    @property
    def fee(self) -> int:
        return get_fee_from_outputs(self.outputs)


def compute_txid(raw: bytes) -> str:
    """Double SHA-256 of the serialized bytes, byte-reversed hex."""
    return sha256d(raw)[::-1].hex()


def get_fee_from_outputs(outputs) -> int:
    """Fee carried by the plaintext DATA fee output, or 0 if absent."""
    for output in outputs:
        if isinstance(output, DataOutput):
            fee = output.fee_amount
            if fee is not None:
                return fee
    return 0


def describe_transaction(tx: Transaction) -> dict:
    """Human-readable summary for logs and debugging."""
    outputs = []
    for index, output in enumerate(tx.outputs):
        entry = {"n": index, "type": output.output_type.name}
        match output:
            case StandardOutput():
                entry["amount"] = output.amount
            case CTOutput():
                entry["commitment"] = output.commitment.hex()
                entry["proof_size"] = len(output.range_proof)
            case RingCTOutput():
                entry["pubkey"] = output.pubkey.hex()
                entry["commitment"] = output.commitment.hex()
                entry["proof_size"] = len(output.range_proof)
            case DataOutput():
                entry["data"] = output.data.hex()
                if output.fee_amount is not None:
                    entry["fee"] = output.fee_amount
        outputs.append(entry)

    inputs = []
    for txin in tx.inputs:
        entry = {"sequence": txin.sequence}
        if txin.prevout.is_anon:
            n_inputs, ring_size = txin.prevout.anon_info()
            entry.update({
                "type": "anon",
                "ring_size": ring_size,
                "key_image": txin.key_image.hex() if txin.key_image else None,
                "ring_indices": txin.ring_indices,
            })
        else:
            entry.update({"txid": txin.prevout.hash[::-1].hex(), "vout": txin.prevout.n})
        inputs.append(entry)

    return {
        "txid": tx.txid,
        "version": tx.version,
        "type": tx.tx_type,
        "lock_time": tx.lock_time,
        "fee": tx.fee,
        "vin": inputs,
        "vout": outputs,
    }
