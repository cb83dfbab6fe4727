"""
RingCT Transaction Format Tests
"""

import pytest

from ringct.constants import ANON_MARKER, OutputType
from ringct.core.serialization import encode_leb128_list
from ringct.core.transaction import (
    CTOutput,
    DataOutput,
    OutPoint,
    RingCTOutput,
    StandardOutput,
    Transaction,
    TxInput,
    describe_transaction,
    ephemeral_from_vdata,
    get_fee_from_outputs,
    serialize_output,
    serialize_output_body,
)
from ringct.errors import FormatError, UnknownOutputTypeError

POINT = bytes([0x02] + [0x11] * 32)
POINT_2 = bytes([0x03] + [0x22] * 32)


def sample_transaction() -> Transaction:
    anon_input = TxInput(
        prevout=OutPoint.anon(ring_size=11),
        script_data=(POINT_2,),
        script_witness=(encode_leb128_list([1, 200, 3000]), b"\x00" * 96),
    )
    outputs = (
        DataOutput.fee(12345),
        RingCTOutput(pubkey=POINT, commitment=POINT_2, data=POINT, range_proof=b"\xAA" * 40),
        CTOutput(commitment=POINT_2, data=POINT, script_pubkey=b"\x76\xa9", range_proof=b"\xBB" * 8),
        StandardOutput(amount=5000, script_pubkey=b"\x51"),
    )
    return Transaction(inputs=(anon_input,), outputs=outputs)


class TestOutPoint:
    """Tests for OutPoint."""

    def test_anon_marker(self):
        """Test anonymous prevout encodes input count and ring size."""
        prevout = OutPoint.anon(ring_size=11, n_inputs=2)
        assert prevout.n == ANON_MARKER
        assert prevout.is_anon
        assert prevout.anon_info() == (2, 11)
        assert prevout.hash[8:] == bytes(24)

    def test_hash_size(self):
        with pytest.raises(FormatError):
            OutPoint(hash=b"\x00" * 31)


class TestOutputs:
    """Tests for output encoding."""

    def test_fee_output(self):
        """Test fee DATA output is [0x06] + LEB128(fee)."""
        out = DataOutput.fee(300)
        assert out.data == bytes([0x06, 0xAC, 0x02])
        assert out.fee_amount == 300

    def test_non_fee_data(self):
        assert DataOutput(b"\x01hello").fee_amount is None

    def test_type_byte(self):
        out = DataOutput.fee(1)
        assert serialize_output(out)[0] == OutputType.DATA
        assert serialize_output(out)[1:] == serialize_output_body(out)

    def test_ephemeral_from_vdata(self):
        """Test vData with and without a length prefix."""
        assert ephemeral_from_vdata(POINT) == POINT
        assert ephemeral_from_vdata(bytes([33]) + POINT) == POINT
        assert ephemeral_from_vdata(b"\x06\x01") is None

    def test_unknown_output_object(self):
        with pytest.raises(UnknownOutputTypeError):
            serialize_output_body(object())


class TestTransaction:
    """Tests for Transaction wire format."""

    def test_round_trip(self):
        """Test outputs, fee and witness survive serialization."""
        tx = sample_transaction()
        restored = Transaction.deserialize(tx.serialize())
        assert restored == tx
        assert restored.fee == 12345
        assert restored.inputs[0].key_image == POINT_2
        assert restored.inputs[0].ring_indices == [1, 200, 3000]

    def test_header(self):
        """Test header bytes: version, type, witness flag, lock time."""
        raw = sample_transaction().serialize()
        assert raw[:7] == bytes([2, 0, 1, 0, 0, 0, 0])

    def test_txid_is_reversed_double_sha(self):
        tx = sample_transaction()
        assert tx.txid == Transaction.from_hex(tx.to_hex()).txid
        assert len(bytes.fromhex(tx.txid)) == 32

    def test_trailing_bytes(self):
        raw = sample_transaction().serialize() + b"\x00"
        with pytest.raises(FormatError):
            Transaction.deserialize(raw)

    def test_truncated(self):
        raw = sample_transaction().serialize()
        with pytest.raises(FormatError):
            Transaction.deserialize(raw[:-10])

    def test_unknown_output_type(self):
        """Test an unknown type byte is rejected."""
        tx = Transaction(outputs=(StandardOutput(amount=1, script_pubkey=b""),), has_witness=False)
        raw = bytearray(tx.serialize())
        # header(7) + input count(1) + output count(1)
        raw[9] = 0x09
        with pytest.raises(UnknownOutputTypeError):
            Transaction.deserialize(bytes(raw))

    def test_bad_hex(self):
        with pytest.raises(FormatError):
            Transaction.from_hex("zz")

    def test_fee_absent(self):
        assert get_fee_from_outputs([StandardOutput(1, b"")]) == 0

    def test_describe(self):
        info = describe_transaction(sample_transaction())
        assert info["fee"] == 12345
        assert info["vin"][0]["type"] == "anon"
        assert info["vin"][0]["ring_size"] == 11
        assert [o["type"] for o in info["vout"]] == ["DATA", "RINGCT", "CT", "STANDARD"]
