"""
Watch-Only Record Tests
"""

from dataclasses import replace

import pytest

from ringct.errors import FormatError
from ringct.wallet.watchonly import (
    WatchOnlyTx,
    WatchOnlyTxType,
    parse_watch_only_transactions,
    parse_watch_only_transactions_ct,
)


class TestRecordFormat:
    """Tests for the watch-only record codec."""

    def test_anon_round_trip(self, make_output, address):
        output = make_output(address, 1_000)
        record = WatchOnlyTx(
            ringct_index=77,
            tx_type=WatchOnlyTxType.ANON,
            scan_secret=bytes([9] * 32),
            tx_hash=bytes(range(32)),
            tx_index=3,
            output=output,
        )
        parsed = WatchOnlyTx.deserialize(record.serialize())
        assert parsed == record
        assert parsed.txid == bytes(range(32))[::-1].hex()

    def test_stealth_round_trip(self, make_ct_output, address):
        output, _ = make_ct_output(address, 1_000)
        record = WatchOnlyTx(
            ringct_index=0,
            tx_type=WatchOnlyTxType.STEALTH,
            scan_secret=bytes(32),
            tx_hash=bytes(32),
            tx_index=1,
            output=output,
        )
        assert WatchOnlyTx.from_hex(record.serialize().hex()) == record

    def test_layout(self, make_output, address):
        """Test fixed header fields sit at their offsets."""
        record = WatchOnlyTx(
            ringct_index=0x0102,
            tx_type=WatchOnlyTxType.ANON,
            scan_secret=bytes([0xAA] * 32),
            tx_hash=bytes([0xBB] * 32),
            tx_index=5,
            output=make_output(address, 1),
        )
        raw = record.serialize()
        assert raw[0:8] == (0x0102).to_bytes(8, "little")
        assert raw[8:12] == (1).to_bytes(4, "little")
        assert raw[12:44] == bytes([0xAA] * 32)
        assert raw[44:46] == b"\x01\x01"
        assert raw[46:78] == bytes([0xBB] * 32)
        assert raw[78:82] == (5).to_bytes(4, "little")

    def test_unknown_type(self):
        header = (1).to_bytes(8, "little") + (7).to_bytes(4, "little") + bytes(32) + b"\x01\x01"
        parsed = WatchOnlyTx.deserialize(header + bytes(32) + (0).to_bytes(4, "little"))
        assert parsed.tx_type == WatchOnlyTxType.NOTSET
        assert parsed.output is None

    def test_truncated(self, make_output, address, record_factory):
        record = record_factory(make_output(address, 1))
        with pytest.raises(FormatError):
            WatchOnlyTx.from_hex(record[:-10])

    def test_bad_hex(self):
        with pytest.raises(FormatError):
            WatchOnlyTx.from_hex("not hex")


class TestParseRingCT:
    """Tests for parse_watch_only_transactions."""

    def test_owned_only(self, keys, address, other_address, make_output, record_factory, provider):
        records = [
            record_factory(make_output(address, 2_500), ringct_index=5, tx_index=1),
            record_factory(make_output(other_address, 9_000), ringct_index=6),
        ]
        utxos = parse_watch_only_transactions(records, keys, provider=provider)
        assert len(utxos) == 1
        utxo = utxos[0]
        assert utxo.amount == 2_500
        assert utxo.ringct_index == 5
        assert utxo.vout == 1
        assert utxo.spendable
        assert utxo.key_image is not None
        assert provider.pedersen_commit(utxo.amount, utxo.blind) == utxo.commitment

    def test_node_items(self, keys, address, make_output, record_factory, provider):
        items = [{"raw": record_factory(make_output(address, 10)), "dbindex": 0}]
        assert parse_watch_only_transactions(items, keys, provider=provider)[0].amount == 10

    def test_skips_malformed(self, keys, address, make_output, record_factory, provider):
        good = record_factory(make_output(address, 10))
        records = ["zz", good[:40], good]
        utxos = parse_watch_only_transactions(records, keys, provider=provider)
        assert [u.amount for u in utxos] == [10]

    def test_metadata_overrides(self, keys, address, make_output, record_factory, provider):
        """Test node amount, blind and index take precedence."""
        output = make_output(address, 10)
        blind = bytes([0x42] * 32)
        meta = [{"amount": 99, "blind": blind.hex(), "ringct_index": 1234}]
        utxo = parse_watch_only_transactions([record_factory(output, ringct_index=1)], keys, meta, provider)[0]
        assert utxo.amount == 99
        assert utxo.blind == blind
        assert utxo.ringct_index == 1234

    def test_bad_metadata_blind_skipped(self, keys, address, make_output, record_factory, provider):
        meta = [{"blind": "0011"}]
        record = record_factory(make_output(address, 10))
        assert parse_watch_only_transactions([record], keys, meta, provider) == []

    def test_undecodable_not_spendable(self, keys, address, make_output, record_factory, provider):
        output = make_output(address, 10)
        broken = replace(output, range_proof=output.range_proof[:-1] + bytes([output.range_proof[-1] ^ 1]))
        utxo = parse_watch_only_transactions([record_factory(broken)], keys, provider=provider)[0]
        assert not utxo.spendable
        assert utxo.amount == 0

    def test_ignores_stealth_records(self, keys, address, make_ct_output, record_factory, provider):
        output, _ = make_ct_output(address, 10)
        assert parse_watch_only_transactions([record_factory(output)], keys, provider=provider) == []


class TestParseCT:
    """Tests for parse_watch_only_transactions_ct."""

    def test_owned(self, keys, address, other_address, make_ct_output, record_factory, provider):
        mine, blind = make_ct_output(address, 4_000)
        theirs, _ = make_ct_output(other_address, 1_000)
        records = [record_factory(mine, tx_index=2), record_factory(theirs)]
        utxos = parse_watch_only_transactions_ct(records, keys, provider=provider)
        assert len(utxos) == 1
        assert utxos[0].amount == 4_000
        assert utxos[0].blind == blind
        assert utxos[0].vout == 2
        assert utxos[0].script_pubkey == mine.script_pubkey
