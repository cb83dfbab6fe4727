"""
CT (Stealth) Spend Tests
"""

from dataclasses import replace

import pytest

from ringct.config import BuilderConfig
from ringct.core.script import create_p2pkh_script_pubkey, extract_p2pkh_hash, is_p2pkh
from ringct.core.transaction import DataOutput, OutPoint, Transaction, TxInput
from ringct.core.types import Recipient
from ringct.crypto.hashing import hash160
from ringct.errors import InsufficientFundsError, InvalidKeyError, ValidationError
from ringct.wallet.ct import compute_ct_sighash, derive_ct_spend_key, estimate_ct_fee, send_stealth_to_ringct
from ringct.wallet.scanner import scan_transaction

from conftest import TEST_FEE_PER_KB


def parse_script_sig(script_sig):
    """(DER signature, pubkey) from a P2PKH scriptSig."""
    sig_len = script_sig[0]
    return script_sig[1:sig_len], script_sig[sig_len + 2:]


@pytest.fixture
def ct_config():
    return BuilderConfig(fee_per_kb=TEST_FEE_PER_KB)


class TestScripts:
    """Tests for P2PKH scripts."""

    def test_script_pubkey(self, provider):
        pk = provider.derive_public_key(provider.random_scalar())
        script = create_p2pkh_script_pubkey(pk)
        assert len(script) == 25
        assert is_p2pkh(script)
        assert extract_p2pkh_hash(script) == hash160(pk)

    def test_not_p2pkh(self):
        assert extract_p2pkh_hash(b"\x6a\x00") is None
        assert not is_p2pkh(bytes(25))


class TestFee:
    """Tests for the CT fee model."""

    def test_whole_kilobytes(self):
        """10 + 150 + 2 * 5500 + 100 = 11260 bytes -> 12 kB."""
        assert estimate_ct_fee(1, 2, 10_000) == 120_000

    def test_grows_with_outputs(self):
        assert estimate_ct_fee(1, 3, 10_000) > estimate_ct_fee(1, 2, 10_000)


class TestSighash:
    """Tests for the legacy sighash."""

    def _tx(self, script_sigs=(b"", b"")):
        return Transaction(
            has_witness=False,
            inputs=tuple(
                TxInput(prevout=OutPoint(hash=bytes([n + 1] * 32), n=n), script_sig=s)
                for n, s in enumerate(script_sigs)
            ),
            outputs=(DataOutput.fee(1000),),
        )

    def test_per_input(self):
        script = create_p2pkh_script_pubkey(b"\x02" + bytes([7] * 32))
        tx = self._tx()
        assert compute_ct_sighash(tx, 0, script) != compute_ct_sighash(tx, 1, script)

    def test_ignores_script_sigs(self):
        """Test existing scriptSigs do not feed the digest."""
        script = create_p2pkh_script_pubkey(b"\x02" + bytes([7] * 32))
        assert compute_ct_sighash(self._tx(), 0, script) == compute_ct_sighash(self._tx((b"\x01", b"\x02")), 0, script)

    def test_commits_to_outputs(self):
        script = create_p2pkh_script_pubkey(b"\x02" + bytes([7] * 32))
        tx = self._tx()
        other = replace(tx, outputs=(DataOutput.fee(1001),))
        assert compute_ct_sighash(tx, 0, script) != compute_ct_sighash(other, 0, script)

    def test_commits_to_type(self):
        script = create_p2pkh_script_pubkey(b"\x02" + bytes([7] * 32))
        tx = self._tx()
        assert compute_ct_sighash(tx, 0, script) != compute_ct_sighash(replace(tx, tx_type=2), 0, script)

    def test_index_out_of_range(self):
        with pytest.raises(ValidationError):
            compute_ct_sighash(self._tx(), 2, b"")


class TestSendStealthToRingCT:
    """Tests for spending CT outputs into RingCT outputs."""

    def test_send(self, keys, other_keys, other_address, make_ct_utxo, ct_config, provider):
        utxo = make_ct_utxo(1_000_000)
        result = send_stealth_to_ringct(keys, [Recipient(other_address, 500_000)], [utxo], ct_config, provider)

        assert result.fee == 120_000
        assert result.change == 380_000
        tx = Transaction.from_hex(result.tx_hex)
        assert not tx.has_witness
        assert tx.fee == 120_000
        assert tx.txid == result.txid
        assert tx.inputs[0].prevout.hash == bytes.fromhex(utxo.txid)[::-1]
        assert tx.inputs[0].prevout.n == utxo.vout

        theirs = scan_transaction(
            tx, other_keys.scan_secret, provider.derive_public_key(other_keys.spend_secret),
            other_keys.spend_secret, provider,
        )
        ours = scan_transaction(
            tx, keys.scan_secret, provider.derive_public_key(keys.spend_secret), keys.spend_secret, provider,
        )
        assert [s.amount for s in theirs if s.is_mine] == [500_000]
        assert [s.amount for s in ours if s.is_mine] == [380_000]

    def test_signature_verifies(self, keys, other_address, make_ct_utxo, ct_config, provider):
        utxo = make_ct_utxo(1_000_000)
        result = send_stealth_to_ringct(keys, [Recipient(other_address, 500_000)], [utxo], ct_config, provider)
        tx = Transaction.from_hex(result.tx_hex)

        signature, pubkey = parse_script_sig(tx.inputs[0].script_sig)
        assert hash160(pubkey) == extract_p2pkh_hash(utxo.script_pubkey)
        sighash = compute_ct_sighash(tx, 0, utxo.script_pubkey)
        assert provider.ecdsa_verify(sighash, signature, pubkey)

    def test_commitments_balance(self, keys, other_address, make_ct_utxo, ct_config, provider):
        utxos = [make_ct_utxo(400_000), make_ct_utxo(600_000)]
        result = send_stealth_to_ringct(keys, [Recipient(other_address, 300_000)], utxos, ct_config, provider)
        commits = [
            provider.pedersen_commit(o.fee_amount, bytes(32)) if isinstance(o, DataOutput) else o.commitment
            for o in result.outputs
        ]
        assert provider.pedersen_verify_tally([u.commitment for u in utxos], commits)

    def test_dust_change_to_fee(self, keys, other_address, make_ct_utxo, ct_config, provider):
        """Test change at or below the dust threshold is folded into the fee."""
        utxo = make_ct_utxo(500_000 + 120_000 + 500)
        result = send_stealth_to_ringct(keys, [Recipient(other_address, 500_000)], [utxo], ct_config, provider)
        assert result.change == 0
        assert result.fee == 120_500
        assert len(result.outputs) == 2

    def test_spend_key(self, keys, make_ct_utxo, provider):
        utxo = make_ct_utxo(10_000)
        secret = derive_ct_spend_key(keys.spend_secret, keys.scan_secret, utxo.ephemeral_pubkey, provider)
        assert hash160(provider.derive_public_key(secret)) == extract_p2pkh_hash(utxo.script_pubkey)

    def test_wrong_owner(self, other_keys, other_address, make_ct_utxo, ct_config, provider):
        utxo = make_ct_utxo(1_000_000)
        with pytest.raises(InvalidKeyError):
            send_stealth_to_ringct(other_keys, [Recipient(other_address, 500_000)], [utxo], ct_config, provider)

    def test_insufficient(self, keys, other_address, make_ct_utxo, ct_config, provider):
        with pytest.raises(InsufficientFundsError):
            send_stealth_to_ringct(keys, [Recipient(other_address, 100_000)], [make_ct_utxo(150_000)], ct_config)

    def test_no_recipients(self, keys, make_ct_utxo, ct_config):
        with pytest.raises(ValidationError):
            send_stealth_to_ringct(keys, [], [make_ct_utxo(150_000)], ct_config)

    def test_no_inputs(self, keys, other_address, ct_config):
        with pytest.raises(ValidationError):
            send_stealth_to_ringct(keys, [Recipient(other_address, 1)], [], ct_config)
