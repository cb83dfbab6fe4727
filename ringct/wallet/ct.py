"""
CT (stealth) outputs: P2PKH scripts, legacy sighash and CT -> RingCT sends.

A CT output hides its amount in a commitment but names its owner with a
P2PKH script over the one-time destination key. Spending it takes an ECDSA
signature over the legacy sighash instead of a ring signature.
"""

import logging
from typing import List, Optional, Sequence

from ringct.config import BuilderConfig
from ringct.constants import (
    CT_BASE_SIZE,
    CT_INPUT_SIZE,
    CT_OUTPUT_SIZE,
    DUST_THRESHOLD,
    SEQUENCE_FINAL,
    SIGHASH_ALL,
)
from ringct.core.script import (
    create_p2pkh_script_pubkey,
    create_p2pkh_script_sig,
    extract_p2pkh_hash,
    is_p2pkh,
)
from ringct.core.serialization import ByteWriter
from ringct.core.transaction import (
    DataOutput,
    OutPoint,
    Transaction,
    TxInput,
    TxOutput,
    compute_txid,
    serialize_output_body,
)
from ringct.core.types import UTXOCT, KeyPair, Recipient
from ringct.crypto.hashing import hash160, sha256d
from ringct.crypto.provider import CryptoProvider, get_crypto_provider
from ringct.errors import (
    CryptoVerificationError,
    ErrorCode,
    InsufficientFundsError,
    InvalidKeyError,
    ValidationError,
)
from ringct.wallet.builder import BuildTransactionResult, BuiltOutput, make_ringct_output
from ringct.wallet.stealth import address_from_keys, decode_stealth_address, derive_destination_secret

logger = logging.getLogger(__name__)

__all__ = [
    "compute_ct_sighash",
    "create_p2pkh_script_pubkey",
    "create_p2pkh_script_sig",
    "derive_ct_spend_key",
    "estimate_ct_fee",
    "extract_p2pkh_hash",
    "is_p2pkh",
    "send_stealth_to_ringct",
]


# ==============================================================================
# SIGNING
# ==============================================================================

def compute_ct_sighash(
    tx: Transaction,
    input_index: int,
    script_pubkey: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Legacy SIGHASH_ALL digest for input_index.

    The signed input carries the spent script in place of its scriptSig,
    all other inputs an empty one. Outputs are written without type bytes
    and the sighash type follows the lock time.
    """
    if not 0 <= input_index < len(tx.inputs):
        raise ValidationError(f"Input index {input_index} out of range for {len(tx.inputs)} inputs")

    w = ByteWriter()
    w.write_i32(tx.version | (tx.tx_type << 8))
    w.write_varint(len(tx.inputs))
    for i, txin in enumerate(tx.inputs):
        w.write_raw(txin.prevout.hash)
        w.write_u32(txin.prevout.n)
        w.write_bytes(script_pubkey if i == input_index else b"")
        w.write_u32(txin.sequence)

    w.write_varint(len(tx.outputs))
    for output in tx.outputs:
        w.write_raw(serialize_output_body(output))

    w.write_u32(tx.lock_time)
    w.write_i32(sighash_type)
    return sha256d(w.to_bytes())


def derive_ct_spend_key(
    spend_secret: bytes,
    scan_secret: bytes,
    ephemeral_pubkey: bytes,
    provider: Optional[CryptoProvider] = None,
) -> bytes:
    """spend_secret + ECDH(ephemeral_pubkey, scan_secret)"""
    return derive_destination_secret(spend_secret, scan_secret, ephemeral_pubkey, provider)


def estimate_ct_fee(n_inputs: int, n_outputs: int, fee_per_kb: int) -> int:
    """Whole kilobytes times rate; n_outputs includes change."""
    size = CT_BASE_SIZE + n_inputs * CT_INPUT_SIZE + n_outputs * CT_OUTPUT_SIZE + 100
    return -(-size // 1000) * fee_per_kb


# ==============================================================================
# CT -> RINGCT
# ==============================================================================

def send_stealth_to_ringct(
    keys: KeyPair,
    recipients: Sequence[Recipient],
    ct_utxos: Sequence[UTXOCT],
    config: Optional[BuilderConfig] = None,
    provider: Optional[CryptoProvider] = None,
) -> BuildTransactionResult:
    """
    Spend every given CT output into RingCT outputs.

    Change above the dust threshold goes back to the sender; smaller change
    is left to the fee. The last output's blind is solved so that input
    commitments equal output commitments plus the fee commitment.

    Raises:
        ValidationError: no recipients, no inputs, or inputs not owned by keys
        InsufficientFundsError: inputs do not cover recipients plus fee
        CryptoVerificationError: a proof, signature or balance fails its check
    """
    config = config or BuilderConfig()
    provider = provider or get_crypto_provider()

    if not recipients:
        raise ValidationError("At least one recipient is required")
    if not ct_utxos:
        raise ValidationError("At least one CT UTXO is required")
    for r in recipients:
        decode_stealth_address(r.address)

    total_in = sum(u.amount for u in ct_utxos)
    total_out = sum(r.amount for r in recipients)
    fee = estimate_ct_fee(len(ct_utxos), len(recipients) + 1, config.fee_per_kb)
    if total_in < total_out + fee:
        raise InsufficientFundsError(total_out + fee, total_in, fee)

    change = total_in - total_out - fee
    payments = [(r.address, r.amount) for r in recipients]
    if change > DUST_THRESHOLD:
        payments.append((address_from_keys(keys, provider), change))
    else:
        logger.debug(f"Change {change} at or below dust, added to fee")
        fee += change
        change = 0

    for n, utxo in enumerate(ct_utxos):
        if provider.pedersen_commit(utxo.amount, utxo.blind) != utxo.commitment:
            raise ValidationError(
                f"Input {n}: amount and blind do not open commitment of {utxo.outpoint}",
                ErrorCode.INVALID_AMOUNT,
            )

    # Outputs; the last blind balances the inputs
    in_blinds = [u.blind for u in ct_utxos]
    built: List[BuiltOutput] = []
    for i, (address, amount) in enumerate(payments):
        blind = None
        if i == len(payments) - 1:
            blind = provider.pedersen_blind_sum(in_blinds + [b.blind for b in built], len(in_blinds))
        built.append(make_ringct_output(provider, address, amount, blind))

    outputs: List[TxOutput] = []
    out_commits = [b.output.commitment for b in built]
    if fee > 0:
        outputs.append(DataOutput.fee(fee))
        out_commits.append(provider.pedersen_commit(fee, bytes(32)))
    outputs.extend(b.output for b in built)

    if not provider.pedersen_verify_tally([u.commitment for u in ct_utxos], out_commits):
        raise CryptoVerificationError("CT input commitments do not balance outputs plus fee")

    unsigned = Transaction(
        has_witness=False,
        inputs=tuple(
            TxInput(prevout=OutPoint(hash=bytes.fromhex(u.txid)[::-1], n=u.vout), sequence=SEQUENCE_FINAL)
            for u in ct_utxos
        ),
        outputs=tuple(outputs),
    )

    signed_inputs = []
    for n, utxo in enumerate(ct_utxos):
        key_hash = extract_p2pkh_hash(utxo.script_pubkey)
        if key_hash is None:
            raise ValidationError(f"Input {n}: {utxo.outpoint} is not a P2PKH output")

        secret = derive_ct_spend_key(keys.spend_secret, keys.scan_secret, utxo.ephemeral_pubkey, provider)
        pubkey = provider.derive_public_key(secret)
        if hash160(pubkey) != key_hash:
            raise InvalidKeyError(f"input {n}", f"{utxo.outpoint} is not spendable by these keys")

        sighash = compute_ct_sighash(unsigned, n, utxo.script_pubkey)
        signature = provider.ecdsa_sign(sighash, secret)
        if not provider.ecdsa_verify(sighash, signature, pubkey):
            raise CryptoVerificationError(f"Input {n}: ECDSA signature failed verification")

        txin = unsigned.inputs[n]
        signed_inputs.append(TxInput(
            prevout=txin.prevout,
            script_sig=create_p2pkh_script_sig(signature, pubkey),
            sequence=txin.sequence,
        ))

    tx = Transaction(has_witness=False, inputs=tuple(signed_inputs), outputs=unsigned.outputs)
    raw = tx.serialize()
    txid = compute_txid(raw)
    logger.info(f"Built CT -> RingCT transaction {txid}: {len(ct_utxos)} inputs, fee {fee}")

    return BuildTransactionResult(
        tx_hex=raw.hex(),
        txid=txid,
        fee=fee,
        change=change,
        size=len(raw),
        inputs=tuple(ct_utxos),
        outputs=tx.outputs,
    )
