"""
Commitment Balancing & Signature Engine

Builds a RingCT transaction in fixed phases. Each phase is a frozen type
returned by the previous phase's method:

    Init -> OutputsCommitted -> InputsAssembled -> KeyImagesInserted
         -> Signed -> Serialized

so a transaction cannot be signed before its key images exist or
serialized before it is signed.

Outputs: optional fee DATA output (zero-blind commitment), one RingCT output
per recipient, then change to the sender. Every RingCT output gets a random
blind, a commitment and a range proof verified as soon as it is made.

Inputs: a single input signs commitment(in) - sum(outputs incl. fee).
With several inputs each one signs against its own split commitment
carrying the same value; split blinds are random except the last, which is
solved so that sum(splits) == sum(outputs) + fee commitment.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from ringct.config import BuilderConfig
from ringct.constants import BLIND_SIZE, HASH_SIZE, MAX_ANON_INPUTS
from ringct.core.serialization import encode_leb128_list
from ringct.core.transaction import (
    DataOutput,
    OutPoint,
    RingCTOutput,
    Transaction,
    TxInput,
    TxOutput,
    compute_txid,
    serialize_output_body,
)
from ringct.core.types import UTXO, UTXOCT, AnonOutput, KeyPair, Recipient
from ringct.crypto.hashing import sha256d
from ringct.crypto.provider import CryptoProvider, MlsagSignature, get_crypto_provider
from ringct.errors import (
    CryptoVerificationError,
    ErrorCode,
    InsufficientFundsError,
    InvalidKeyError,
    RangeProofError,
    RingSignatureError,
    ValidationError,
)
from ringct.wallet.decoys import Ring, build_rings, validate_ring_size
from ringct.wallet.planner import CoinSelection, select_coins
from ringct.wallet.range_params import select_range_proof_parameters, validate_range_proof_params
from ringct.wallet.stealth import (
    StealthAddressInfo,
    address_from_keys,
    decode_stealth_address,
    derive_destination_secret,
    generate_ephemeral_keys,
)

logger = logging.getLogger(__name__)

ZERO_BLIND = bytes(BLIND_SIZE)


# ==============================================================================
# OUTPUTS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class BuiltOutput:
    """A RingCT output with the opening its sender keeps."""
    output: RingCTOutput
    amount: int
    blind: bytes
    address: str


def make_ringct_output(
    provider: CryptoProvider,
    address: str,
    amount: int,
    blind: Optional[bytes] = None,
) -> BuiltOutput:
    """
    One-time key, commitment and range proof for a payment to address.

    The proof nonce is SHA256(ECDH(destination, ephemeral secret)); the
    recipient recomputes it from the ephemeral key in vData.

    Raises:
        CryptoVerificationError: the range proof does not verify
    """
    keys = generate_ephemeral_keys(address, provider)
    if blind is None:
        blind = provider.random_scalar()
    commitment = provider.pedersen_commit(amount, blind)

    params = select_range_proof_parameters(amount)
    validate_range_proof_params(params)
    nonce = provider.sha256(provider.ecdh(keys.destination_pubkey, keys.ephemeral_secret))

    try:
        proof = provider.range_proof_sign(
            commitment,
            amount,
            blind,
            nonce,
            b"",
            params.min_value,
            params.exponent,
            params.min_bits,
        )
        provider.range_proof_verify(commitment, proof)
    except RangeProofError as e:
        raise CryptoVerificationError(
            f"Range proof for output of {amount} failed: {e.message}",
            {"amount": amount, "exponent": params.exponent, "min_bits": params.min_bits},
        ) from e

    logger.debug(f"Output {amount} -> {keys.destination_pubkey.hex()[:16]}... proof {len(proof)} bytes")
    return BuiltOutput(
        output=RingCTOutput(
            pubkey=keys.destination_pubkey,
            commitment=commitment,
            data=keys.ephemeral_pubkey,
            range_proof=proof,
        ),
        amount=amount,
        blind=blind,
        address=address,
    )


def compute_outputs_hash(outputs: Sequence[TxOutput]) -> bytes:
    """
    MLSAG preimage over all outputs.

    running = 0^32; for each output: running = SHA256d(SHA256d(body) || running),
    body being the output serialized without its type byte.
    """
    running = bytes(HASH_SIZE)
    for output in outputs:
        running = sha256d(sha256d(serialize_output_body(output)) + running)
    return running


# ==============================================================================
# BUILD PHASES
# ==============================================================================

@dataclass(frozen=True, slots=True)
class SpentInput:
    """A wallet output being spent, its ring and its one-time secret."""
    utxo: UTXO
    ring: Ring
    secret: bytes
    key_image: Optional[bytes] = None


@dataclass(frozen=True, slots=True)
class Init:
    provider: CryptoProvider
    keys: KeyPair
    ring_size: int

    def commit_outputs(
        self,
        recipients: Sequence[Recipient],
        fee: int,
        change: int,
        change_address: Optional[str] = None,
    ) -> OutputsCommitted:
        """Fee output, recipient outputs, then change when positive."""
        if fee < 0:
            raise ValidationError(f"Fee cannot be negative: {fee}", ErrorCode.INVALID_AMOUNT)
        if change < 0:
            raise ValidationError(f"Change cannot be negative: {change}", ErrorCode.INVALID_AMOUNT)

        payments = [(r.address, r.amount) for r in recipients]
        if change > 0:
            payments.append((change_address or address_from_keys(self.keys, self.provider), change))

        built = tuple(make_ringct_output(self.provider, address, amount) for address, amount in payments)

        outputs: List[TxOutput] = []
        fee_commitment = None
        if fee > 0:
            outputs.append(DataOutput.fee(fee))
            fee_commitment = self.provider.pedersen_commit(fee, ZERO_BLIND)
        outputs.extend(b.output for b in built)

        logger.debug(f"Committed {len(built)} outputs, fee {fee}, change {change}")
        return OutputsCommitted(
            provider=self.provider,
            keys=self.keys,
            ring_size=self.ring_size,
            outputs=tuple(outputs),
            built=built,
            fee=fee,
            fee_commitment=fee_commitment,
            change=change,
        )


@dataclass(frozen=True, slots=True)
class OutputsCommitted:
    provider: CryptoProvider
    keys: KeyPair
    ring_size: int
    outputs: Tuple[TxOutput, ...]
    built: Tuple[BuiltOutput, ...]
    fee: int
    fee_commitment: Optional[bytes]
    change: int

    @property
    def commitments(self) -> List[bytes]:
        """Output commitments in signing order, fee commitment first."""
        commits = [b.output.commitment for b in self.built]
        if self.fee_commitment is not None:
            commits.insert(0, self.fee_commitment)
        return commits

    @property
    def blinds(self) -> List[bytes]:
        blinds = [b.blind for b in self.built]
        if self.fee_commitment is not None:
            blinds.insert(0, ZERO_BLIND)
        return blinds

    def assemble_inputs(self, utxos: Sequence[UTXO], rings: Sequence[Ring]) -> InputsAssembled:
        """
        Pair each spent output with its ring and recover its one-time secret.

        Raises:
            ValidationError: ring/input mismatch or an output not owned by the keys
        """
        if not utxos:
            raise ValidationError("No UTXOs available for spending")
        if len(utxos) > MAX_ANON_INPUTS:
            raise ValidationError(f"At most {MAX_ANON_INPUTS} inputs per transaction, got {len(utxos)}")
        if len(rings) != len(utxos):
            raise ValidationError(f"Expected {len(utxos)} rings, got {len(rings)}")

        spent = []
        for n, (utxo, ring) in enumerate(zip(utxos, rings)):
            if ring.size != self.ring_size:
                raise ValidationError(f"Input {n}: ring size {ring.size}, expected {self.ring_size}")
            if ring.real_pubkey != utxo.pubkey or ring.commitments[ring.secret_index] != utxo.commitment:
                raise ValidationError(f"Input {n}: real output not at secret index")

            secret = derive_destination_secret(
                self.keys.spend_secret,
                self.keys.scan_secret,
                utxo.ephemeral_pubkey,
                self.provider,
            )
            if self.provider.derive_public_key(secret) != utxo.pubkey:
                raise InvalidKeyError(f"input {n}", f"UTXO {utxo.outpoint} is not spendable by these keys")
            if self.provider.pedersen_commit(utxo.amount, utxo.blind) != utxo.commitment:
                raise ValidationError(
                    f"Input {n}: amount and blind do not open commitment of {utxo.outpoint}",
                    ErrorCode.INVALID_AMOUNT,
                )
            spent.append(SpentInput(utxo=utxo, ring=ring, secret=secret))

        in_total = sum(u.amount for u in utxos)
        out_total = self.fee + sum(b.amount for b in self.built)
        if in_total != out_total:
            raise ValidationError(
                f"Inputs ({in_total}) do not equal outputs plus fee ({out_total})",
                ErrorCode.INVALID_AMOUNT,
            )

        return InputsAssembled(committed=self, inputs=tuple(spent))


@dataclass(frozen=True, slots=True)
class InputsAssembled:
    committed: OutputsCommitted
    inputs: Tuple[SpentInput, ...]

    def insert_key_images(self) -> KeyImagesInserted:
        """Key image of each input from its one-time secret."""
        provider = self.committed.provider
        inputs = tuple(
            SpentInput(
                utxo=i.utxo,
                ring=i.ring,
                secret=i.secret,
                key_image=provider.generate_key_image(i.utxo.pubkey, i.secret),
            )
            for i in self.inputs
        )
        return KeyImagesInserted(committed=self.committed, inputs=inputs)


@dataclass(frozen=True, slots=True)
class KeyImagesInserted:
    committed: OutputsCommitted
    inputs: Tuple[SpentInput, ...]

    def sign(self) -> Signed:
        """
        MLSAG over the outputs hash for every input.

        Raises:
            CryptoVerificationError: a signature, key image or balance fails its check
        """
        preimage = compute_outputs_hash(self.committed.outputs)
        if len(self.inputs) == 1:
            tx_inputs = [self._sign_single(preimage)]
        else:
            tx_inputs = self._sign_split(preimage)
        return Signed(committed=self.committed, inputs=self.inputs, tx_inputs=tuple(tx_inputs))

    def _sign_single(self, preimage: bytes) -> TxInput:
        spent = self.inputs[0]
        matrix, blind_sum = self.committed.provider.prepare_mlsag(
            spent.ring.pubkeys,
            spent.ring.commitments,
            self.committed.commitments,
            spent.utxo.blind,
            self.committed.blinds,
        )
        signature = self._sign_ring(0, preimage, matrix, spent, blind_sum)
        return self._tx_input(spent, signature.to_bytes())

    def _sign_split(self, preimage: bytes) -> List[TxInput]:
        provider = self.committed.provider
        out_blinds = self.committed.blinds
        out_commits = self.committed.commitments

        split_blinds: List[bytes] = []
        split_commits: List[bytes] = []
        tx_inputs = []
        for n, spent in enumerate(self.inputs):
            if n < len(self.inputs) - 1:
                split_blind = provider.random_scalar()
            else:
                split_blind = provider.pedersen_blind_sum(out_blinds + split_blinds, len(out_blinds))
            split_commit = provider.pedersen_commit(spent.utxo.amount, split_blind)
            split_blinds.append(split_blind)
            split_commits.append(split_commit)

            matrix, blind_sum = provider.prepare_mlsag(
                spent.ring.pubkeys,
                spent.ring.commitments,
                [split_commit],
                spent.utxo.blind,
                [split_blind],
            )
            signature = self._sign_ring(n, preimage, matrix, spent, blind_sum)
            tx_inputs.append(self._tx_input(spent, signature.to_bytes() + split_commit))

        if not provider.pedersen_verify_tally(split_commits, out_commits):
            raise CryptoVerificationError(
                "Split commitments do not balance outputs plus fee",
                {"inputs": len(self.inputs), "outputs": len(out_commits)},
            )
        logger.debug(f"Balanced {len(self.inputs)} split commitments against {len(out_commits)} outputs")
        return tx_inputs

    def _sign_ring(
        self,
        n: int,
        preimage: bytes,
        matrix: Sequence[Sequence[bytes]],
        spent: SpentInput,
        blind_sum: bytes,
    ) -> MlsagSignature:
        provider = self.committed.provider
        try:
            signature = provider.generate_mlsag(
                preimage, matrix, spent.ring.secret_index, [spent.secret, blind_sum]
            )
        except RingSignatureError as e:
            raise CryptoVerificationError(f"Input {n}: MLSAG generation failed: {e.message}") from e

        if not provider.verify_mlsag(preimage, matrix, signature):
            raise CryptoVerificationError(f"Input {n}: MLSAG signature failed verification")
        if signature.key_images[0] != spent.key_image:
            raise CryptoVerificationError(
                f"Input {n}: key image mismatch",
                {"inserted": spent.key_image.hex(), "signed": signature.key_images[0].hex()},
            )
        logger.debug(f"Input {n}: signed ring of {spent.ring.size} at index {spent.ring.secret_index}")
        return signature

    def _tx_input(self, spent: SpentInput, signature_blob: bytes) -> TxInput:
        return TxInput(
            prevout=OutPoint.anon(self.committed.ring_size),
            script_sig=b"",
            script_data=(spent.key_image,),
            script_witness=(encode_leb128_list(list(spent.ring.indices)), signature_blob),
        )


@dataclass(frozen=True, slots=True)
class Signed:
    committed: OutputsCommitted
    inputs: Tuple[SpentInput, ...]
    tx_inputs: Tuple[TxInput, ...]

    def serialize(self) -> Serialized:
        tx = Transaction(inputs=self.tx_inputs, outputs=self.committed.outputs)
        raw = tx.serialize()
        return Serialized(signed=self, transaction=tx, raw=raw, txid=compute_txid(raw))


@dataclass(frozen=True, slots=True)
class Serialized:
    signed: Signed
    transaction: Transaction
    raw: bytes
    txid: str

    def result(self) -> BuildTransactionResult:
        committed = self.signed.committed
        return BuildTransactionResult(
            tx_hex=self.raw.hex(),
            txid=self.txid,
            fee=committed.fee,
            change=committed.change,
            size=len(self.raw),
            inputs=tuple(i.utxo for i in self.signed.inputs),
            outputs=self.transaction.outputs,
        )


@dataclass(frozen=True, slots=True)
class BuildTransactionResult:
    tx_hex: str
    txid: str
    fee: int
    change: int
    size: int
    inputs: Tuple[Union[UTXO, UTXOCT], ...]
    outputs: Tuple[TxOutput, ...]


# ==============================================================================
# BUILDER
# ==============================================================================

class TransactionBuilder:
    """
    RingCT transaction builder.

    Usage:
        builder = TransactionBuilder(config.builder)
        decoys = await rpc.getanonoutputs(n_inputs, config.builder.ring_size)
        result = builder.build(keys, [Recipient(address, amount)], utxos, decoys)
        await rpc.sendrawtransaction(result.tx_hex)
    """

    def __init__(
        self,
        config: Optional[BuilderConfig] = None,
        provider: Optional[CryptoProvider] = None,
    ):
        self.config = config or BuilderConfig()
        self.provider = provider or get_crypto_provider()
        validate_ring_size(self.config.ring_size)

    def build(
        self,
        keys: KeyPair,
        recipients: Sequence[Recipient],
        utxos: Sequence[UTXO],
        pool: Sequence[AnonOutput],
    ) -> BuildTransactionResult:
        """
        Select inputs, then build and sign a transaction paying recipients.

        Raises:
            ValidationError: bad recipients, addresses or keys
            FormatError: undecodable address
            InsufficientFundsError / TooManyInputsError: from coin selection
            InsufficientDecoysError: the pool cannot fill every ring
            CryptoVerificationError: a proof or signature fails its self-check
        """
        selection, payments = self.select_inputs(recipients, utxos)
        return self.build_with_inputs(keys, payments, selection.selected, pool, selection.fee)

    def select_inputs(
        self,
        recipients: Sequence[Recipient],
        utxos: Sequence[UTXO],
    ) -> Tuple[CoinSelection, List[Recipient]]:
        """
        Coin selection for recipients.

        Returns the selection and the payments to make; with
        subtract_fee_from_outputs the first recipient carries the fee.
        """
        self._validate_recipients(recipients)
        if not utxos:
            raise ValidationError("No UTXOs available for spending")

        target = sum(r.amount for r in recipients)
        selection = select_coins(
            utxos,
            target,
            self.config.fee_per_kb,
            self.config.ring_size,
            self.config.subtract_fee_from_outputs,
        )

        payments = list(recipients)
        if selection.subtract_fee:
            first = payments[0]
            if first.amount <= selection.fee:
                raise InsufficientFundsError(selection.fee + 1, first.amount, selection.fee)
            payments[0] = Recipient(first.address, first.amount - selection.fee)
        return selection, payments

    def build_with_inputs(
        self,
        keys: KeyPair,
        recipients: Sequence[Recipient],
        utxos: Sequence[UTXO],
        pool: Sequence[AnonOutput],
        fee: int,
        change_address: Optional[str] = None,
    ) -> BuildTransactionResult:
        """
        Build with a fixed input set and fee; everything left over is change.

        Raises:
            InsufficientFundsError: inputs do not cover recipients plus fee
        """
        self._validate_recipients(recipients)
        total_in = sum(u.amount for u in utxos)
        total_out = sum(r.amount for r in recipients)
        change = total_in - total_out - fee
        if change < 0:
            raise InsufficientFundsError(total_out + fee, total_in, fee)

        rings = build_rings(utxos, pool, self.config.ring_size)
        serialized = (
            Init(provider=self.provider, keys=keys, ring_size=self.config.ring_size)
            .commit_outputs(recipients, fee, change, change_address)
            .assemble_inputs(utxos, rings)
            .insert_key_images()
            .sign()
            .serialize()
        )
        result = serialized.result()
        logger.info(
            f"Built transaction {result.txid}: {len(utxos)} inputs, "
            f"{len(result.outputs)} outputs, fee {fee}, {result.size} bytes"
        )
        return result

    def build_consolidation(
        self,
        keys: KeyPair,
        utxos: Sequence[UTXO],
        pool: Sequence[AnonOutput],
        fee: int,
    ) -> BuildTransactionResult:
        """All of utxos into one output to the wallet's own address, minus fee."""
        amount = sum(u.amount for u in utxos) - fee
        if amount <= 0:
            raise InsufficientFundsError(fee + 1, amount + fee, fee)
        recipient = Recipient(address_from_keys(keys, self.provider), amount)
        return self.build_with_inputs(keys, [recipient], utxos, pool, fee)

    @staticmethod
    def _validate_recipients(recipients: Sequence[Recipient]) -> List[StealthAddressInfo]:
        if not recipients:
            raise ValidationError("Transaction must have at least one recipient")
        return [decode_stealth_address(r.address) for r in recipients]
