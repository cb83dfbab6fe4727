"""
Output scanner.

An output belongs to the wallet when the destination key derived from its
ephemeral key and the scan secret matches it:

    RingCT: spend_pk + ECDH(E, scan_secret)*G == output pubkey
    CT:     hash160(spend_pk + ECDH(E, scan_secret)*G) == P2PKH key hash

The scan secret and spend public key are enough to detect ownership.
Recovering amount, blind and key image also needs the spend secret, since
the range proof nonce is SHA256(ECDH(E, destination secret)).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from ringct.constants import OutputType
from ringct.core.script import extract_p2pkh_hash
from ringct.core.transaction import CTOutput, RingCTOutput, Transaction, TxOutput, ephemeral_from_vdata
from ringct.core.types import UTXO, UTXOCT
from ringct.crypto.hashing import hash160
from ringct.crypto.provider import CryptoProvider, get_crypto_provider
from ringct.errors import RangeProofError, RingCTError
from ringct.wallet.stealth import derive_destination_pubkey, derive_destination_secret

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScannedOutput:
    is_mine: bool
    output_type: OutputType
    vout: int = 0
    txid: Optional[str] = None
    pubkey: Optional[bytes] = None
    ephemeral_pubkey: Optional[bytes] = None
    commitment: Optional[bytes] = None
    script_pubkey: Optional[bytes] = None
    amount: Optional[int] = None
    blind: Optional[bytes] = None
    key_image: Optional[bytes] = None

    @property
    def is_decoded(self) -> bool:
        """Owned and with amount and blind recovered."""
        return self.is_mine and self.amount is not None and self.blind is not None


def scan_output(
    output: TxOutput,
    scan_secret: bytes,
    spend_pubkey: bytes,
    spend_secret: Optional[bytes] = None,
    provider: Optional[CryptoProvider] = None,
    vout: int = 0,
    txid: Optional[str] = None,
) -> ScannedOutput:
    """
    Check ownership of one output and, with spend_secret, rewind its proof.

    A proof that fails to rewind leaves amount and blind unset; the output
    is still reported as owned.
    """
    provider = provider or get_crypto_provider()
    not_mine = ScannedOutput(is_mine=False, output_type=output.output_type, vout=vout, txid=txid)

    match output:
        case RingCTOutput():
            ephemeral = output.ephemeral_pubkey
            if ephemeral is None:
                return not_mine
            destination = derive_destination_pubkey(spend_pubkey, scan_secret, ephemeral, provider)
            if destination != output.pubkey:
                return not_mine
            script_pubkey = None
        case CTOutput():
            ephemeral = ephemeral_from_vdata(output.data)
            key_hash = extract_p2pkh_hash(output.script_pubkey)
            if ephemeral is None or key_hash is None:
                return not_mine
            destination = derive_destination_pubkey(spend_pubkey, scan_secret, ephemeral, provider)
            if hash160(destination) != key_hash:
                return not_mine
            script_pubkey = output.script_pubkey
        case _:
            return not_mine

    amount = None
    blind = None
    key_image = None
    if spend_secret is not None:
        secret = derive_destination_secret(spend_secret, scan_secret, ephemeral, provider)
        nonce = provider.sha256(provider.ecdh(ephemeral, secret))
        try:
            rewound = provider.range_proof_rewind(nonce, output.commitment, output.range_proof)
            amount = rewound.value
            blind = rewound.blind
        except RangeProofError as e:
            logger.debug(f"Owned output {txid}:{vout} did not rewind: {e.message}")
        if isinstance(output, RingCTOutput):
            key_image = provider.generate_key_image(output.pubkey, secret)

    return ScannedOutput(
        is_mine=True,
        output_type=output.output_type,
        vout=vout,
        txid=txid,
        pubkey=destination,
        ephemeral_pubkey=ephemeral,
        commitment=output.commitment,
        script_pubkey=script_pubkey,
        amount=amount,
        blind=blind,
        key_image=key_image,
    )


def scan_transaction(
    tx: Union[Transaction, Sequence[TxOutput]],
    scan_secret: bytes,
    spend_pubkey: bytes,
    spend_secret: Optional[bytes] = None,
    provider: Optional[CryptoProvider] = None,
    txid: Optional[str] = None,
) -> List[ScannedOutput]:
    """
    Scan every output, one result per output in order.

    Outputs whose keys are malformed are logged and reported as not owned.
    """
    provider = provider or get_crypto_provider()
    if isinstance(tx, Transaction):
        outputs = tx.outputs
        txid = txid or tx.txid
    else:
        outputs = tuple(tx)

    results = []
    for vout, output in enumerate(outputs):
        try:
            results.append(scan_output(output, scan_secret, spend_pubkey, spend_secret, provider, vout, txid))
        except RingCTError as e:
            logger.warning(f"Skipping malformed output {txid}:{vout}: {e.message}")
            results.append(ScannedOutput(is_mine=False, output_type=output.output_type, vout=vout, txid=txid))
    return results


def scanned_output_to_utxo(scanned: ScannedOutput, block_height: int = 0) -> Optional[UTXO]:
    """Spendable RingCT UTXO from a decoded scan result, else None."""
    if scanned.output_type != OutputType.RINGCT or not scanned.is_decoded:
        return None
    return UTXO(
        txid=scanned.txid or "",
        vout=scanned.vout,
        amount=scanned.amount,
        commitment=scanned.commitment,
        blind=scanned.blind,
        pubkey=scanned.pubkey,
        ephemeral_pubkey=scanned.ephemeral_pubkey,
        block_height=block_height,
        key_image=scanned.key_image,
    )


def scanned_output_to_utxo_ct(scanned: ScannedOutput, block_height: int = 0) -> Optional[UTXOCT]:
    """Spendable CT UTXO from a decoded scan result, else None."""
    if scanned.output_type != OutputType.CT or not scanned.is_decoded:
        return None
    return UTXOCT(
        txid=scanned.txid or "",
        vout=scanned.vout,
        amount=scanned.amount,
        commitment=scanned.commitment,
        blind=scanned.blind,
        script_pubkey=scanned.script_pubkey,
        pubkey=scanned.pubkey,
        ephemeral_pubkey=scanned.ephemeral_pubkey,
        block_height=block_height,
    )


def scan_block(
    transactions: Iterable[Transaction],
    scan_secret: bytes,
    spend_secret: bytes,
    block_height: int = 0,
    provider: Optional[CryptoProvider] = None,
) -> List[UTXO]:
    """Owned, decodable RingCT outputs of a block's transactions."""
    provider = provider or get_crypto_provider()
    spend_pubkey = provider.derive_public_key(spend_secret)

    utxos = []
    for tx in transactions:
        for scanned in scan_transaction(tx, scan_secret, spend_pubkey, spend_secret, provider):
            utxo = scanned_output_to_utxo(scanned, block_height)
            if utxo is not None:
                utxos.append(utxo)
            elif scanned.is_mine and scanned.output_type == OutputType.RINGCT:
                logger.warning(f"Owned output {scanned.txid}:{scanned.vout} could not be decoded")

    logger.debug(f"Block {block_height}: {len(utxos)} owned outputs")
    return utxos


def get_total_balance(scanned: Iterable[ScannedOutput]) -> int:
    """Sum of recovered amounts of owned outputs."""
    return sum(s.amount for s in scanned if s.is_mine and s.amount is not None)


def can_spend_output(
    output: TxOutput,
    scan_secret: bytes,
    spend_pubkey: bytes,
    provider: Optional[CryptoProvider] = None,
) -> bool:
    return scan_output(output, scan_secret, spend_pubkey, provider=provider).is_mine
