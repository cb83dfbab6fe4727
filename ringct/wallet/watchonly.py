"""
Watch-only transaction records.

A light-wallet node returns each candidate output as a record:

    ringct_index(u64) | type(i32: 0 stealth, 1 anon) | scan_secret(32)
    | scan_secret_valid(1) | scan_secret_compressed(1) | tx_hash(32)
    | output index(u32) | output body

The body is a RingCT output (pk33, commitment33, varbytes vData,
varbytes proof) for anon records and a CT output (commitment33,
varbytes vData, varbytes script, varbytes proof) for stealth records.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, List, Mapping, Optional, Sequence, Union

from ringct.constants import BLIND_SIZE, COMMITMENT_SIZE, HASH_SIZE, PUBLIC_KEY_SIZE, SECRET_KEY_SIZE
from ringct.core.serialization import ByteReader, ByteWriter
from ringct.core.transaction import CTOutput, RingCTOutput
from ringct.core.types import UTXO, UTXOCT, KeyPair
from ringct.crypto.provider import CryptoProvider, get_crypto_provider
from ringct.errors import FormatError, RingCTError
from ringct.wallet.scanner import ScannedOutput, scan_output

logger = logging.getLogger(__name__)


class WatchOnlyTxType(IntEnum):
    NOTSET = -1
    STEALTH = 0
    ANON = 1


@dataclass(frozen=True, slots=True)
class WatchOnlyTx:
    ringct_index: int
    tx_type: WatchOnlyTxType
    scan_secret: bytes
    tx_hash: bytes
    tx_index: int
    output: Optional[Union[RingCTOutput, CTOutput]] = None
    scan_secret_valid: bool = True
    scan_secret_compressed: bool = True

    @property
    def txid(self) -> str:
        return self.tx_hash[::-1].hex()

    @classmethod
    def deserialize(cls, data: bytes) -> WatchOnlyTx:
        """
        Raises:
            FormatError: truncated record
        """
        reader = ByteReader(data)
        ringct_index = reader.read_u64()
        raw_type = reader.read_i32()
        try:
            tx_type = WatchOnlyTxType(raw_type)
        except ValueError:
            tx_type = WatchOnlyTxType.NOTSET
        scan_secret = reader.read_fixed_bytes(SECRET_KEY_SIZE)
        scan_secret_valid = reader.read_u8() != 0
        scan_secret_compressed = reader.read_u8() != 0
        tx_hash = reader.read_fixed_bytes(HASH_SIZE)
        tx_index = reader.read_u32()

        output: Optional[Union[RingCTOutput, CTOutput]] = None
        if tx_type == WatchOnlyTxType.ANON:
            output = RingCTOutput(
                pubkey=reader.read_fixed_bytes(PUBLIC_KEY_SIZE),
                commitment=reader.read_fixed_bytes(COMMITMENT_SIZE),
                data=reader.read_bytes(),
                range_proof=reader.read_bytes(),
            )
        elif tx_type == WatchOnlyTxType.STEALTH:
            output = CTOutput(
                commitment=reader.read_fixed_bytes(COMMITMENT_SIZE),
                data=reader.read_bytes(),
                script_pubkey=reader.read_bytes(),
                range_proof=reader.read_bytes(),
            )

        return cls(
            ringct_index=ringct_index,
            tx_type=tx_type,
            scan_secret=scan_secret,
            tx_hash=tx_hash,
            tx_index=tx_index,
            output=output,
            scan_secret_valid=scan_secret_valid,
            scan_secret_compressed=scan_secret_compressed,
        )

    @classmethod
    def from_hex(cls, record_hex: str) -> WatchOnlyTx:
        try:
            data = bytes.fromhex(record_hex)
        except ValueError as e:
            raise FormatError(f"Watch-only record is not valid hex: {e}") from e
        return cls.deserialize(data)

    def serialize(self) -> bytes:
        w = ByteWriter()
        w.write_u64(self.ringct_index)
        w.write_i32(self.tx_type)
        w.write_raw(self.scan_secret)
        w.write_u8(int(self.scan_secret_valid))
        w.write_u8(int(self.scan_secret_compressed))
        w.write_raw(self.tx_hash)
        w.write_u32(self.tx_index)
        match self.output:
            case RingCTOutput():
                w.write_raw(self.output.pubkey).write_raw(self.output.commitment)
                w.write_bytes(self.output.data).write_bytes(self.output.range_proof)
            case CTOutput():
                w.write_raw(self.output.commitment)
                w.write_bytes(self.output.data).write_bytes(self.output.script_pubkey)
                w.write_bytes(self.output.range_proof)
        return w.to_bytes()


# ==============================================================================
# PARSING
# ==============================================================================

def _record_hex(item: Any) -> str:
    if isinstance(item, Mapping):
        return item.get("raw") or item.get("hex") or ""
    return item


def _apply_overrides(scanned: ScannedOutput, meta: Optional[Mapping[str, Any]]) -> ScannedOutput:
    """Node-provided amount and blind take precedence over rewound values."""
    if not meta:
        return scanned
    amount = scanned.amount
    blind = scanned.blind
    if meta.get("amount") is not None:
        amount = int(meta["amount"])
    if meta.get("blind") is not None:
        value = meta["blind"]
        blind = bytes.fromhex(value) if isinstance(value, str) else bytes(value)
    return ScannedOutput(
        is_mine=scanned.is_mine,
        output_type=scanned.output_type,
        vout=scanned.vout,
        txid=scanned.txid,
        pubkey=scanned.pubkey,
        ephemeral_pubkey=scanned.ephemeral_pubkey,
        commitment=scanned.commitment,
        script_pubkey=scanned.script_pubkey,
        amount=amount,
        blind=blind,
        key_image=scanned.key_image,
    )


def _decode_records(
    records: Sequence[Any],
    keys: KeyPair,
    record_type: WatchOnlyTxType,
    metadata: Optional[Sequence[Mapping[str, Any]]],
    provider: CryptoProvider,
) -> List[tuple]:
    spend_pubkey = provider.derive_public_key(keys.spend_secret)
    decoded = []
    for i, item in enumerate(records):
        meta = metadata[i] if metadata and i < len(metadata) else None
        try:
            record = WatchOnlyTx.from_hex(_record_hex(item))
            if record.tx_type != record_type or record.output is None:
                continue

            scanned = scan_output(
                record.output,
                keys.scan_secret,
                spend_pubkey,
                keys.spend_secret,
                provider,
                vout=record.tx_index,
                txid=record.txid,
            )
            if not scanned.is_mine:
                logger.debug(f"Record {i} ({record.txid}:{record.tx_index}) is not for this wallet")
                continue

            scanned = _apply_overrides(scanned, meta)
            if scanned.blind is not None and len(scanned.blind) != BLIND_SIZE:
                raise FormatError(f"Blind must be {BLIND_SIZE} bytes, got {len(scanned.blind)}")
            decoded.append((record, scanned, meta))
        except (RingCTError, ValueError) as e:
            logger.warning(f"Skipping watch-only record {i}: {e}")
    return decoded


def parse_watch_only_transactions(
    records: Sequence[Any],
    keys: KeyPair,
    metadata: Optional[Sequence[Mapping[str, Any]]] = None,
    provider: Optional[CryptoProvider] = None,
) -> List[UTXO]:
    """
    Owned RingCT outputs among anon records.

    records are hex strings or node items with a "raw"/"hex" field;
    metadata[i] may carry "amount", "blind" and "ringct_index" for records[i].
    Outputs whose amount or blind is unknown come back with amount 0 and
    spendable=False.
    """
    provider = provider or get_crypto_provider()
    utxos = []
    for record, scanned, meta in _decode_records(records, keys, WatchOnlyTxType.ANON, metadata, provider):
        ringct_index = record.ringct_index
        if meta and meta.get("ringct_index") is not None:
            ringct_index = int(meta["ringct_index"])

        decoded = scanned.amount is not None and scanned.blind is not None
        utxos.append(UTXO(
            txid=record.txid,
            vout=record.tx_index,
            amount=scanned.amount if decoded else 0,
            commitment=scanned.commitment,
            blind=scanned.blind if decoded else bytes(BLIND_SIZE),
            pubkey=scanned.pubkey,
            ephemeral_pubkey=scanned.ephemeral_pubkey,
            ringct_index=ringct_index,
            spendable=decoded,
            key_image=scanned.key_image,
        ))
    return utxos


def parse_watch_only_transactions_ct(
    records: Sequence[Any],
    keys: KeyPair,
    metadata: Optional[Sequence[Mapping[str, Any]]] = None,
    provider: Optional[CryptoProvider] = None,
) -> List[UTXOCT]:
    """Owned CT outputs among stealth records."""
    provider = provider or get_crypto_provider()
    utxos = []
    for record, scanned, _ in _decode_records(records, keys, WatchOnlyTxType.STEALTH, metadata, provider):
        decoded = scanned.amount is not None and scanned.blind is not None
        utxos.append(UTXOCT(
            txid=record.txid,
            vout=record.tx_index,
            amount=scanned.amount if decoded else 0,
            commitment=scanned.commitment,
            blind=scanned.blind if decoded else bytes(BLIND_SIZE),
            script_pubkey=scanned.script_pubkey,
            pubkey=scanned.pubkey,
            ephemeral_pubkey=scanned.ephemeral_pubkey,
            spendable=decoded,
        ))
    return utxos
