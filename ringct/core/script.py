"""
P2PKH scripts for CT (stealth) outputs.

    scriptPubKey: OP_DUP OP_HASH160 <20-byte key hash> OP_EQUALVERIFY OP_CHECKSIG
    scriptSig:    <DER signature || sighash type> <compressed pubkey>
"""

from typing import Optional

from ringct.constants import HASH160_SIZE, SIGHASH_ALL
from ringct.crypto.hashing import hash160

OP_DUP = 0x76
OP_HASH160 = 0xA9
OP_EQUALVERIFY = 0x88
OP_CHECKSIG = 0xAC
P2PKH_SCRIPT_SIZE = 25


def create_p2pkh_script_pubkey(pubkey: bytes) -> bytes:
    return (
        bytes([OP_DUP, OP_HASH160, HASH160_SIZE])
        + hash160(pubkey)
        + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    )


def create_p2pkh_script_sig(signature: bytes, pubkey: bytes, sighash_type: int = SIGHASH_ALL) -> bytes:
    sig = signature + bytes([sighash_type])
    return bytes([len(sig)]) + sig + bytes([len(pubkey)]) + pubkey


def is_p2pkh(script_pubkey: bytes) -> bool:
    return (
        len(script_pubkey) == P2PKH_SCRIPT_SIZE
        and script_pubkey[0] == OP_DUP
        and script_pubkey[1] == OP_HASH160
        and script_pubkey[2] == HASH160_SIZE
        and script_pubkey[23] == OP_EQUALVERIFY
        and script_pubkey[24] == OP_CHECKSIG
    )


def extract_p2pkh_hash(script_pubkey: bytes) -> Optional[bytes]:
    """The 20-byte key hash of a P2PKH script, or None for any other script."""
    if not is_p2pkh(script_pubkey):
        return None
    return script_pubkey[3:23]
