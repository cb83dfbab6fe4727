"""
RingCT Wallet Engine Test Fixtures
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

import pytest

from ringct.api.rpc import KeyImageStatus
from ringct.config import BuilderConfig
from ringct.core.script import create_p2pkh_script_pubkey
from ringct.core.transaction import CTOutput, RingCTOutput
from ringct.core.types import UTXO, UTXOCT, AnonOutput, KeyPair
from ringct.crypto.provider import get_crypto_provider
from ringct.wallet.builder import make_ringct_output
from ringct.wallet.scanner import scan_output
from ringct.wallet.stealth import address_from_keys, generate_ephemeral_keys
from ringct.wallet.watchonly import WatchOnlyTx, WatchOnlyTxType

# Small rings keep signing fast
TEST_RING_SIZE = 3
TEST_FEE_PER_KB = 10_000


@pytest.fixture(scope="session")
def provider():
    """Default secp256k1 provider."""
    return get_crypto_provider()


@pytest.fixture
def keys() -> KeyPair:
    """Deterministic wallet keys."""
    return KeyPair(spend_secret=bytes([0x11] * 32), scan_secret=bytes([0x22] * 32))


@pytest.fixture
def other_keys() -> KeyPair:
    """Keys of a second, unrelated wallet."""
    return KeyPair(spend_secret=bytes([0x33] * 32), scan_secret=bytes([0x44] * 32))


@pytest.fixture
def address(keys, provider) -> str:
    return address_from_keys(keys, provider)


@pytest.fixture
def other_address(other_keys, provider) -> str:
    return address_from_keys(other_keys, provider)


@pytest.fixture
def builder_config() -> BuilderConfig:
    return BuilderConfig(ring_size=TEST_RING_SIZE, fee_per_kb=TEST_FEE_PER_KB)


# ==============================================================================
# Synthetic chain data
# ==============================================================================

def txid_for(n: int) -> str:
    return bytes([n % 256] * 32).hex()


@pytest.fixture
def make_output(provider):
    """Build a real RingCT output paying amount to address."""
    def factory(address: str, amount: int) -> RingCTOutput:
        return make_ringct_output(provider, address, amount).output
    return factory


@pytest.fixture
def make_utxo(keys, address, provider):
    """Build a RingCT output to the test wallet and scan it back into a UTXO."""
    counter = iter(range(1, 10_000))

    def factory(amount: int, ringct_index: Optional[int] = None, wallet_keys: KeyPair = None) -> UTXO:
        owner = wallet_keys or keys
        to = address if wallet_keys is None else address_from_keys(owner, provider)
        output = make_ringct_output(provider, to, amount).output
        n = next(counter)
        scanned = scan_output(
            output,
            owner.scan_secret,
            provider.derive_public_key(owner.spend_secret),
            owner.spend_secret,
            provider,
            vout=0,
            txid=txid_for(n),
        )
        assert scanned.is_decoded
        return UTXO(
            txid=scanned.txid,
            vout=scanned.vout,
            amount=scanned.amount,
            commitment=scanned.commitment,
            blind=scanned.blind,
            pubkey=scanned.pubkey,
            ephemeral_pubkey=scanned.ephemeral_pubkey,
            ringct_index=ringct_index if ringct_index is not None else n,
            key_image=scanned.key_image,
        )
    return factory


@pytest.fixture
def plain_utxos(provider):
    """UTXOs with placeholder keys, for planning where nothing is signed."""
    point = provider.derive_public_key(bytes([0x55] * 32))

    def factory(amounts: Sequence[int]) -> List[UTXO]:
        return [
            UTXO(
                txid=txid_for(n),
                vout=n,
                amount=amount,
                commitment=point,
                blind=bytes([0x66] * 32),
                pubkey=point,
                ephemeral_pubkey=point,
                ringct_index=n,
            )
            for n, amount in enumerate(amounts)
        ]
    return factory


@pytest.fixture
def make_ct_output(provider):
    """Build a CT (P2PKH) output paying amount to address with a known blind."""
    def factory(address: str, amount: int):
        eph = generate_ephemeral_keys(address, provider)
        blind = provider.random_scalar()
        commitment = provider.pedersen_commit(amount, blind)
        nonce = provider.sha256(provider.ecdh(eph.destination_pubkey, eph.ephemeral_secret))
        proof = provider.range_proof_sign(commitment, amount, blind, nonce, b"", 0, 0, 32)
        output = CTOutput(
            commitment=commitment,
            data=eph.ephemeral_pubkey,
            script_pubkey=create_p2pkh_script_pubkey(eph.destination_pubkey),
            range_proof=proof,
        )
        return output, blind
    return factory


@pytest.fixture
def make_ct_utxo(keys, address, make_ct_output, provider):
    """CT UTXO owned by the test wallet."""
    counter = iter(range(200, 10_000))

    def factory(amount: int) -> UTXOCT:
        output, blind = make_ct_output(address, amount)
        return UTXOCT(
            txid=txid_for(next(counter)),
            vout=1,
            amount=amount,
            commitment=output.commitment,
            blind=blind,
            script_pubkey=output.script_pubkey,
            pubkey=provider.point_add_scalar(
                provider.derive_public_key(keys.spend_secret),
                provider.ecdh(output.data, keys.scan_secret),
            ),
            ephemeral_pubkey=output.data,
        )
    return factory


@pytest.fixture
def make_pool(provider):
    """Decoy candidates with fresh keys and commitments, indices from start."""
    def factory(count: int, start: int = 1000) -> List[AnonOutput]:
        pool = []
        for i in range(count):
            pool.append(AnonOutput(
                pubkey=provider.derive_public_key(provider.random_scalar()),
                commitment=provider.pedersen_commit(1000 + i, provider.random_scalar()),
                index=start + i,
            ))
        return pool
    return factory


@pytest.fixture
def decoy_pool(make_pool) -> List[AnonOutput]:
    return make_pool(40)


def make_record(
    output,
    ringct_index: int = 0,
    tx_index: int = 0,
    tx_hash: bytes = bytes([0xAB] * 32),
    scan_secret: bytes = bytes(32),
) -> str:
    """Watch-only record hex for a RingCT or CT output."""
    tx_type = WatchOnlyTxType.ANON if isinstance(output, RingCTOutput) else WatchOnlyTxType.STEALTH
    return WatchOnlyTx(
        ringct_index=ringct_index,
        tx_type=tx_type,
        scan_secret=scan_secret,
        tx_hash=tx_hash,
        tx_index=tx_index,
        output=output,
    ).serialize().hex()


@pytest.fixture
def record_factory():
    return make_record


# ==============================================================================
# Fake node
# ==============================================================================

class FakeRpc:
    """
    In-memory node: serves decoys, watch-only pages and key image status.

    anon/stealth items are node-style dicts with "raw" and "dbindex".
    """

    def __init__(
        self,
        pool: Sequence[AnonOutput] = (),
        anon: Sequence[Dict] = (),
        stealth: Sequence[Dict] = (),
        spent: Iterable[str] = (),
        page_size: int = 1000,
    ):
        self.pool = list(pool)
        self.anon = list(anon)
        self.stealth = list(stealth)
        self.spent = {ki.lower() for ki in spent}
        self.page_size = page_size
        self.calls: List[tuple] = []
        self.broadcast: List[str] = []

    async def getanonoutputs(self, n_inputs: int, ring_size: int) -> List[AnonOutput]:
        self.calls.append(("getanonoutputs", n_inputs, ring_size))
        return list(self.pool)

    async def getwatchonlytxes(self, scan_secret_hex: str, offset: int = 0) -> Dict:
        self.calls.append(("getwatchonlytxes", offset))
        return {
            "anon": [i for i in self.anon if i["dbindex"] >= offset][:self.page_size],
            "stealth": [i for i in self.stealth if i["dbindex"] >= offset][:self.page_size],
        }

    async def checkkeyimages(self, key_images: Sequence[str]) -> List[KeyImageStatus]:
        self.calls.append(("checkkeyimages", len(key_images)))
        return [
            KeyImageStatus(key_image=ki, status="valid", spent=ki.lower() in self.spent)
            for ki in key_images
        ]

    async def sendrawtransaction(self, tx_hex: str) -> str:
        self.broadcast.append(tx_hex)
        return "00" * 32


@pytest.fixture
def fake_rpc_factory():
    return FakeRpc


# Async fixtures helper
@pytest.fixture
def async_runner():
    """Helper for running async functions in tests."""
    def runner(coro):
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()
    return runner
