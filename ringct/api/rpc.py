"""
Node JSON-RPC 2.0 client.

All node access goes through RpcClient; configuration is passed in
explicitly, never read from module state.

Usage:
    async with RpcClient(EngineConfig.from_env().rpc) as rpc:
        info = await rpc.getblockchaininfo()
        decoys = await rpc.getanonoutputs(n_inputs=2, ring_size=11)
"""

from __future__ import annotations
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ringct.config import RpcConfig
from ringct.core.types import AnonOutput
from ringct.errors import RpcError, RpcTimeoutError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


@dataclass(frozen=True, slots=True)
class KeyImageStatus:
    """Spent state of one key image as reported by checkkeyimages."""
    key_image: str
    status: str
    spent: bool
    spent_in_mempool: bool = False
    txid: Optional[str] = None
    msg: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"

    @property
    def is_spent(self) -> bool:
        return self.spent or self.spent_in_mempool


class RpcClient:
    """
    Async JSON-RPC client for a node.

    One HTTP connection pool is held for the client's lifetime; close it with
    `await client.close()` or use the client as an async context manager.
    """

    def __init__(
        self,
        config: Optional[RpcConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or RpcConfig()
        self._ids = itertools.count(1)
        auth = None
        if self.config.password:
            auth = httpx.BasicAuth(self.config.username, self.config.password)
        self._client = httpx.AsyncClient(
            auth=auth,
            timeout=self.config.timeout_sec,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> RpcClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        """
        Send one JSON-RPC request.

        Raises:
            RpcTimeoutError: no response within the configured timeout
            RpcError: HTTP failure, RPC error object or missing result
        """
        request = {
            "jsonrpc": JSONRPC_VERSION,
            "id": next(self._ids),
            "method": method,
            "params": list(params or []),
        }
        logger.debug(f"RPC -> {method} (id={request['id']})")

        try:
            response = await self._client.post(self.config.url, json=request)
        except httpx.TimeoutException as e:
            raise RpcTimeoutError(self.config.timeout_sec) from e
        except httpx.HTTPError as e:
            raise RpcError(f"{method}: transport error: {e}") from e

        if response.status_code != 200:
            raise RpcError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                data={"method": method, "status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RpcError(f"{method}: response is not JSON") from e

        error = body.get("error")
        if error:
            raise RpcError(
                f"RPC Error {error.get('code')}: {error.get('message')}",
                rpc_code=error.get("code"),
                data=error.get("data"),
            )

        if "result" not in body:
            raise RpcError(f"{method}: RPC response missing result")

        return body["result"]

    # ------------------------------------------------------------------
    # Chain
    # ------------------------------------------------------------------

    async def getblockchaininfo(self) -> Dict[str, Any]:
        return await self.call("getblockchaininfo")

    async def getblockhash(self, height: int) -> str:
        return await self.call("getblockhash", [height])

    async def getblock(self, block_hash: str, verbosity: int = 1) -> Any:
        return await self.call("getblock", [block_hash, verbosity])

    async def getrawtransaction(self, txid: str, verbose: bool = False) -> Any:
        return await self.call("getrawtransaction", [txid, verbose])

    async def sendrawtransaction(self, tx_hex: str) -> str:
        """Broadcast a serialized transaction; returns its txid."""
        return await self.call("sendrawtransaction", [tx_hex])

    async def listunspent(
        self,
        min_conf: int = 1,
        max_conf: int = 9999999,
        addresses: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        params: List[Any] = [min_conf, max_conf]
        if addresses:
            params.append(addresses)
        return await self.call("listunspent", params)

    # ------------------------------------------------------------------
    # Anonymous outputs
    # ------------------------------------------------------------------

    async def getanonoutputs(self, n_inputs: int, ring_size: int) -> List[AnonOutput]:
        """Fetch ring member candidates for n_inputs rings of ring_size."""
        result = await self.call("getanonoutputs", [n_inputs, ring_size])
        if not isinstance(result, list):
            raise RpcError("getanonoutputs: expected array response")
        if not all(isinstance(item, dict) for item in result):
            raise RpcError("getanonoutputs: expected array of objects")
        outputs = [AnonOutput.from_rpc(item) for item in result]
        logger.debug(f"getanonoutputs returned {len(outputs)} candidates")
        return outputs

    async def checkkeyimages(self, key_images: Sequence[str]) -> List[KeyImageStatus]:
        """
        Look up the spent state of hex key images.

        Entries the node marks invalid come back unspent with a warning.
        """
        result = await self.call("checkkeyimages", [list(key_images)])
        if not isinstance(result, list):
            raise RpcError("checkkeyimages: expected array response")

        statuses = []
        for index, item in enumerate(result):
            if not isinstance(item, dict):
                raise RpcError(f"checkkeyimages: entry {index} is not an object")
            key_image = key_images[index] if index < len(key_images) else ""
            if item.get("status") == "invalid":
                logger.warning(f"Invalid key image at index {index}: {item.get('msg')}")
                statuses.append(KeyImageStatus(
                    key_image=key_image,
                    status="invalid",
                    spent=False,
                    msg=item.get("msg"),
                ))
                continue
            statuses.append(KeyImageStatus(
                key_image=key_image,
                status="valid",
                spent=bool(item.get("spent")),
                spent_in_mempool=bool(item.get("spentinmempool")),
                txid=item.get("txid"),
            ))
        return statuses

    # ------------------------------------------------------------------
    # Watch-only (light wallet)
    # ------------------------------------------------------------------

    async def importlightwalletaddress(
        self,
        scan_secret_hex: str,
        spend_pubkey_hex: str,
        from_block: int,
    ) -> Any:
        return await self.call("importlightwalletaddress", [scan_secret_hex, spend_pubkey_hex, from_block])

    async def getwatchonlystatus(self, scan_secret_hex: str, spend_pubkey_hex: str) -> Any:
        return await self.call("getwatchonlystatus", [scan_secret_hex, spend_pubkey_hex])

    async def getwatchonlytxes(self, scan_secret_hex: str, offset: int = 0) -> Dict[str, Any]:
        return await self.call("getwatchonlytxes", [scan_secret_hex, offset])

    async def test_connection(self) -> bool:
        """True if the node answers getblockchaininfo."""
        try:
            await self.getblockchaininfo()
            return True
        except RpcError as e:
            logger.info(f"Node connection test failed: {e.message}")
            return False
