"""
Node RPC Client Tests
"""

import json

import httpx
import pytest

from ringct.api.rpc import KeyImageStatus, RpcClient
from ringct.config import RpcConfig
from ringct.core.types import AnonOutput
from ringct.errors import ErrorCode, RpcError, RpcTimeoutError, ValidationError

NODE_URL = "http://node.test:58812"


def make_client(handler, **config):
    return RpcClient(RpcConfig(url=NODE_URL, **config), transport=httpx.MockTransport(handler))


def result_handler(result, seen=None):
    """Answer every request with result, recording request bodies in seen."""
    def handler(request):
        body = json.loads(request.content)
        if seen is not None:
            seen.append((request, body))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
    return handler


async def call_and_close(client, method, *args):
    async with client:
        return await getattr(client, method)(*args)


class TestCall:
    """Tests for the JSON-RPC envelope."""

    def test_request_shape(self, async_runner):
        seen = []
        client = make_client(result_handler({"blocks": 10}, seen))
        assert async_runner(call_and_close(client, "getblockchaininfo")) == {"blocks": 10}

        request, body = seen[0]
        assert request.url.host == "node.test"
        assert request.url.port == 58812
        assert request.method == "POST"
        assert body["jsonrpc"] == "2.0"
        assert body["method"] == "getblockchaininfo"
        assert body["params"] == []

    def test_ids_increase(self, async_runner):
        seen = []
        client = make_client(result_handler(None, seen))

        async def twice():
            async with client:
                await client.call("a")
                await client.call("b")

        async_runner(twice())
        assert [b["id"] for _, b in seen] == [1, 2]

    def test_basic_auth(self, async_runner):
        seen = []
        client = make_client(result_handler("ok", seen), username="user", password="pass")
        async_runner(call_and_close(client, "call", "ping"))
        assert seen[0][0].headers["authorization"].startswith("Basic ")

    def test_no_auth_without_password(self, async_runner):
        seen = []
        client = make_client(result_handler("ok", seen))
        async_runner(call_and_close(client, "call", "ping"))
        assert "authorization" not in seen[0][0].headers

    def test_rpc_error(self, async_runner):
        def handler(request):
            return httpx.Response(200, json={"id": 1, "error": {"code": -8, "message": "bad param"}})

        with pytest.raises(RpcError) as exc:
            async_runner(call_and_close(make_client(handler), "call", "x"))
        assert exc.value.rpc_code == -8
        assert "bad param" in exc.value.message

    def test_http_error(self, async_runner):
        with pytest.raises(RpcError) as exc:
            async_runner(call_and_close(make_client(lambda r: httpx.Response(500)), "call", "x"))
        assert "HTTP 500" in exc.value.message

    def test_missing_result(self, async_runner):
        with pytest.raises(RpcError):
            async_runner(call_and_close(make_client(lambda r: httpx.Response(200, json={"id": 1})), "call", "x"))

    def test_not_json(self, async_runner):
        with pytest.raises(RpcError):
            async_runner(call_and_close(make_client(lambda r: httpx.Response(200, text="<html>")), "call", "x"))

    def test_timeout(self, async_runner):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RpcTimeoutError) as exc:
            async_runner(call_and_close(make_client(handler, timeout_sec=2.0), "call", "x"))
        assert exc.value.code == ErrorCode.RPC_TIMEOUT
        assert exc.value.timeout == 2.0

    def test_transport_error(self, async_runner):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RpcError) as exc:
            async_runner(call_and_close(make_client(handler), "call", "x"))
        assert exc.value.code == ErrorCode.RPC_FAILURE

    def test_connection_check(self, async_runner):
        assert async_runner(call_and_close(make_client(result_handler({})), "test_connection"))
        assert not async_runner(call_and_close(make_client(lambda r: httpx.Response(503)), "test_connection"))

    def test_password_not_in_repr(self):
        assert "secret" not in repr(RpcConfig(password="secret"))


class TestMethods:
    """Tests for typed node methods."""

    def test_getanonoutputs(self, async_runner, provider):
        pk = provider.derive_public_key(provider.random_scalar())
        commit = provider.pedersen_commit(5, provider.random_scalar())
        seen = []
        client = make_client(result_handler([
            {"pubkey": pk.hex(), "commitment": commit.hex(), "ringctindex": 42, "txid": "ab" * 32, "vout": 1},
            {"pubkey": pk.hex(), "commitment": commit.hex(), "index": 43},
        ], seen))

        outputs = async_runner(call_and_close(client, "getanonoutputs", 2, 11))
        assert seen[0][1]["params"] == [2, 11]
        assert [o.index for o in outputs] == [42, 43]
        assert outputs[0].pubkey == pk
        assert outputs[0].vout == 1

    def test_getanonoutputs_missing_index(self, async_runner):
        client = make_client(result_handler([{"pubkey": "02" * 33, "commitment": "08" * 33}]))
        with pytest.raises(ValidationError):
            async_runner(call_and_close(client, "getanonoutputs", 1, 11))

    def test_getanonoutputs_bad_hex(self, async_runner):
        client = make_client(result_handler([{"pubkey": "zz", "commitment": "08" * 33, "ringctindex": 4}]))
        with pytest.raises(ValidationError) as exc:
            async_runner(call_and_close(client, "getanonoutputs", 1, 11))
        assert "Malformed anon output" in exc.value.message

    def test_getanonoutputs_missing_commitment(self):
        with pytest.raises(ValidationError):
            AnonOutput.from_rpc({"pubkey": "02" * 33, "ringctindex": 4})

    def test_getanonoutputs_not_objects(self, async_runner):
        with pytest.raises(RpcError):
            async_runner(call_and_close(make_client(result_handler(["02" * 33])), "getanonoutputs", 1, 11))

    def test_getanonoutputs_not_array(self, async_runner):
        with pytest.raises(RpcError):
            async_runner(call_and_close(make_client(result_handler({})), "getanonoutputs", 1, 11))

    def test_checkkeyimages(self, async_runner):
        seen = []
        client = make_client(result_handler([
            {"status": "valid", "spent": True, "txid": "cd" * 32},
            {"status": "valid", "spent": False, "spentinmempool": True},
            {"status": "valid", "spent": False},
            {"status": "invalid", "msg": "bad key image"},
        ], seen))
        images = ["02" + "aa" * 32, "03" + "bb" * 32, "02" + "cc" * 32, "zz"]

        statuses = async_runner(call_and_close(client, "checkkeyimages", images))
        assert seen[0][1]["params"] == [images]
        assert [s.key_image for s in statuses] == images
        assert [s.is_spent for s in statuses] == [True, True, False, False]
        assert statuses[0].txid == "cd" * 32
        assert not statuses[3].is_valid
        assert statuses[3].msg == "bad key image"

    def test_checkkeyimages_not_objects(self, async_runner):
        client = make_client(result_handler([{"status": "valid", "spent": False}, "spent"]))
        with pytest.raises(RpcError) as exc:
            async_runner(call_and_close(client, "checkkeyimages", ["02" + "aa" * 32, "02" + "bb" * 32]))
        assert "entry 1" in exc.value.message

    def test_key_image_status(self):
        status = KeyImageStatus(key_image="02", status="valid", spent=False, spent_in_mempool=True)
        assert status.is_spent
        assert status.is_valid

    def test_getwatchonlytxes(self, async_runner):
        seen = []
        client = make_client(result_handler({"anon": [], "stealth": []}, seen))
        result = async_runner(call_and_close(client, "getwatchonlytxes", "11" * 32, 100))
        assert result == {"anon": [], "stealth": []}
        assert seen[0][1]["method"] == "getwatchonlytxes"
        assert seen[0][1]["params"] == ["11" * 32, 100]

    def test_sendrawtransaction(self, async_runner):
        seen = []
        client = make_client(result_handler("ef" * 32, seen))
        assert async_runner(call_and_close(client, "sendrawtransaction", "0200")) == "ef" * 32
        assert seen[0][1]["params"] == ["0200"]
