"""Tests for Sui intent signing, request creation and the JSON-RPC client."""
from __future__ import annotations

import base64
import hashlib
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from xbridge_chain.sui.client import SuiClient, SuiTransactionError
from xbridge_chain.sui.requests import MintRequestParams, RequestBuilder
from xbridge_chain.sui.signing import (
    SuiTransactionExecutor,
    extract_public_key,
    intent_digest,
    message_with_intent,
    to_serialized_signature,
)
from xbridge_chain.sui.transactions import SuiTransaction
from xbridge_chain.sui.xbridge import XBridgeInbound
from xbridge_core.config import SuiSettings
from xbridge_core.exceptions import ObjectExtractionError

PACKAGE = "0x" + "ab" * 32
SENDER = "0x" + "11" * 32
PUBLIC_KEY = bytes(range(32))
SIGNATURE = bytes([0x42]) * 64
TX_BYTES = b"\x00tx-data"


class FakeSigner:
    address = SENDER

    def __init__(self) -> None:
        self.messages: list[bytes] = []

    async def public_key(self) -> bytes:
        return PUBLIC_KEY

    async def sign_intent_message(self, intent_message: bytes) -> bytes:
        self.messages.append(intent_message)
        return SIGNATURE


class TestIntentSigning:

    def test_intent_prefix(self):
        assert message_with_intent(TX_BYTES) == b"\x00\x00\x00" + TX_BYTES

    def test_digest_is_blake2b256(self):
        expected = hashlib.blake2b(b"\x00\x00\x00" + TX_BYTES, digest_size=32).digest()
        assert intent_digest(TX_BYTES) == expected

    def test_serialized_signature(self):
        raw = base64.b64decode(to_serialized_signature(SIGNATURE, PUBLIC_KEY))
        assert raw == b"\x00" + SIGNATURE + PUBLIC_KEY

    def test_serialized_signature_rejects_lengths(self):
        with pytest.raises(ValueError):
            to_serialized_signature(SIGNATURE[:63], PUBLIC_KEY)

    @pytest.mark.parametrize(
        "raw",
        [
            PUBLIC_KEY.hex(),
            "0x" + PUBLIC_KEY.hex(),
            base64.b64encode(b"\x00" + PUBLIC_KEY).decode(),
        ],
    )
    def test_extract_public_key(self, raw):
        assert extract_public_key(raw) == PUBLIC_KEY


class TestExecutor:

    @pytest.mark.asyncio
    async def test_sign_and_execute(self):
        builder = AsyncMock()
        builder.build.return_value = TX_BYTES
        client = AsyncMock()
        client.execute_transaction_block.return_value = {"digest": "D1"}
        signer = FakeSigner()

        tx = SuiTransaction()
        result = await SuiTransactionExecutor(client, builder).sign_and_execute(tx, signer)

        assert result == {"digest": "D1"}
        assert tx.sender == SENDER
        assert signer.messages == [b"\x00\x00\x00" + TX_BYTES]
        client.execute_transaction_block.assert_awaited_once_with(
            base64.b64encode(TX_BYTES).decode(),
            [to_serialized_signature(SIGNATURE, PUBLIC_KEY)],
            show_effects=True,
            show_object_changes=False,
        )


class TestRequestBuilder:

    def _builder(self, object_changes):
        config = SuiSettings(package_id=PACKAGE)
        inbound = XBridgeInbound(AsyncMock(), config)
        executor = AsyncMock()
        executor.sign_and_execute.return_value = {"digest": "CREATE", "objectChanges": object_changes}
        return RequestBuilder(executor, inbound), executor

    def _params(self) -> MintRequestParams:
        return MintRequestParams(
            source_chain=1,
            source_token=b"\x01" * 32,
            source_decimals=9,
            source_address=b"\x02" * 32,
            source_amount=1_000,
            coin_type=f"{PACKAGE}::wsol::WSOL",
        )

    @pytest.mark.asyncio
    async def test_create_mint_request(self):
        changes = [
            {"type": "created", "objectId": "0xreq", "objectType": f"{PACKAGE}::mint::MintRequest<{PACKAGE}::wsol::WSOL>"},
            {"type": "created", "objectId": "0xcap", "objectType": f"{PACKAGE}::mint::MintCap"},
        ]
        builder, executor = self._builder(changes)

        created = await builder.create_mint_request(FakeSigner(), self._params())

        assert (created.request_id, created.cap_id, created.digest) == ("0xreq", "0xcap", "CREATE")
        tx = executor.sign_and_execute.await_args.args[0]
        move_targets = [c["MoveCall"]["target"] for c in tx.commands if "MoveCall" in c]
        assert move_targets == [f"{PACKAGE}::mint::new", f"{PACKAGE}::mint::share"]
        assert executor.sign_and_execute.await_args.kwargs == {"show_object_changes": True}

    @pytest.mark.asyncio
    async def test_missing_cap_keeps_request_id(self):
        """Should report the committed digest and the request id already found."""
        changes = [
            {"type": "created", "objectId": "0xreq", "objectType": f"{PACKAGE}::mint::MintRequest"},
        ]
        builder, _ = self._builder(changes)

        with pytest.raises(ObjectExtractionError) as exc_info:
            await builder.create_mint_request(FakeSigner(), self._params())
        assert exc_info.value.details["createDigest"] == "CREATE"
        assert exc_info.value.details["requestId"] == "0xreq"

    @pytest.mark.asyncio
    async def test_missing_request_has_no_request_id(self):
        changes = [
            {"type": "created", "objectId": "0xcap", "objectType": f"{PACKAGE}::mint::MintCap"},
        ]
        builder, _ = self._builder(changes)

        with pytest.raises(ObjectExtractionError) as exc_info:
            await builder.create_mint_request(FakeSigner(), self._params())
        assert "requestId" not in exc_info.value.details
        assert exc_info.value.details["objectType"].endswith("::mint::MintRequest")


class TestSuiClient:

    def _client(self, handler) -> SuiClient:
        return SuiClient(
            SuiSettings(rpc_url="http://sui.test"),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    @pytest.mark.asyncio
    async def test_execute_failure_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            assert payload["method"] == "sui_executeTransactionBlock"
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": payload["id"],
                    "result": {
                        "digest": "D9",
                        "effects": {"status": {"status": "failure", "error": "MoveAbort(..., 3)"}},
                    },
                },
            )

        with pytest.raises(SuiTransactionError) as exc_info:
            await self._client(handler).execute_transaction_block("AA==", ["sig"])
        assert exc_info.value.digest == "D9"

    @pytest.mark.asyncio
    async def test_wait_for_transaction_retries_until_indexed(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            payload = json.loads(request.content)
            if calls < 3:
                return httpx.Response(
                    200,
                    json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32602, "message": "Could not find the referenced transaction"}},
                )
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": {"digest": "D1"}})

        result = await self._client(handler).wait_for_transaction("D1", max_polls=5, interval=0)

        assert result == {"digest": "D1"}
        assert calls == 3

    @pytest.mark.asyncio
    async def test_object_fields(self):
        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": payload["id"],
                    "result": {"data": {"content": {"dataType": "moveObject", "fields": {"state": "Requested"}}}},
                },
            )

        assert await self._client(handler).get_object_fields("0xsign") == {"state": "Requested"}
