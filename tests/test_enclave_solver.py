"""
Tests for the enclave and solver HTTP clients.

Tests cover:
- Request bodies and the API key header
- Retry on network errors only
- Non-2xx responses preserving the diagnostic body
- Timeouts surfacing as a distinct error
"""
from __future__ import annotations

import json

import httpx
import pytest

from xbridge_chain.enclave import BurnVoteRequest, EnclaveClient, MintVoteRequest
from xbridge_chain.solver import SolverClient
from xbridge_core.config import ExternalServiceSettings
from xbridge_core.exceptions import EnclaveError, ExternalServiceTimeoutError, SolverError

VOTE_SIGNATURE = bytes(range(64))


def service_settings(url: str, retries: int = 2) -> ExternalServiceSettings:
    return ExternalServiceSettings(url=url, api_key="k-123", timeout=1.0, retries=retries, retry_delay=0.5)


def make_client(cls, handler, sleep, retries: int = 2):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return cls(service_settings(f"http://{cls.service_name}.test", retries), http_client=http, sleep=sleep)


def burn_vote() -> BurnVoteRequest:
    return BurnVoteRequest(
        request_id="0xabc",
        chain_id=1,
        source_token=b"\x02" * 32,
        source_decimals=9,
        destination_address=b"\x03" * 32,
        source_amount=1_000,
        message=b"\x04\x05",
    )


class TestEnclaveClient:

    @pytest.mark.asyncio
    async def test_vote_burn(self, sleep):
        """Should post the request fields and decode the vote."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"signature": "0x" + VOTE_SIGNATURE.hex(), "timestamp_ms": 1_700_000_000_000}
            )

        client = make_client(EnclaveClient, handler, sleep)
        vote = await client.vote_burn(burn_vote())

        assert vote.signature == VOTE_SIGNATURE
        assert vote.timestamp_ms == 1_700_000_000_000
        request = seen[0]
        assert request.url.path == "/xbridge/vote_burn"
        assert request.headers["x-api-key"] == "k-123"
        assert json.loads(request.content) == {
            "request_id": "abc",
            "chain_id": 1,
            "source_token": "02" * 32,
            "source_decimals": 9,
            "destination_address": "03" * 32,
            "source_amount": "1000",
            "message": "0405",
        }

    @pytest.mark.asyncio
    async def test_vote_mint_sends_digest(self, sleep):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"signature": VOTE_SIGNATURE.hex(), "timestamp_ms": 5})

        client = make_client(EnclaveClient, handler, sleep)
        await client.vote_mint(
            MintVoteRequest(
                request_id="0xdef",
                chain_id=1,
                source_token=b"\x01",
                source_decimals=6,
                source_address=b"\x02",
                source_amount=7,
                deposit_digest="5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW",
            )
        )

        assert bodies[0]["digest"].startswith("5VERv8")
        assert bodies[0]["source_address"] == "02"

    @pytest.mark.asyncio
    async def test_retries_network_errors_only(self, sleep):
        """Should retry connect failures up to the configured count."""
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"signature": VOTE_SIGNATURE.hex(), "timestamp_ms": 1})

        client = make_client(EnclaveClient, handler, sleep, retries=2)
        vote = await client.vote_burn(burn_vote())

        assert vote.timestamp_ms == 1
        assert attempts == 3
        assert sleep.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_network_errors_exhausted(self, sleep):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(EnclaveClient, handler, sleep, retries=2)
        with pytest.raises(EnclaveError):
            await client.vote_burn(burn_vote())
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_http_error_is_not_retried(self, sleep):
        """Should fail on the first non-2xx response and keep its body."""
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            return httpx.Response(500, text="request not found on chain")

        client = make_client(EnclaveClient, handler, sleep)
        with pytest.raises(EnclaveError) as exc_info:
            await client.vote_burn(burn_vote())

        assert attempts == 1
        err = exc_info.value
        assert err.status_code == 500
        assert err.details["body"] == "request not found on chain"
        assert err.details["service"] == "enclave"
        assert err.http_status == 502

    @pytest.mark.asyncio
    async def test_timeout(self, sleep):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(EnclaveClient, handler, sleep)
        with pytest.raises(ExternalServiceTimeoutError) as exc_info:
            await client.vote_burn(burn_vote())

        assert attempts == 1
        assert exc_info.value.details["service"] == "enclave"

    @pytest.mark.asyncio
    async def test_malformed_vote(self, sleep):
        client = make_client(EnclaveClient, lambda r: httpx.Response(200, json={"ok": True}), sleep)
        with pytest.raises(EnclaveError):
            await client.vote_burn(burn_vote())

    @pytest.mark.asyncio
    async def test_not_configured(self, sleep):
        client = EnclaveClient(ExternalServiceSettings(url=""), sleep=sleep)
        with pytest.raises(EnclaveError):
            await client.vote_burn(burn_vote())
        assert await client.health() is False


class TestSolverClient:

    @pytest.mark.asyncio
    async def test_sign(self, sleep):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/sign"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "data": {"signature": "0x" + "11" * 64}})

        client = make_client(SolverClient, handler, sleep)
        signature = await client.sign(b"\xaa\xbb", b"\x01\x02\x03")

        assert signature == bytes([0x11]) * 64
        assert bodies == [{"presign": "aabb", "message": "010203", "chain": "solana"}]

    @pytest.mark.asyncio
    async def test_rejected(self, sleep):
        client = make_client(
            SolverClient,
            lambda r: httpx.Response(200, json={"success": False, "error": "presign consumed"}),
            sleep,
        )
        with pytest.raises(SolverError) as exc_info:
            await client.sign(b"\x01", b"\x02")
        assert "presign consumed" in exc_info.value.details["body"]


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, sleep):
        client = make_client(SolverClient, lambda r: httpx.Response(200, json={"status": "ok"}), sleep)
        assert await client.health() is True

    @pytest.mark.asyncio
    async def test_unreachable(self, sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(EnclaveClient, handler, sleep)
        assert await client.health() is False
