"""
Tests for xbridge_chain.orchestrator.

Tests cover:
- Burn flow end to end against fakes
- Concurrent enclave vote / solver co-sign fan-out
- Phase recovery payloads after and before request creation
- Broadcast of the final two-signature wire transaction
- Mint flow and its step operations
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import base58
import pytest
from solders.pubkey import Pubkey

from xbridge_chain.enclave import EnclaveVote
from xbridge_chain.orchestrator import BridgeOrchestrator, BurnParams, MintParams
from xbridge_chain.solana.nonce import NonceAccount, NonceEnsureResult, NonceState
from xbridge_chain.solana.wire import assemble_final, extract_signature
from xbridge_chain.sui.requests import CreatedRequest
from xbridge_chain.sui.xbridge import BridgeRequestData, PresignData, XBridgeInbound
from xbridge_core.config import SuiSettings
from xbridge_core.exceptions import (
    BroadcastUnconfirmedError,
    EnclaveError,
    WalletNotFoundError,
    XBridgeValidationError,
)
from xbridge_core.phases import FlowFailure, FlowSuccess, Phase
from xbridge_core.polling import PollTimeoutError

PACKAGE = "0x" + "ab" * 32
SUI_ADDRESS = "0x" + "11" * 32
USER_SOLANA = str(Pubkey.from_bytes(bytes([1]) * 32))
NONCE_ADDRESS = str(Pubkey.from_bytes(bytes([3]) * 32))
NONCE_VALUE = str(Pubkey.from_bytes(bytes([9]) * 32))
DESTINATION = bytes([6]) * 32

USER_SIG = bytes([0x55]) * 64
SOLVER_SIG = bytes([0x66]) * 64
DWALLET_SIG = bytes([0x77]) * 64
VOTE = EnclaveVote(signature=bytes([0x88]) * 64, timestamp_ms=1_700_000_000_000)
DEPOSIT_SIGNATURE = base58.b58encode(bytes(range(64))).decode()


class FakeSuiSigner:
    address = SUI_ADDRESS


class FakeSolanaSigner:
    address = USER_SOLANA

    def __init__(self) -> None:
        self.signed: list[bytes] = []

    async def sign_transaction(self, wire_tx: bytes) -> bytes:
        self.signed.append(wire_tx)
        return wire_tx[:1] + USER_SIG + wire_tx[65:]


class RecordingEnclave:
    def __init__(self, log: list[str]) -> None:
        self.log = log
        self.burn_requests = []
        self.mint_requests = []
        self.started = asyncio.Event()
        self.wait_for: asyncio.Event | None = None

    async def vote_burn(self, request):
        self.log.append("enclave:start")
        self.started.set()
        self.burn_requests.append(request)
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1.0)
        self.log.append("enclave:end")
        return VOTE

    async def vote_mint(self, request):
        self.mint_requests.append(request)
        return VOTE


class RecordingSolver:
    def __init__(self, log: list[str]) -> None:
        self.log = log
        self.calls = []
        self.started = asyncio.Event()
        self.wait_for: asyncio.Event | None = None

    async def sign(self, presign: bytes, message: bytes, chain: str = "solana") -> bytes:
        self.log.append("solver:start")
        self.started.set()
        self.calls.append((presign, message, chain))
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=1.0)
        self.log.append("solver:end")
        return SOLVER_SIG


def burn_request_data() -> BridgeRequestData:
    return BridgeRequestData(
        request_id="0xreq",
        source_chain=1,
        source_token=bytes([2]) * 32,
        source_decimals=9,
        source_amount=1_000,
        destination_address=DESTINATION,
        message=b"on-chain message",
        sign_id="0xsign",
    )


@pytest.fixture
def log() -> list[str]:
    return []


@pytest.fixture
def harness(settings, log):
    settings.sui = SuiSettings(package_id=PACKAGE, enclave_object_id="0xenclave")

    wallets = AsyncMock()
    solana_signer = FakeSolanaSigner()
    wallets.sui_signer.return_value = FakeSuiSigner()
    wallets.solana_signer.return_value = solana_signer

    inbound = XBridgeInbound(AsyncMock(), settings.sui)
    inbound.get_burn_request = AsyncMock(return_value=burn_request_data())
    inbound.get_mint_request = AsyncMock(
        return_value=BridgeRequestData(
            request_id="0xmreq",
            source_chain=1,
            source_token=bytes([4]) * 32,
            source_decimals=9,
            source_amount=2_000,
            source_address=bytes([5]) * 32,
        )
    )
    inbound.get_first_presign = AsyncMock(return_value=PresignData("0xpresign", b"\xaa" * 32))

    executed = []

    async def sign_and_execute(tx, signer, show_object_changes=False):
        executed.append(tx)
        return {"digest": f"EXEC{len(executed)}"}

    executor = AsyncMock()
    executor.sign_and_execute.side_effect = sign_and_execute

    request_builder = AsyncMock()
    request_builder.create_burn_request.return_value = CreatedRequest("0xreq", "0xcap", "CREATE")
    request_builder.create_mint_request.return_value = CreatedRequest("0xmreq", "0xmcap", "MCREATE")

    nonce_manager = AsyncMock()
    nonce_manager.fetch.return_value = NonceAccount(
        address=NONCE_ADDRESS,
        state=NonceState.INITIALIZED,
        authority=USER_SOLANA,
        blockhash=NONCE_VALUE,
    )

    solana = AsyncMock()
    solana.send_raw_transaction.return_value = "SOLSIG"
    sign_poller = AsyncMock()
    sign_poller.await_signature.return_value = DWALLET_SIG

    enclave = RecordingEnclave(log)
    solver = RecordingSolver(log)

    orchestrator = BridgeOrchestrator(
        settings=settings,
        wallets=wallets,
        solana=solana,
        sui=AsyncMock(),
        inbound=inbound,
        executor=executor,
        request_builder=request_builder,
        nonce_manager=nonce_manager,
        sign_poller=sign_poller,
        enclave=enclave,
        solver=solver,
    )

    class Harness:
        pass

    h = Harness()
    h.orchestrator = orchestrator
    h.wallets = wallets
    h.solana_signer = solana_signer
    h.inbound = inbound
    h.executed = executed
    h.request_builder = request_builder
    h.nonce_manager = nonce_manager
    h.solana = solana
    h.sign_poller = sign_poller
    h.enclave = enclave
    h.solver = solver
    return h


def burn_params(**overrides) -> BurnParams:
    values = dict(
        user_id="did:privy:user1",
        source_amount=1_000,
        destination_address=DESTINATION,
        nonce_address=NONCE_ADDRESS,
        coin_type=f"{PACKAGE}::wsol::WSOL",
    )
    values.update(overrides)
    return BurnParams(**values)


def mint_params(**overrides) -> MintParams:
    values = dict(
        user_id="did:privy:user1",
        source_chain=1,
        source_token=bytes([4]) * 32,
        source_decimals=9,
        source_address=bytes([5]) * 32,
        source_amount=2_000,
        coin_type=f"{PACKAGE}::wsol::WSOL",
        deposit_signature=DEPOSIT_SIGNATURE,
    )
    values.update(overrides)
    return MintParams(**values)


def targets(tx) -> list[str]:
    out = []
    for cmd in tx.commands:
        if "MoveCall" in cmd:
            out.append(cmd["MoveCall"]["target"])
        else:
            out.append(next(iter(cmd)))
    return out


class TestBurn:

    @pytest.mark.asyncio
    async def test_success(self, harness):
        """Should create, vote and execute the burn request."""
        outcome = await harness.orchestrator.burn(burn_params())

        assert isinstance(outcome, FlowSuccess)
        result = outcome.value
        assert result.create_digest == "CREATE"
        assert result.execute_digest == "EXEC1"
        assert result.request_id == "0xreq"
        assert result.sign_id == "0xsign"
        assert result.user_signature == USER_SIG
        assert result.message[:4] == bytes([2, 1, 6, 11])
        assert len(result.message) == 426

        # User presign covers the same message handed to the solver
        presigned = harness.solana_signer.signed[0]
        assert presigned[0] == 2
        assert extract_signature(presigned, 1) == bytes(64)
        assert harness.solver.calls == [(b"\xaa" * 32, result.message, "solana")]

        # Enclave vote relays the on-chain request fields
        vote_request = harness.enclave.burn_requests[0]
        assert vote_request.request_id == "0xreq"
        assert vote_request.message == b"on-chain message"

        tx2 = harness.executed[0]
        assert targets(tx2) == [f"{PACKAGE}::burn::vote", f"{PACKAGE}::burn::execute"]
        assert tx2.sender == SUI_ADDRESS

    @pytest.mark.asyncio
    async def test_fan_out_is_concurrent(self, harness, log):
        """Should start the enclave vote and solver sign before either completes."""
        harness.enclave.wait_for = harness.solver.started
        harness.solver.wait_for = harness.enclave.started

        outcome = await harness.orchestrator.burn(burn_params())

        assert isinstance(outcome, FlowSuccess)
        assert set(log[:2]) == {"enclave:start", "solver:start"}
        assert set(log[2:]) == {"enclave:end", "solver:end"}

    @pytest.mark.asyncio
    async def test_failure_after_create_carries_recovery(self, harness):
        """Should return requestId and burnCapId when the enclave fails after tx1."""

        async def failing_vote(request):
            raise EnclaveError("enclave request failed: 500", status_code=500, body="boom")

        harness.enclave.vote_burn = failing_vote

        outcome = await harness.orchestrator.burn(burn_params())

        assert isinstance(outcome, FlowFailure)
        assert isinstance(outcome.error, EnclaveError)
        payload = outcome.record.to_payload()
        assert payload["phase"] == "post-create"
        assert payload["failedPhase"] == "collect-signatures"
        assert payload["requestId"] == "0xreq"
        assert payload["burnCapId"] == "0xcap"
        assert payload["createDigest"] == "CREATE"
        assert harness.executed == []

    @pytest.mark.asyncio
    async def test_failure_before_create_has_no_recovery(self, harness):
        harness.wallets.sui_signer.side_effect = WalletNotFoundError("sui")

        outcome = await harness.orchestrator.burn(burn_params())

        assert isinstance(outcome, FlowFailure)
        assert isinstance(outcome.error, WalletNotFoundError)
        assert outcome.record is None
        harness.request_builder.create_burn_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_bad_destination(self, harness):
        outcome = await harness.orchestrator.burn(burn_params(destination_address=b"\x01" * 31))

        assert isinstance(outcome, FlowFailure)
        assert isinstance(outcome.error, XBridgeValidationError)
        assert outcome.record is None

    @pytest.mark.asyncio
    async def test_uninitialized_nonce(self, harness):
        harness.nonce_manager.fetch.return_value = None

        outcome = await harness.orchestrator.burn(burn_params())

        assert isinstance(outcome, FlowFailure)
        assert outcome.error.http_status == 404
        assert outcome.record is None

    @pytest.mark.asyncio
    async def test_burn_and_broadcast(self, harness):
        outcome = await harness.orchestrator.burn_and_broadcast(burn_params())

        assert isinstance(outcome, FlowSuccess)
        assert outcome.value.solana_signature == "SOLSIG"
        harness.sign_poller.await_signature.assert_awaited_once()


class TestBroadcastBurn:

    @pytest.mark.asyncio
    async def test_assembles_both_signatures(self, harness):
        """Should put the user signature in slot 0 and the dWallet's in slot 1."""
        message = bytes([2, 1, 6, 11]) + bytes(100)

        signature = await harness.orchestrator.broadcast_burn(
            "0xreq", "0xsign", USER_SIG, message
        )

        assert signature == "SOLSIG"
        harness.sign_poller.await_signature.assert_awaited_once_with("0xsign", cancel=None)
        harness.solana.send_raw_transaction.assert_awaited_once_with(
            assemble_final(message, USER_SIG, DWALLET_SIG)
        )
        harness.solana.wait_for_confirmation.assert_awaited_once_with("SOLSIG")

    @pytest.mark.asyncio
    async def test_unconfirmed_broadcast_keeps_signature(self, harness):
        """Should surface the sent signature when confirmation times out."""
        harness.solana.wait_for_confirmation.side_effect = PollTimeoutError(30)

        with pytest.raises(BroadcastUnconfirmedError) as exc_info:
            await harness.orchestrator.broadcast_burn(
                "0xreq", "0xsign", USER_SIG, bytes([2, 1, 6, 11]) + bytes(100)
            )

        err = exc_info.value
        assert err.error_code == "BROADCAST_UNCONFIRMED"
        assert err.http_status == 504
        assert err.details["solanaSignature"] == "SOLSIG"
        assert err.details["signId"] == "0xsign"
        assert err.details["retryable"] is False
        harness.solana.send_raw_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_full_flow_unconfirmed_carries_recovery(self, harness):
        harness.solana.wait_for_confirmation.side_effect = PollTimeoutError(30)

        outcome = await harness.orchestrator.burn_and_broadcast(burn_params())

        assert isinstance(outcome, FlowFailure)
        assert isinstance(outcome.error, BroadcastUnconfirmedError)
        assert outcome.record.phase == Phase.BROADCAST
        assert outcome.error.solana_signature == "SOLSIG"


class TestMint:

    @pytest.mark.asyncio
    async def test_success(self, harness):
        """Should vote with the enclave and execute in one combined transaction."""
        outcome = await harness.orchestrator.mint(mint_params())

        assert isinstance(outcome, FlowSuccess)
        assert outcome.value.digest == "EXEC1"
        assert outcome.value.request_id == "0xmreq"
        assert outcome.value.mint_cap_id == "0xmcap"
        assert outcome.value.create_digest == "MCREATE"

        vote_request = harness.enclave.mint_requests[0]
        assert vote_request.deposit_digest == DEPOSIT_SIGNATURE
        assert vote_request.source_amount == 2_000

        tx2 = harness.executed[0]
        assert targets(tx2) == [
            f"{PACKAGE}::mint::set_digest",
            f"{PACKAGE}::mint::vote",
            f"{PACKAGE}::mint::execute",
            "TransferObjects",
        ]

    @pytest.mark.asyncio
    async def test_failure_after_create_carries_mint_cap(self, harness):
        async def failing_vote(request):
            raise EnclaveError("deposit not found", status_code=404)

        harness.enclave.vote_mint = failing_vote

        outcome = await harness.orchestrator.mint(mint_params())

        assert isinstance(outcome, FlowFailure)
        payload = outcome.record.to_payload()
        assert payload["requestId"] == "0xmreq"
        assert payload["mintCapId"] == "0xmcap"

    @pytest.mark.asyncio
    async def test_invalid_deposit_signature(self, harness):
        outcome = await harness.orchestrator.mint(mint_params(deposit_signature="0OIl"))

        assert isinstance(outcome, FlowFailure)
        assert isinstance(outcome.error, XBridgeValidationError)
        assert outcome.record is None
        harness.request_builder.create_mint_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_vote_mint_step(self, harness):
        digest = await harness.orchestrator.vote_mint("did:privy:user1", "0xmreq", DEPOSIT_SIGNATURE)

        assert digest == "EXEC1"
        assert targets(harness.executed[0]) == [f"{PACKAGE}::mint::vote"]

    @pytest.mark.asyncio
    async def test_execute_mint_requires_coin_type(self, harness):
        with pytest.raises(XBridgeValidationError):
            await harness.orchestrator.execute_mint("did:privy:user1", "0xmreq", "0xmcap")


class TestCreateNonce:

    @pytest.mark.asyncio
    async def test_delegates_to_manager(self, harness):
        harness.nonce_manager.ensure.return_value = NonceEnsureResult(
            nonce_address=NONCE_ADDRESS, created=True, signature="NSIG"
        )

        result = await harness.orchestrator.create_nonce("did:privy:user1")

        assert result.signature == "NSIG"
        harness.nonce_manager.ensure.assert_awaited_once_with(USER_SOLANA, harness.solana_signer)
