"""Bridge request lifecycle orchestration.

Burn (Sui -> Solana):
    setup -> user presign of the durable-nonce SPL transfer -> create request
    -> {enclave vote || presign + solver co-sign} -> vote + execute
    -> await threshold signature -> assemble wire tx -> broadcast

Mint (Solana -> Sui):
    setup -> create request -> enclave vote -> set digest + vote + execute

Flows that commit a request on-chain run inside a ``PhaseRecoveryTracker`` and
return ``FlowSuccess``/``FlowFailure``. The remaining operations raise.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Protocol

import base58

from xbridge_core.config import XBridgeSettings
from xbridge_core.constants import SolanaDefaults
from xbridge_core.exceptions import (
    BroadcastUnconfirmedError,
    XBridgeException,
    XBridgeNotFoundError,
    XBridgeValidationError,
)
from xbridge_core.logging_config import set_bridge_request_context
from xbridge_core.phases import FlowOutcome, Phase, PhaseRecoveryTracker
from xbridge_core.polling import PollTimeoutError

from .enclave import BurnVoteRequest, EnclaveClient, EnclaveVote, MintVoteRequest
from .solana.client import SolanaClient
from .solana.keys import NATIVE_SOL_MINT, find_associated_token_address, to_pubkey
from .solana.message import SplTransferParams, build_spl_transfer_message
from .solana.nonce import NonceAccountManager, NonceEnsureResult, NonceState, SolanaTransactionSigner
from .solana.wire import assemble_final, assemble_placeholder, extract_signature
from .solver import SolverClient
from .sui.client import SuiClient
from .sui.requests import BurnRequestParams, CreatedRequest, MintRequestParams, RequestBuilder
from .sui.sign_poller import ThresholdSignPoller
from .sui.signing import SuiSigner, SuiTransactionExecutor
from .sui.transactions import SuiTransaction
from .sui.xbridge import CHAIN_ID_SOLANA, PresignData, PresignNotFoundError, XBridgeInbound

logger = logging.getLogger(__name__)

BURN_CAP_FIELD = "burnCapId"
MINT_CAP_FIELD = "mintCapId"


class SolanaAccountSigner(SolanaTransactionSigner, Protocol):
    address: str


class WalletPort(Protocol):
    async def sui_signer(self, user_id: str) -> SuiSigner: ...

    async def solana_signer(self, user_id: str) -> SolanaAccountSigner: ...


@dataclass(frozen=True)
class BurnParams:
    user_id: str
    source_amount: int
    destination_address: bytes
    nonce_address: str
    coin_type: str


@dataclass(frozen=True)
class MintParams:
    user_id: str
    source_chain: int
    source_token: bytes
    source_decimals: int
    source_address: bytes
    source_amount: int
    coin_type: str
    deposit_signature: str


@dataclass(frozen=True)
class BurnResult:
    create_digest: str
    execute_digest: str
    request_id: str
    sign_id: str
    user_signature: bytes
    message: bytes


@dataclass(frozen=True)
class BurnSettlement:
    burn: BurnResult
    solana_signature: str


@dataclass(frozen=True)
class MintResult:
    digest: str
    request_id: str
    mint_cap_id: str
    create_digest: str


async def _join(*aws: Awaitable[Any]) -> list[Any]:
    """Run ``aws`` concurrently; cancel the rest as soon as one fails."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


def decode_deposit_signature(deposit_signature: str) -> bytes:
    try:
        digest = base58.b58decode(deposit_signature)
    except ValueError as e:
        raise XBridgeValidationError(
            "depositSignature is not valid base58", field="depositSignature"
        ) from e
    if not digest:
        raise XBridgeValidationError("depositSignature is empty", field="depositSignature")
    return digest


class BridgeOrchestrator:
    """Drives mint and burn requests from creation to settlement."""

    def __init__(
        self,
        *,
        settings: XBridgeSettings,
        wallets: WalletPort,
        solana: SolanaClient,
        sui: SuiClient,
        inbound: XBridgeInbound,
        executor: SuiTransactionExecutor,
        request_builder: RequestBuilder,
        nonce_manager: NonceAccountManager,
        sign_poller: ThresholdSignPoller,
        enclave: EnclaveClient,
        solver: SolverClient,
    ) -> None:
        self._settings = settings
        self._wallets = wallets
        self._solana = solana
        self._sui = sui
        self._inbound = inbound
        self._executor = executor
        self._request_builder = request_builder
        self._nonce_manager = nonce_manager
        self._sign_poller = sign_poller
        self._enclave = enclave
        self._solver = solver

    # =========================================================================
    # Burn
    # =========================================================================

    async def burn(self, params: BurnParams) -> FlowOutcome[BurnResult]:
        """Create, attest and execute a burn request; stops before broadcast."""
        tracker = PhaseRecoveryTracker(cap_field=BURN_CAP_FIELD)
        return await tracker.run(lambda t: self._burn(t, params))

    async def burn_and_broadcast(
        self, params: BurnParams, cancel: Optional[asyncio.Event] = None
    ) -> FlowOutcome[BurnSettlement]:
        """The whole burn flow including threshold signature and Solana broadcast."""

        async def flow(tracker: PhaseRecoveryTracker) -> BurnSettlement:
            burn = await self._burn(tracker, params)
            signature = await self._settle_burn(
                tracker, burn.sign_id, burn.user_signature, burn.message, cancel
            )
            return BurnSettlement(burn=burn, solana_signature=signature)

        tracker = PhaseRecoveryTracker(cap_field=BURN_CAP_FIELD)
        return await tracker.run(flow)

    async def broadcast_burn(
        self,
        request_id: str,
        sign_id: str,
        user_signature: bytes,
        message: bytes,
        cancel: Optional[asyncio.Event] = None,
    ) -> str:
        """Finish an executed burn: wait for the dWallet signature and broadcast."""
        set_bridge_request_context(request_id)
        tracker = PhaseRecoveryTracker(cap_field=BURN_CAP_FIELD)
        return await self._settle_burn(tracker, sign_id, user_signature, message, cancel)

    async def _burn(self, tracker: PhaseRecoveryTracker, params: BurnParams) -> BurnResult:
        tracker.enter(Phase.SETUP)
        if params.source_amount <= 0:
            raise XBridgeValidationError("sourceAmount must be positive", field="sourceAmount")
        if len(params.destination_address) != 32:
            raise XBridgeValidationError(
                "destinationAddress must be 32 bytes", field="destinationAddress"
            )
        dwallet_address = self._settings.solana.dwallet_address
        if not dwallet_address:
            raise XBridgeException("Solana dWallet address not configured")

        sui_signer, solana_signer = await asyncio.gather(
            self._wallets.sui_signer(params.user_id),
            self._wallets.solana_signer(params.user_id),
        )

        tracker.enter(Phase.BUILD_USER_PRESIGN)
        nonce = await self._nonce_manager.fetch(params.nonce_address)
        if nonce is None or nonce.state != NonceState.INITIALIZED:
            raise XBridgeNotFoundError("NonceAccount", params.nonce_address)

        token_owner = to_pubkey(dwallet_address, "dwallet_address")
        destination_wallet = to_pubkey(params.destination_address, "destinationAddress")
        nonce_authority = to_pubkey(solana_signer.address, "solana wallet")
        source_ata = find_associated_token_address(token_owner, NATIVE_SOL_MINT)
        destination_ata = find_associated_token_address(destination_wallet, NATIVE_SOL_MINT)
        nonce_account = to_pubkey(params.nonce_address, "nonceAddress")

        message = build_spl_transfer_message(
            SplTransferParams(
                nonce_authority=bytes(nonce_authority),
                token_owner=bytes(token_owner),
                nonce_account=bytes(nonce_account),
                destination_ata=bytes(destination_ata),
                source_ata=bytes(source_ata),
                destination_wallet=bytes(destination_wallet),
                mint=bytes(NATIVE_SOL_MINT),
                nonce=nonce.blockhash_bytes,
                amount=params.source_amount,
                decimals=SolanaDefaults.SOL_DECIMALS,
            )
        )
        # Signed as a transaction, not a message: the off-chain message prefix
        # would invalidate the signature on-chain.
        signed = await solana_signer.sign_transaction(assemble_placeholder(2, message))
        user_signature = extract_signature(signed, 0)

        tracker.enter(Phase.CREATE_REQUEST)
        created = await self._request_builder.create_burn_request(
            sui_signer,
            BurnRequestParams(
                source_chain=CHAIN_ID_SOLANA,
                source_token=bytes(NATIVE_SOL_MINT),
                source_decimals=SolanaDefaults.SOL_DECIMALS,
                destination_address=params.destination_address,
                source_amount=params.source_amount,
                dwallet_address=bytes(token_owner),
                message=message,
                nonce=nonce.blockhash_bytes,
                nonce_account=bytes(nonce_account),
                nonce_authority=bytes(nonce_authority),
                destination_wallet=bytes(destination_wallet),
                destination_ata=bytes(destination_ata),
                coin_type=params.coin_type,
                burn_coin_type=self._settings.sui.burn_coin_type or params.coin_type,
            ),
        )
        tracker.record_request(created.request_id, created.cap_id, created.digest)
        set_bridge_request_context(created.request_id)
        await self._sui.wait_for_transaction(created.digest)

        tracker.enter(Phase.COLLECT_SIGNATURES)
        vote, solver_signature = await _join(
            self._vote_burn(created.request_id),
            self._presign_and_cosign(tracker, sui_signer, message),
        )

        tracker.enter(Phase.EXECUTE_REQUEST)
        tx = SuiTransaction(sender=sui_signer.address)
        self._inbound.vote_burn_request(
            tx,
            request_id=created.request_id,
            signature=vote.signature,
            timestamp_ms=vote.timestamp_ms,
            coin_type=params.coin_type,
        )
        self._inbound.execute_burn_request(
            tx,
            request_id=created.request_id,
            burn_cap_id=created.cap_id,
            presign_cap_id=tracker.presign_cap_id,
            message_centralized_signature=solver_signature,
            coin_type=params.coin_type,
        )
        executed = await self._executor.sign_and_execute(tx, sui_signer)

        updated = await self._inbound.get_burn_request(created.request_id)
        if not updated.sign_id:
            raise XBridgeException(
                f"Burn request {created.request_id} has no sign session after execution"
            )

        logger.info("Burn request %s executed (sign id %s)", created.request_id, updated.sign_id)
        return BurnResult(
            create_digest=created.digest,
            execute_digest=executed["digest"],
            request_id=created.request_id,
            sign_id=updated.sign_id,
            user_signature=user_signature,
            message=message,
        )

    async def _vote_burn(self, request_id: str) -> EnclaveVote:
        data = await self._inbound.get_burn_request(request_id)
        return await self._enclave.vote_burn(
            BurnVoteRequest(
                request_id=request_id,
                chain_id=data.source_chain,
                source_token=data.source_token,
                source_decimals=data.source_decimals,
                destination_address=data.destination_address,
                source_amount=data.source_amount,
                message=data.message,
            )
        )

    async def _presign_and_cosign(
        self, tracker: PhaseRecoveryTracker, signer: SuiSigner, message: bytes
    ) -> bytes:
        presign = await self._ensure_presign(signer)
        tracker.record_presign_cap(presign.presign_cap_id)
        return await self._solver.sign(presign.presign, message, chain="solana")

    async def _ensure_presign(self, signer: SuiSigner) -> PresignData:
        """The signer's first PresignCap, minting one if it holds none."""
        try:
            return await self._inbound.get_first_presign(signer.address)
        except PresignNotFoundError:
            logger.info("No PresignCap for %s, minting one", signer.address)

        tx = SuiTransaction(sender=signer.address)
        fee = tx.split_coins(tx.gas, [0])
        self._inbound.mint_presign(tx, chain_id=CHAIN_ID_SOLANA, fee=fee, owner=signer.address)
        result = await self._executor.sign_and_execute(tx, signer)
        await self._sui.wait_for_transaction(result["digest"])
        return await self._inbound.get_first_presign(signer.address)

    async def _settle_burn(
        self,
        tracker: PhaseRecoveryTracker,
        sign_id: str,
        user_signature: bytes,
        message: bytes,
        cancel: Optional[asyncio.Event],
    ) -> str:
        tracker.enter(Phase.AWAIT_THRESHOLD_SIGNATURE)
        dwallet_signature = await self._sign_poller.await_signature(sign_id, cancel=cancel)

        tracker.enter(Phase.ASSEMBLE_WIRE_TX)
        raw_tx = assemble_final(message, user_signature, dwallet_signature)

        tracker.enter(Phase.BROADCAST)
        signature = await self._solana.send_raw_transaction(raw_tx)
        try:
            await self._solana.wait_for_confirmation(signature)
        except PollTimeoutError as e:
            logger.warning("Solana tx %s for %s not confirmed after %d polls", signature, sign_id, e.polls)
            raise BroadcastUnconfirmedError(signature, sign_id, e.polls) from e
        return signature

    # =========================================================================
    # Mint
    # =========================================================================

    async def mint(self, params: MintParams) -> FlowOutcome[MintResult]:
        """Create a mint request, attest the deposit and execute in a second tx."""
        tracker = PhaseRecoveryTracker(cap_field=MINT_CAP_FIELD)
        return await tracker.run(lambda t: self._mint(t, params))

    async def _mint(self, tracker: PhaseRecoveryTracker, params: MintParams) -> MintResult:
        tracker.enter(Phase.SETUP)
        deposit_digest = decode_deposit_signature(params.deposit_signature)
        signer = await self._wallets.sui_signer(params.user_id)

        tracker.enter(Phase.CREATE_REQUEST)
        created = await self._request_builder.create_mint_request(signer, self._mint_request_params(params))
        tracker.record_request(created.request_id, created.cap_id, created.digest)
        set_bridge_request_context(created.request_id)
        # The enclave reads the request from chain
        await self._sui.wait_for_transaction(created.digest)

        tracker.enter(Phase.COLLECT_SIGNATURES)
        vote = await self._vote_mint(created.request_id, params.deposit_signature)

        tracker.enter(Phase.EXECUTE_REQUEST)
        tx = SuiTransaction(sender=signer.address)
        self._inbound.set_mint_digest(
            tx, request_id=created.request_id, mint_cap_id=created.cap_id, digest=deposit_digest
        )
        self._inbound.vote_mint_request(
            tx,
            request_id=created.request_id,
            signature=vote.signature,
            timestamp_ms=vote.timestamp_ms,
        )
        minted = self._inbound.execute_mint_request(
            tx, request_id=created.request_id, mint_cap_id=created.cap_id, coin_type=params.coin_type
        )
        tx.transfer_objects([minted], signer.address)
        executed = await self._executor.sign_and_execute(tx, signer)

        logger.info("Mint request %s executed", created.request_id)
        return MintResult(
            digest=executed["digest"],
            request_id=created.request_id,
            mint_cap_id=created.cap_id,
            create_digest=created.digest,
        )

    async def _vote_mint(self, request_id: str, deposit_signature: str) -> EnclaveVote:
        data = await self._inbound.get_mint_request(request_id)
        return await self._enclave.vote_mint(
            MintVoteRequest(
                request_id=request_id,
                chain_id=data.source_chain,
                source_token=data.source_token,
                source_decimals=data.source_decimals,
                source_address=data.source_address,
                source_amount=data.source_amount,
                deposit_digest=deposit_signature,
            )
        )

    @staticmethod
    def _mint_request_params(params: MintParams) -> MintRequestParams:
        if params.source_amount <= 0:
            raise XBridgeValidationError("sourceAmount must be positive", field="sourceAmount")
        return MintRequestParams(
            source_chain=params.source_chain,
            source_token=params.source_token,
            source_decimals=params.source_decimals,
            source_address=params.source_address,
            source_amount=params.source_amount,
            coin_type=params.coin_type,
        )

    async def create_mint_request(self, params: MintParams) -> CreatedRequest:
        """Only the first mint transaction; resume with the step endpoints."""
        signer = await self._wallets.sui_signer(params.user_id)
        return await self._request_builder.create_mint_request(signer, self._mint_request_params(params))

    async def vote_mint(self, user_id: str, request_id: str, deposit_signature: str) -> str:
        decode_deposit_signature(deposit_signature)
        signer = await self._wallets.sui_signer(user_id)
        set_bridge_request_context(request_id)
        vote = await self._vote_mint(request_id, deposit_signature)

        tx = SuiTransaction(sender=signer.address)
        self._inbound.vote_mint_request(
            tx, request_id=request_id, signature=vote.signature, timestamp_ms=vote.timestamp_ms
        )
        result = await self._executor.sign_and_execute(tx, signer)
        return result["digest"]

    async def set_mint_digest(
        self, user_id: str, request_id: str, mint_cap_id: str, deposit_signature: str
    ) -> str:
        digest = decode_deposit_signature(deposit_signature)
        signer = await self._wallets.sui_signer(user_id)
        tx = SuiTransaction(sender=signer.address)
        self._inbound.set_mint_digest(tx, request_id=request_id, mint_cap_id=mint_cap_id, digest=digest)
        result = await self._executor.sign_and_execute(tx, signer)
        return result["digest"]

    async def execute_mint(
        self, user_id: str, request_id: str, mint_cap_id: str, coin_type: Optional[str] = None
    ) -> str:
        coin_type = coin_type or self._settings.sui.burn_coin_type
        if not coin_type:
            raise XBridgeValidationError("Missing coinType", field="coinType")
        signer = await self._wallets.sui_signer(user_id)
        tx = SuiTransaction(sender=signer.address)
        minted = self._inbound.execute_mint_request(
            tx, request_id=request_id, mint_cap_id=mint_cap_id, coin_type=coin_type
        )
        tx.transfer_objects([minted], signer.address)
        result = await self._executor.sign_and_execute(tx, signer)
        return result["digest"]

    # =========================================================================
    # Nonce
    # =========================================================================

    async def create_nonce(self, user_id: str) -> NonceEnsureResult:
        signer = await self._wallets.solana_signer(user_id)
        return await self._nonce_manager.ensure(signer.address, signer)
