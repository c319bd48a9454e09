"""Dependency container for the bridge API.

Every client is built once, on first use, from ``XBridgeSettings`` and shared
by all requests for the life of the process. ``aclose()`` releases the HTTP
connection pools of whatever was actually built.
"""
from __future__ import annotations

import logging
from functools import cached_property
from typing import Optional

from xbridge_chain.enclave import EnclaveClient
from xbridge_chain.orchestrator import BridgeOrchestrator
from xbridge_chain.solana.client import SolanaClient
from xbridge_chain.solana.nonce import NonceAccountManager
from xbridge_chain.solver import SolverClient
from xbridge_chain.sui.client import SuiClient
from xbridge_chain.sui.requests import RequestBuilder
from xbridge_chain.sui.sign_poller import ThresholdSignPoller
from xbridge_chain.sui.signing import SuiTransactionExecutor
from xbridge_chain.sui.transactions import RemoteTransactionBuilder
from xbridge_chain.sui.xbridge import XBridgeInbound
from xbridge_core.config import XBridgeSettings, load_settings
from xbridge_wallet.manager import WalletManager
from xbridge_wallet.privy_client import PrivyClient

from .authz import AccessTokenVerifier

logger = logging.getLogger(__name__)

_CLOSEABLE = (
    "solana_client",
    "sui_client",
    "transaction_builder",
    "enclave_client",
    "solver_client",
    "privy_client",
)


class ServiceContainer:
    """
    Lazily built, process-wide service graph.

    Usage:
        container = ServiceContainer(settings)
        orchestrator = container.orchestrator
        ...
        await container.aclose()
    """

    def __init__(self, settings: Optional[XBridgeSettings] = None) -> None:
        self._settings = settings or load_settings()

    @property
    def settings(self) -> XBridgeSettings:
        return self._settings

    # =========================================================================
    # Chains
    # =========================================================================

    @cached_property
    def solana_client(self) -> SolanaClient:
        return SolanaClient(self._settings.solana)

    @cached_property
    def sui_client(self) -> SuiClient:
        return SuiClient(self._settings.sui)

    @cached_property
    def transaction_builder(self) -> RemoteTransactionBuilder:
        if not self._settings.sui.tx_builder_url:
            logger.warning("XBRIDGE_SUI__TX_BUILDER_URL not set; Sui transactions cannot be built")
        return RemoteTransactionBuilder(
            self._settings.sui.tx_builder_url, timeout=self._settings.sui.timeout
        )

    @cached_property
    def executor(self) -> SuiTransactionExecutor:
        return SuiTransactionExecutor(self.sui_client, self.transaction_builder)

    @cached_property
    def inbound(self) -> XBridgeInbound:
        return XBridgeInbound(self.sui_client, self._settings.sui)

    @cached_property
    def request_builder(self) -> RequestBuilder:
        return RequestBuilder(self.executor, self.inbound)

    @cached_property
    def nonce_manager(self) -> NonceAccountManager:
        solana = self._settings.solana
        return NonceAccountManager(
            self.solana_client,
            seed=solana.nonce_seed,
            tx_fee_lamports=solana.tx_fee_lamports,
            retry_attempts=self._settings.blockhash_retry_attempts,
            retry_delay=self._settings.blockhash_retry_delay,
        )

    @cached_property
    def sign_poller(self) -> ThresholdSignPoller:
        return ThresholdSignPoller(
            self.sui_client,
            max_polls=self._settings.sign_max_polls,
            interval=self._settings.sign_poll_interval,
        )

    # =========================================================================
    # Off-chain services
    # =========================================================================

    @cached_property
    def enclave_client(self) -> EnclaveClient:
        return EnclaveClient(self._settings.enclave)

    @cached_property
    def solver_client(self) -> SolverClient:
        return SolverClient(self._settings.solver)

    @cached_property
    def privy_client(self) -> PrivyClient:
        return PrivyClient(self._settings.privy)

    @cached_property
    def wallet_manager(self) -> WalletManager:
        return WalletManager(self.privy_client)

    @cached_property
    def token_verifier(self) -> AccessTokenVerifier:
        privy = self._settings.privy
        return AccessTokenVerifier(privy.verification_key, privy.app_id)

    # =========================================================================
    # Orchestration
    # =========================================================================

    @cached_property
    def orchestrator(self) -> BridgeOrchestrator:
        return BridgeOrchestrator(
            settings=self._settings,
            wallets=self.wallet_manager,
            solana=self.solana_client,
            sui=self.sui_client,
            inbound=self.inbound,
            executor=self.executor,
            request_builder=self.request_builder,
            nonce_manager=self.nonce_manager,
            sign_poller=self.sign_poller,
            enclave=self.enclave_client,
            solver=self.solver_client,
        )

    async def aclose(self) -> None:
        for name in _CLOSEABLE:
            client = self.__dict__.get(name)
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:  # noqa: BLE001
                logger.warning("Failed to close %s: %s", name, e)
