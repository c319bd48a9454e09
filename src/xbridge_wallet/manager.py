"""Resolution of a user's custodial wallets and their signers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from xbridge_chain.sui.signing import extract_public_key
from xbridge_core.exceptions import WalletNotFoundError

from .privy_client import PrivyClient, WalletProviderError

logger = logging.getLogger(__name__)

CHAIN_SUI = "sui"
CHAIN_SOLANA = "solana"


@dataclass(frozen=True)
class WalletInfo:
    wallet_id: str
    address: str
    chain_type: str
    public_key: Optional[str] = None


class PrivySuiSigner:
    """Signs Sui intent messages with a Privy-held Ed25519 key."""

    def __init__(self, privy: PrivyClient, wallet: WalletInfo) -> None:
        self._privy = privy
        self.wallet = wallet
        self.address = wallet.address
        self._public_key: Optional[bytes] = (
            extract_public_key(wallet.public_key) if wallet.public_key else None
        )

    async def public_key(self) -> bytes:
        if self._public_key is None:
            info = await self._privy.get_wallet(self.wallet.wallet_id)
            raw = info.get("public_key")
            if not raw:
                raise WalletProviderError(f"Wallet {self.wallet.wallet_id} has no public key")
            self._public_key = extract_public_key(raw)
        return self._public_key

    async def sign_intent_message(self, intent_message: bytes) -> bytes:
        return await self._privy.raw_sign(self.wallet.wallet_id, intent_message, "blake2b256")


class PrivySolanaSigner:
    """Signs Solana wire transactions with a Privy-held key."""

    def __init__(self, privy: PrivyClient, wallet: WalletInfo) -> None:
        self._privy = privy
        self.wallet = wallet
        self.address = wallet.address

    async def sign_transaction(self, wire_tx: bytes) -> bytes:
        return await self._privy.sign_solana_transaction(self.wallet.wallet_id, wire_tx)


class WalletManager:
    def __init__(self, privy: PrivyClient) -> None:
        self._privy = privy

    async def get_first_wallet(self, user_id: str, chain_type: str) -> WalletInfo:
        """The user's first wallet of ``chain_type``.

        Raises:
            WalletNotFoundError: the user has none
        """
        async for wallet in self._privy.iter_wallets(user_id, chain_type):
            return WalletInfo(
                wallet_id=wallet["id"],
                address=wallet["address"],
                chain_type=wallet.get("chain_type", chain_type),
                public_key=wallet.get("public_key"),
            )
        logger.info("User %s has no %s wallet", user_id, chain_type)
        raise WalletNotFoundError(chain_type)

    async def sui_signer(self, user_id: str) -> PrivySuiSigner:
        return PrivySuiSigner(self._privy, await self.get_first_wallet(user_id, CHAIN_SUI))

    async def solana_signer(self, user_id: str) -> PrivySolanaSigner:
        return PrivySolanaSigner(self._privy, await self.get_first_wallet(user_id, CHAIN_SOLANA))
