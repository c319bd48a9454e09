"""Durable nonce account management."""
from __future__ import annotations

import base64
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Protocol

import base58
from solders.pubkey import Pubkey

from xbridge_core.constants import RetryDefaults, SolanaDefaults
from xbridge_core.exceptions import InsufficientFundsError
from xbridge_core.retry import with_blockhash_retry

from .client import SolanaClient
from .keys import derive_nonce_address, to_pubkey
from .message import build_create_nonce_message
from .wire import assemble_placeholder

logger = logging.getLogger(__name__)

_NONCE_LAYOUT = struct.Struct("<II32s32sQ")


class NonceState(IntEnum):
    UNINITIALIZED = 0
    INITIALIZED = 1


@dataclass(frozen=True)
class NonceAccount:
    address: str
    state: NonceState
    authority: Optional[str]
    blockhash: Optional[str]

    @property
    def blockhash_bytes(self) -> bytes:
        if not self.blockhash:
            raise ValueError(f"Nonce account {self.address} has no stored blockhash")
        return base58.b58decode(self.blockhash)


def parse_nonce_account(address: str, data: bytes) -> NonceAccount:
    """Decode the 80-byte nonce account layout."""
    if len(data) < _NONCE_LAYOUT.size:
        return NonceAccount(address, NonceState.UNINITIALIZED, None, None)
    _version, state, authority, blockhash, _fee = _NONCE_LAYOUT.unpack_from(data)
    if state != NonceState.INITIALIZED:
        return NonceAccount(address, NonceState.UNINITIALIZED, None, None)
    return NonceAccount(
        address=address,
        state=NonceState.INITIALIZED,
        authority=str(Pubkey.from_bytes(authority)),
        blockhash=base58.b58encode(blockhash).decode(),
    )


class SolanaTransactionSigner(Protocol):
    """Signs a base wire transaction and returns it with its slot filled."""

    async def sign_transaction(self, wire_tx: bytes) -> bytes: ...


@dataclass(frozen=True)
class NonceEnsureResult:
    nonce_address: str
    created: bool
    signature: Optional[str] = None


class NonceAccountManager:
    """Derives, checks and creates a wallet's durable nonce account."""

    def __init__(
        self,
        client: SolanaClient,
        seed: str = SolanaDefaults.NONCE_SEED,
        tx_fee_lamports: int = SolanaDefaults.TX_FEE_LAMPORTS,
        retry_attempts: int = RetryDefaults.BLOCKHASH_MAX_ATTEMPTS,
        retry_delay: float = RetryDefaults.BLOCKHASH_DELAY,
    ) -> None:
        self.client = client
        self.seed = seed
        self.tx_fee_lamports = tx_fee_lamports
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    def derive_address(self, wallet_address: str) -> str:
        return str(derive_nonce_address(wallet_address, self.seed))

    async def fetch(self, nonce_address: str) -> Optional[NonceAccount]:
        info = await self.client.get_account_info(nonce_address)
        if info is None:
            return None
        return parse_nonce_account(nonce_address, info["data"])

    async def required_lamports(self) -> tuple[int, int]:
        """Return ``(rent_lamports, required_lamports)`` for a new nonce account."""
        rent = await self.client.get_minimum_balance_for_rent_exemption(
            SolanaDefaults.NONCE_ACCOUNT_SIZE
        )
        return rent, rent + self.tx_fee_lamports

    async def ensure(
        self, wallet_address: str, signer: SolanaTransactionSigner
    ) -> NonceEnsureResult:
        """Make sure ``wallet_address`` owns an initialized nonce account.

        Safe to call repeatedly: an already initialized account returns
        ``created=False`` without touching the chain beyond a read.

        Raises:
            InsufficientFundsError: balance below rent exemption plus fee
        """
        nonce_address = self.derive_address(wallet_address)

        existing = await self.fetch(nonce_address)
        if existing is not None and existing.state == NonceState.INITIALIZED:
            logger.info("Nonce account %s already initialized", nonce_address)
            return NonceEnsureResult(nonce_address=nonce_address, created=False)

        rent, required = await self.required_lamports()
        balance = await self.client.get_balance(wallet_address)
        if balance < required:
            raise InsufficientFundsError(required=required, balance=balance)

        wallet = to_pubkey(wallet_address)
        nonce_pubkey = to_pubkey(nonce_address)

        async def build_and_send() -> str:
            blockhash = await self.client.get_latest_blockhash()
            message = build_create_nonce_message(
                wallet=wallet,
                nonce_account=nonce_pubkey,
                seed=self.seed,
                rent_lamports=rent,
                recent_blockhash=base58.b58decode(blockhash),
            )
            signed = await signer.sign_transaction(assemble_placeholder(1, message))
            return await self.client.send_raw_transaction(base64.b64encode(signed).decode())

        try:
            signature = await with_blockhash_retry(
                build_and_send,
                max_attempts=self.retry_attempts,
                delay=self.retry_delay,
            )
        except Exception as e:
            if _is_already_in_use(e):
                logger.info("Nonce account %s created concurrently", nonce_address)
                return NonceEnsureResult(nonce_address=nonce_address, created=False)
            raise

        logger.info("Nonce account %s created: %s", nonce_address, signature)
        return NonceEnsureResult(nonce_address=nonce_address, created=True, signature=signature)


def _is_already_in_use(exc: BaseException) -> bool:
    # Preflight failures carry the system program text only in the simulation logs
    texts = [str(exc), *getattr(exc, "logs", ())]
    return any("already in use" in t.lower() or "already exists" in t.lower() for t in texts)
