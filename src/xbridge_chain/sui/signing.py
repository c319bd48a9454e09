"""Sui intent signing and transaction execution."""
from __future__ import annotations

import base64
import hashlib
import logging
import re
from typing import Any, Protocol

from .client import SuiClient
from .transactions import SuiTransaction, TransactionBuilder

logger = logging.getLogger(__name__)

# IntentScope.TransactionData, IntentVersion.V0, AppId.Sui
TRANSACTION_DATA_INTENT = bytes([0, 0, 0])
ED25519_FLAG = 0x00
ED25519_PUBLIC_KEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64

_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]+$")


def message_with_intent(tx_bytes: bytes) -> bytes:
    return TRANSACTION_DATA_INTENT + tx_bytes


def intent_digest(tx_bytes: bytes) -> bytes:
    """blake2b-256 of the intent message; this is what the key actually signs."""
    return hashlib.blake2b(message_with_intent(tx_bytes), digest_size=32).digest()


def to_serialized_signature(signature: bytes, public_key: bytes) -> str:
    """``base64(flag || signature || public key)`` for an Ed25519 signer."""
    if len(signature) != ED25519_SIGNATURE_LENGTH:
        raise ValueError(f"Ed25519 signature must be 64 bytes, got {len(signature)}")
    if len(public_key) != ED25519_PUBLIC_KEY_LENGTH:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(public_key)}")
    return base64.b64encode(bytes([ED25519_FLAG]) + signature + public_key).decode()


def extract_public_key(raw: str) -> bytes:
    """Parse a wallet provider public key (hex or base64, possibly flag-prefixed)."""
    if _HEX_RE.match(raw) and len(raw) >= 64:
        decoded = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
    else:
        decoded = base64.b64decode(raw)
    return decoded[-ED25519_PUBLIC_KEY_LENGTH:]


class SuiSigner(Protocol):
    """A Sui account that can sign intent messages."""

    address: str

    async def public_key(self) -> bytes: ...

    async def sign_intent_message(self, intent_message: bytes) -> bytes:
        """Return the 64-byte Ed25519 signature over blake2b256(intent_message)."""
        ...


class SuiTransactionExecutor:
    """Builds, signs and submits ``SuiTransaction`` objects."""

    def __init__(self, client: SuiClient, builder: TransactionBuilder) -> None:
        self.client = client
        self.builder = builder

    async def sign_and_execute(
        self,
        tx: SuiTransaction,
        signer: SuiSigner,
        show_object_changes: bool = False,
    ) -> dict[str, Any]:
        tx.set_sender(signer.address)
        tx_bytes = await self.builder.build(tx)
        signature = await signer.sign_intent_message(message_with_intent(tx_bytes))
        serialized = to_serialized_signature(signature, await signer.public_key())
        return await self.client.execute_transaction_block(
            base64.b64encode(tx_bytes).decode(),
            [serialized],
            show_effects=True,
            show_object_changes=show_object_changes,
        )
