"""Solana address helpers."""
from __future__ import annotations

import base58
from solders.pubkey import Pubkey

from xbridge_core.constants import SolanaDefaults
from xbridge_core.exceptions import XBridgeValidationError

SYSTEM_PROGRAM = Pubkey.from_string(SolanaDefaults.SYSTEM_PROGRAM_ID)
TOKEN_PROGRAM = Pubkey.from_string(SolanaDefaults.TOKEN_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string(SolanaDefaults.ASSOCIATED_TOKEN_PROGRAM_ID)
RECENT_BLOCKHASHES_SYSVAR = Pubkey.from_string(SolanaDefaults.RECENT_BLOCKHASHES_SYSVAR_ID)
RENT_SYSVAR = Pubkey.from_string(SolanaDefaults.RENT_SYSVAR_ID)
NATIVE_SOL_MINT = Pubkey.from_string(SolanaDefaults.NATIVE_SOL_MINT)


def to_pubkey(value: str | bytes | Pubkey, field: str = "address") -> Pubkey:
    """Parse a base58 string or 32 raw bytes into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    try:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 32:
                raise ValueError(f"expected 32 bytes, got {len(value)}")
            return Pubkey.from_bytes(bytes(value))
        raw = base58.b58decode(value)
        if len(raw) != 32:
            raise ValueError(f"expected 32 bytes, got {len(raw)}")
        return Pubkey.from_bytes(raw)
    except ValueError as e:
        raise XBridgeValidationError(f"Invalid Solana {field}: {e}", field=field) from e


def derive_nonce_address(wallet_address: str | Pubkey, seed: str = SolanaDefaults.NONCE_SEED) -> Pubkey:
    """Deterministic durable nonce account address for a wallet. No network call."""
    return Pubkey.create_with_seed(to_pubkey(wallet_address), seed, SYSTEM_PROGRAM)


def find_associated_token_address(
    owner: str | Pubkey,
    mint: str | Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM,
) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [bytes(to_pubkey(owner)), bytes(token_program), bytes(to_pubkey(mint))],
        ASSOCIATED_TOKEN_PROGRAM,
    )
    return address
