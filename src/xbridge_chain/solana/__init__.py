"""Solana integration: RPC client, message building, wire assembly, nonce accounts."""

from .client import SolanaClient, SolanaRPCError, SolanaTransactionError
from .keys import derive_nonce_address, find_associated_token_address, to_pubkey
from .message import SplTransferParams, build_spl_transfer_message, encode_compact_u16
from .nonce import (
    NonceAccount,
    NonceAccountManager,
    NonceEnsureResult,
    NonceState,
    SolanaTransactionSigner,
    parse_nonce_account,
)
from .wire import assemble_final, assemble_placeholder, extract_signature

__all__ = [
    "SolanaClient",
    "SolanaRPCError",
    "SolanaTransactionError",
    "derive_nonce_address",
    "find_associated_token_address",
    "to_pubkey",
    "SplTransferParams",
    "build_spl_transfer_message",
    "encode_compact_u16",
    "NonceAccount",
    "NonceAccountManager",
    "NonceEnsureResult",
    "NonceState",
    "SolanaTransactionSigner",
    "parse_nonce_account",
    "assemble_final",
    "assemble_placeholder",
    "extract_signature",
]
