"""
Centralized constants and configuration defaults for the bridge orchestrator.

Usage:
    from xbridge_core.constants import Timeouts, RetryDefaults, Polling

All values are organized into logical namespaces using classes.
"""
from __future__ import annotations

from typing import Final


# =============================================================================
# Timeout Constants (in seconds)
# =============================================================================

class Timeouts:
    """Network timeout configuration."""

    HTTP_DEFAULT: Final[float] = 30.0
    RPC_CALL: Final[float] = 30.0
    ENCLAVE_REQUEST: Final[float] = 10.0
    SOLVER_REQUEST: Final[float] = 30.0
    HEALTH_PROBE: Final[float] = 5.0


# =============================================================================
# Retry Configuration
# =============================================================================

class RetryDefaults:
    """Retry configuration for transient failures."""

    BLOCKHASH_MAX_ATTEMPTS: Final[int] = 3
    BLOCKHASH_DELAY: Final[float] = 0.5

    HTTP_MAX_RETRIES: Final[int] = 3
    HTTP_RETRY_DELAY: Final[float] = 2.0


# =============================================================================
# Polling
# =============================================================================

class Polling:
    """Polling bounds for operations with external latency."""

    THRESHOLD_SIGN_MAX_POLLS: Final[int] = 40
    THRESHOLD_SIGN_INTERVAL: Final[float] = 3.0

    SUI_TX_MAX_POLLS: Final[int] = 30
    SUI_TX_INTERVAL: Final[float] = 1.0

    SOLANA_CONFIRM_MAX_POLLS: Final[int] = 30
    SOLANA_CONFIRM_INTERVAL: Final[float] = 1.0


# =============================================================================
# Solana
# =============================================================================

class SolanaDefaults:
    """Solana protocol constants."""

    NONCE_SEED: Final[str] = "lattice-nonce"
    NONCE_ACCOUNT_SIZE: Final[int] = 80
    TX_FEE_LAMPORTS: Final[int] = 5_000

    NATIVE_SOL_MINT: Final[str] = "So11111111111111111111111111111111111111112"
    SOL_DECIMALS: Final[int] = 9

    SYSTEM_PROGRAM_ID: Final[str] = "11111111111111111111111111111111"
    TOKEN_PROGRAM_ID: Final[str] = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    ASSOCIATED_TOKEN_PROGRAM_ID: Final[str] = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
    RECENT_BLOCKHASHES_SYSVAR_ID: Final[str] = "SysvarRecentB1ockHashes11111111111111111111"
    RENT_SYSVAR_ID: Final[str] = "SysvarRent111111111111111111111111111111111"


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Machine-readable error codes surfaced to API callers."""

    VALIDATION_ERROR: Final[str] = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR: Final[str] = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR: Final[str] = "AUTHORIZATION_ERROR"
    NOT_FOUND: Final[str] = "NOT_FOUND"
    WALLET_NOT_FOUND: Final[str] = "WALLET_NOT_FOUND"
    NONCE_EXISTS: Final[str] = "NONCE_EXISTS"
    INSUFFICIENT_SOL: Final[str] = "INSUFFICIENT_SOL"
    EXTERNAL_SERVICE_ERROR: Final[str] = "EXTERNAL_SERVICE_ERROR"
    ENCLAVE_ERROR: Final[str] = "ENCLAVE_ERROR"
    SOLVER_ERROR: Final[str] = "SOLVER_ERROR"
    EXTERNAL_SERVICE_TIMEOUT: Final[str] = "EXTERNAL_SERVICE_TIMEOUT"
    SIGNATURE_NOT_READY: Final[str] = "SIGNATURE_NOT_READY"
    BROADCAST_UNCONFIRMED: Final[str] = "BROADCAST_UNCONFIRMED"
    REQUEST_CANCELLED: Final[str] = "REQUEST_CANCELLED"
    OBJECT_EXTRACTION_FAILED: Final[str] = "OBJECT_EXTRACTION_FAILED"
    POST_CREATE_FAILURE: Final[str] = "POST_CREATE_FAILURE"
    INTERNAL_ERROR: Final[str] = "INTERNAL_ERROR"
