"""Chain-agnostic plumbing for the bridge orchestrator."""

from .config import XBridgeSettings, load_settings
from .exceptions import (
    BroadcastUnconfirmedError,
    EnclaveError,
    ExternalServiceError,
    ExternalServiceTimeoutError,
    InsufficientFundsError,
    NonceAccountExistsError,
    ObjectExtractionError,
    PostCreateError,
    RequestCancelledError,
    SolverError,
    ThresholdSignatureTimeoutError,
    WalletNotFoundError,
    XBridgeAuthenticationError,
    XBridgeAuthorizationError,
    XBridgeException,
    XBridgeNotFoundError,
    XBridgeValidationError,
)
from .phases import (
    FlowFailure,
    FlowOutcome,
    FlowSuccess,
    Phase,
    PhaseRecord,
    PhaseRecoveryTracker,
)
from .polling import PollCancelledError, PollTimeoutError, poll_until
from .retry import RetryConfig, is_blockhash_error, retry_async, with_blockhash_retry

__all__ = [
    "XBridgeSettings",
    "load_settings",
    "XBridgeException",
    "XBridgeValidationError",
    "XBridgeAuthenticationError",
    "XBridgeAuthorizationError",
    "XBridgeNotFoundError",
    "WalletNotFoundError",
    "NonceAccountExistsError",
    "InsufficientFundsError",
    "ExternalServiceError",
    "EnclaveError",
    "SolverError",
    "ExternalServiceTimeoutError",
    "ThresholdSignatureTimeoutError",
    "BroadcastUnconfirmedError",
    "RequestCancelledError",
    "ObjectExtractionError",
    "PostCreateError",
    "Phase",
    "PhaseRecord",
    "PhaseRecoveryTracker",
    "FlowSuccess",
    "FlowFailure",
    "FlowOutcome",
    "poll_until",
    "PollTimeoutError",
    "PollCancelledError",
    "RetryConfig",
    "retry_async",
    "is_blockhash_error",
    "with_blockhash_retry",
]
