"""Unified exception hierarchy for the bridge orchestrator.

All orchestrator exceptions inherit from XBridgeException, enabling:
- Consistent error handling across packages
- HTTP status code mapping in the API layer
- Structured error responses with machine-readable codes

All exceptions have:
- error_code: Machine-readable error code (e.g., "INSUFFICIENT_SOL")
- http_status: Appropriate HTTP status code for API responses
- message: Human-readable error message
- details: Optional additional context, flattened into API responses
- to_dict(): Convert to API response format
"""
from __future__ import annotations

from typing import Any, Optional

from .constants import ErrorCodes


class XBridgeException(Exception):
    """Base exception for all orchestrator errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = ErrorCodes.INTERNAL_ERROR
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        result: dict[str, Any] = {
            "error": self.message,
            "code": self.error_code,
        }
        result.update(self.details)
        return result


# =============================================================================
# Validation & Access Errors (4xx)
# =============================================================================

class XBridgeValidationError(XBridgeException):
    """Invalid input data or parameters."""

    error_code = ErrorCodes.VALIDATION_ERROR
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class XBridgeAuthenticationError(XBridgeException):
    """Missing or invalid access token."""

    error_code = ErrorCodes.AUTHENTICATION_ERROR
    http_status = 401


class XBridgeAuthorizationError(XBridgeException):
    """Authenticated principal may not act for the requested user."""

    error_code = ErrorCodes.AUTHORIZATION_ERROR
    http_status = 403


class XBridgeNotFoundError(XBridgeException):
    """Requested resource not found."""

    error_code = ErrorCodes.NOT_FOUND
    http_status = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        message = f"{resource_type} '{resource_id}' not found"
        details = details or {}
        details["resourceType"] = resource_type
        details["resourceId"] = resource_id
        super().__init__(message, details=details)


class WalletNotFoundError(XBridgeException):
    """The user has no provisioned wallet for a chain."""

    error_code = ErrorCodes.WALLET_NOT_FOUND
    http_status = 404

    def __init__(self, chain_type: str) -> None:
        self.chain_type = chain_type
        super().__init__(f"No {chain_type} wallet found", details={"chainType": chain_type})


# =============================================================================
# Nonce Account Errors
# =============================================================================

class NonceAccountExistsError(XBridgeException):
    """The user's durable nonce account is already initialized."""

    error_code = ErrorCodes.NONCE_EXISTS
    http_status = 409

    def __init__(self, nonce_address: str) -> None:
        self.nonce_address = nonce_address
        super().__init__(
            "Nonce account already exists",
            details={"nonceAddress": nonce_address},
        )


class InsufficientFundsError(XBridgeException):
    """Wallet balance cannot cover the required lamports."""

    error_code = ErrorCodes.INSUFFICIENT_SOL
    http_status = 402

    def __init__(self, required: int, balance: int, message: Optional[str] = None) -> None:
        self.required = required
        self.balance = balance
        super().__init__(
            message or "Insufficient SOL for nonce account creation",
            details={"required": str(required), "balance": str(balance)},
        )


# =============================================================================
# External Service Errors
# =============================================================================

class ExternalServiceError(XBridgeException):
    """A downstream service returned a non-success response."""

    error_code = ErrorCodes.EXTERNAL_SERVICE_ERROR
    http_status = 502
    service_name = "external"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        details: dict[str, Any] = {"service": self.service_name}
        if status_code is not None:
            details["statusCode"] = status_code
        if body:
            details["body"] = body
        super().__init__(message, details=details)


class EnclaveError(ExternalServiceError):
    """Enclave attestation request failed."""

    error_code = ErrorCodes.ENCLAVE_ERROR
    service_name = "enclave"


class SolverError(ExternalServiceError):
    """Solver co-signing request failed."""

    error_code = ErrorCodes.SOLVER_ERROR
    service_name = "solver"


class ExternalServiceTimeoutError(XBridgeException):
    """A downstream call exceeded its timeout and was abandoned."""

    error_code = ErrorCodes.EXTERNAL_SERVICE_TIMEOUT
    http_status = 504

    def __init__(self, service: str, timeout: float) -> None:
        self.service = service
        self.timeout = timeout
        super().__init__(
            f"{service} request timed out after {timeout:g}s",
            details={"service": service, "timeoutSeconds": timeout},
        )


class ThresholdSignatureTimeoutError(XBridgeException):
    """The custodial signature is not published yet; polling may be resumed."""

    error_code = ErrorCodes.SIGNATURE_NOT_READY
    http_status = 504

    def __init__(self, sign_id: str, polls: int) -> None:
        self.sign_id = sign_id
        self.polls = polls
        super().__init__(
            "Threshold signing timed out: dWallet signature not available yet",
            details={"signId": sign_id, "polls": polls, "retryable": True},
        )


class BroadcastUnconfirmedError(XBridgeException):
    """The Solana transaction was sent but did not confirm in time.

    The durable nonce may already be spent, so callers must look the
    signature up instead of broadcasting again.
    """

    error_code = ErrorCodes.BROADCAST_UNCONFIRMED
    http_status = 504

    def __init__(self, solana_signature: str, sign_id: str, polls: int) -> None:
        self.solana_signature = solana_signature
        self.sign_id = sign_id
        self.polls = polls
        super().__init__(
            "Solana transaction sent but not confirmed yet",
            details={
                "solanaSignature": solana_signature,
                "signId": sign_id,
                "polls": polls,
                "retryable": False,
            },
        )


class RequestCancelledError(XBridgeException):
    """The caller went away and the operation was abandoned."""

    error_code = ErrorCodes.REQUEST_CANCELLED
    http_status = 499

    def __init__(self, operation: str, details: Optional[dict[str, Any]] = None) -> None:
        self.operation = operation
        super().__init__(
            f"{operation} cancelled: client disconnected",
            details={"operation": operation, **(details or {})},
        )


# =============================================================================
# Chain State Errors
# =============================================================================

class ObjectExtractionError(XBridgeException):
    """A committed transaction did not yield exactly one expected created object."""

    error_code = ErrorCodes.OBJECT_EXTRACTION_FAILED
    http_status = 500

    def __init__(
        self,
        type_name: str,
        matches: int,
        digest: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        self.type_name = type_name
        self.matches = matches
        self.digest = digest
        self.request_id = request_id
        details: dict[str, Any] = {"objectType": type_name, "matches": matches}
        if digest:
            details["createDigest"] = digest
        if request_id:
            details["requestId"] = request_id
        super().__init__(
            f"Expected exactly one created {type_name}, found {matches}",
            details=details,
        )


class PostCreateError(XBridgeException):
    """A flow failed after its request was committed on-chain.

    The details carry the identifiers needed to resume instead of restarting.
    """

    error_code = ErrorCodes.POST_CREATE_FAILURE
    http_status = 500

    def __init__(self, message: str, recovery: dict[str, Any]) -> None:
        self.recovery = recovery
        super().__init__(message, details=dict(recovery))
