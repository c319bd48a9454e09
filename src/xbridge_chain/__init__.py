"""Chain integrations and the bridge orchestrator."""

from .enclave import EnclaveClient, EnclaveVote
from .orchestrator import (
    BridgeOrchestrator,
    BurnParams,
    BurnResult,
    BurnSettlement,
    MintParams,
    MintResult,
    WalletPort,
)
from .solver import SolverClient

__all__ = [
    "BridgeOrchestrator",
    "BurnParams",
    "BurnResult",
    "BurnSettlement",
    "MintParams",
    "MintResult",
    "WalletPort",
    "EnclaveClient",
    "EnclaveVote",
    "SolverClient",
]
