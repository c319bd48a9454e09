"""Pytest configuration for xbridge orchestrator tests."""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from solders.pubkey import Pubkey

# Ensure the src packages are importable when running pytest directly.
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

os.environ.setdefault("XBRIDGE_ENVIRONMENT", "dev")

from xbridge_core.config import ExternalServiceSettings, SolanaSettings, XBridgeSettings

DWALLET_ADDRESS = str(Pubkey.from_bytes(bytes(range(101, 133))))


@pytest.fixture
def sleep():
    """Sleep stand-in that records requested delays."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def wallet_address() -> str:
    return str(Pubkey.from_bytes(bytes(range(1, 33))))


@pytest.fixture
def settings() -> XBridgeSettings:
    return XBridgeSettings(
        _env_file=None,
        solana=SolanaSettings(dwallet_address=DWALLET_ADDRESS),
        enclave=ExternalServiceSettings(url="http://enclave.test", api_key="enclave-key", retries=2, retry_delay=0.0),
        solver=ExternalServiceSettings(url="http://solver.test", api_key="solver-key", retries=2, retry_delay=0.0),
    )
