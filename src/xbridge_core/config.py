"""Canonical configuration surface for the bridge orchestrator."""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from .constants import Polling, RetryDefaults, SolanaDefaults, Timeouts


class SharedObjectRef(BaseModel):
    """Reference to a Sui shared object used as a Move call input."""
    object_id: str = ""
    initial_shared_version: int = 0
    mutable: bool = True


class SolanaSettings(BaseModel):
    """Solana connection and nonce account configuration."""
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: str = "confirmed"
    timeout: float = Timeouts.RPC_CALL
    dwallet_address: str = ""
    nonce_seed: str = SolanaDefaults.NONCE_SEED
    tx_fee_lamports: int = SolanaDefaults.TX_FEE_LAMPORTS


class SuiSettings(BaseModel):
    """Sui connection and xbridge package configuration."""
    rpc_url: str = "https://fullnode.mainnet.sui.io:443"
    timeout: float = Timeouts.RPC_CALL
    package_id: str = ""
    types_package_id: str = ""
    xbridge_config: SharedObjectRef = Field(default_factory=SharedObjectRef)
    xbridge_inbound: SharedObjectRef = Field(default_factory=SharedObjectRef)
    xcore: SharedObjectRef = Field(default_factory=SharedObjectRef)
    registry: SharedObjectRef = Field(default_factory=SharedObjectRef)
    dwallet_coordinator: SharedObjectRef = Field(default_factory=SharedObjectRef)
    enclave_object_id: str = ""
    validator_type: str = ""
    witness_type: str = ""
    burn_coin_type: str = ""
    tx_builder_url: str = ""

    @property
    def effective_types_package_id(self) -> str:
        return self.types_package_id or self.package_id


class ExternalServiceSettings(BaseModel):
    """HTTP service endpoint with bounded timeout and retries."""
    url: str = ""
    api_key: str = ""
    timeout: float = Timeouts.HTTP_DEFAULT
    retries: int = RetryDefaults.HTTP_MAX_RETRIES
    retry_delay: float = RetryDefaults.HTTP_RETRY_DELAY


class PrivySettings(BaseModel):
    """Custodial wallet provider credentials."""
    app_id: str = ""
    app_secret: str = ""
    authorization_key: str = ""
    verification_key: str = ""
    api_base: str = "https://api.privy.io"


class XBridgeSettings(BaseSettings):
    """Main orchestrator configuration."""

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"
    log_level: str = "INFO"

    # CORS - comma-separated allowed origins
    allowed_origins: str = "http://localhost:3000"

    # Chains
    solana: SolanaSettings = Field(default_factory=SolanaSettings)
    sui: SuiSettings = Field(default_factory=SuiSettings)

    # Off-chain services
    enclave: ExternalServiceSettings = Field(
        default_factory=lambda: ExternalServiceSettings(timeout=Timeouts.ENCLAVE_REQUEST)
    )
    solver: ExternalServiceSettings = Field(
        default_factory=lambda: ExternalServiceSettings(timeout=Timeouts.SOLVER_REQUEST)
    )
    privy: PrivySettings = Field(default_factory=PrivySettings)

    # Threshold signature polling
    sign_max_polls: int = Polling.THRESHOLD_SIGN_MAX_POLLS
    sign_poll_interval: float = Polling.THRESHOLD_SIGN_INTERVAL

    # Blockhash retry
    blockhash_retry_attempts: int = RetryDefaults.BLOCKHASH_MAX_ATTEMPTS
    blockhash_retry_delay: float = RetryDefaults.BLOCKHASH_DELAY

    class Config:
        env_prefix = "XBRIDGE_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @field_validator("sign_max_polls", "blockhash_retry_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("privy")
    @classmethod
    def validate_privy(cls, v: PrivySettings) -> PrivySettings:
        env = os.getenv("XBRIDGE_ENVIRONMENT", "dev")
        if env == "prod" and not (v.app_id and v.app_secret and v.verification_key):
            raise ValueError(
                "Privy app_id, app_secret and verification_key are required in production"
            )
        return v


@lru_cache
def load_settings(env_file: str | None = None) -> XBridgeSettings:
    """Load XBridgeSettings once per process to keep services consistent."""
    env_path = Path(env_file) if env_file else None
    return XBridgeSettings(_env_file=env_path)
