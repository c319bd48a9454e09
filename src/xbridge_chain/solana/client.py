"""Solana RPC client wrapper."""
from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import httpx

from xbridge_core.config import SolanaSettings
from xbridge_core.constants import Polling
from xbridge_core.polling import poll_until

logger = logging.getLogger(__name__)


class SolanaClient:
    """Async Solana JSON-RPC client.

    Uses raw httpx; all Solana RPC methods are called via JSON-RPC 2.0.
    """

    def __init__(
        self,
        config: SolanaSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or SolanaSettings()
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._request_id = 0

    async def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call to Solana."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        resp = await self._client.post(self.config.rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            raise SolanaRPCError(data["error"].get("message", "Unknown RPC error"), data["error"])
        return data.get("result")

    async def get_balance(self, pubkey: str) -> int:
        """Get SOL balance in lamports."""
        result = await self._rpc("getBalance", [pubkey, {"commitment": self.config.commitment}])
        return result["value"]

    async def get_latest_blockhash(self) -> str:
        """Get latest blockhash for transaction building."""
        result = await self._rpc(
            "getLatestBlockhash", [{"commitment": self.config.commitment}]
        )
        return result["value"]["blockhash"]

    async def get_account_info(self, pubkey: str) -> Optional[dict[str, Any]]:
        """Fetch an account; ``data`` is returned decoded to bytes. None if absent."""
        result = await self._rpc(
            "getAccountInfo",
            [pubkey, {"encoding": "base64", "commitment": self.config.commitment}],
        )
        value = result.get("value") if result else None
        if value is None:
            return None
        data = value.get("data") or ["", "base64"]
        return {
            "lamports": value.get("lamports", 0),
            "owner": value.get("owner"),
            "data": base64.b64decode(data[0]) if data[0] else b"",
        }

    async def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        """Get minimum balance for rent exemption."""
        return await self._rpc("getMinimumBalanceForRentExemption", [data_size])

    async def send_raw_transaction(self, raw_tx: bytes | str) -> str:
        """Send a signed transaction. Returns transaction signature."""
        if isinstance(raw_tx, bytes):
            raw_tx = base64.b64encode(raw_tx).decode()
        result = await self._rpc(
            "sendTransaction",
            [
                raw_tx,
                {"encoding": "base64", "skipPreflight": False},
            ],
        )
        logger.info("Solana tx sent: %s", result)
        return result

    async def get_signature_status(self, signature: str) -> Optional[dict[str, Any]]:
        result = await self._rpc(
            "getSignatureStatuses", [[signature], {"searchTransactionHistory": False}]
        )
        statuses = result.get("value", [])
        if not statuses:
            return None
        return statuses[0]

    async def confirm_transaction(
        self, signature: str, commitment: str | None = None
    ) -> bool:
        """Confirm a transaction has reached the desired commitment level."""
        status = await self.get_signature_status(signature)
        if status is None:
            return False
        if status.get("err"):
            raise SolanaTransactionError(f"Transaction failed: {status['err']}", signature)
        target = commitment or self.config.commitment
        # confirmed and finalized both satisfy "confirmed"
        confirmation = status.get("confirmationStatus", "")
        if target == "finalized":
            return confirmation == "finalized"
        return confirmation in ("confirmed", "finalized")

    async def wait_for_confirmation(
        self,
        signature: str,
        max_polls: int = Polling.SOLANA_CONFIRM_MAX_POLLS,
        interval: float = Polling.SOLANA_CONFIRM_INTERVAL,
    ) -> str:
        """Block until ``signature`` is confirmed. Raises PollTimeoutError otherwise."""

        async def _check() -> Optional[str]:
            return signature if await self.confirm_transaction(signature) else None

        await poll_until(_check, max_polls=max_polls, interval=interval)
        logger.info("Solana tx confirmed: %s", signature)
        return signature

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class SolanaRPCError(Exception):
    """Solana RPC error."""
    def __init__(self, message: str, error_data: dict[str, Any] | None = None):
        super().__init__(message)
        self.error_data = error_data or {}

    @property
    def logs(self) -> list[str]:
        """Program logs from a failed preflight simulation, if the node sent any."""
        data = self.error_data.get("data")
        if not isinstance(data, dict):
            return []
        return [line for line in data.get("logs") or [] if isinstance(line, str)]


class SolanaTransactionError(Exception):
    """Solana transaction execution error."""
    def __init__(self, message: str, signature: str | None = None):
        super().__init__(message)
        self.signature = signature
