"""Sui JSON-RPC client wrapper."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from xbridge_core.config import SuiSettings
from xbridge_core.constants import Polling
from xbridge_core.polling import poll_until

logger = logging.getLogger(__name__)


class SuiClient:
    """Async Sui JSON-RPC client over httpx."""

    def __init__(
        self,
        config: SuiSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or SuiSettings()
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._request_id = 0

    async def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
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
            raise SuiRPCError(data["error"].get("message", "Unknown RPC error"), data["error"])
        return data.get("result")

    async def get_object(self, object_id: str, show_content: bool = True) -> dict[str, Any]:
        return await self._rpc(
            "sui_getObject",
            [object_id, {"showContent": show_content, "showType": True, "showOwner": True}],
        )

    async def get_object_fields(self, object_id: str) -> Optional[dict[str, Any]]:
        """Move struct fields of ``object_id``, or None if it is not a Move object."""
        obj = await self.get_object(object_id)
        content = (obj.get("data") or {}).get("content") or {}
        if content.get("dataType") != "moveObject":
            return None
        return content.get("fields") or {}

    async def get_owned_objects(
        self,
        owner: str,
        struct_type: str,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> dict[str, Any]:
        query = {
            "filter": {"StructType": struct_type},
            "options": {"showContent": True, "showType": True},
        }
        return await self._rpc("suix_getOwnedObjects", [owner, query, cursor, limit])

    async def execute_transaction_block(
        self,
        tx_bytes_b64: str,
        signatures: list[str],
        show_effects: bool = True,
        show_object_changes: bool = False,
    ) -> dict[str, Any]:
        options = {"showEffects": show_effects, "showObjectChanges": show_object_changes}
        result = await self._rpc(
            "sui_executeTransactionBlock",
            [tx_bytes_b64, signatures, options, "WaitForLocalExecution"],
        )
        status = ((result.get("effects") or {}).get("status") or {})
        if status.get("status") == "failure":
            raise SuiTransactionError(
                f"Transaction failed: {status.get('error', 'unknown error')}",
                result.get("digest"),
            )
        logger.info("Sui tx executed: %s", result.get("digest"))
        return result

    async def get_transaction_block(self, digest: str) -> dict[str, Any]:
        return await self._rpc("sui_getTransactionBlock", [digest, {"showEffects": True}])

    async def wait_for_transaction(
        self,
        digest: str,
        max_polls: int = Polling.SUI_TX_MAX_POLLS,
        interval: float = Polling.SUI_TX_INTERVAL,
    ) -> dict[str, Any]:
        """Poll until ``digest`` is indexed by the fullnode."""

        async def _check() -> Optional[dict[str, Any]]:
            try:
                return await self.get_transaction_block(digest)
            except SuiRPCError as e:
                logger.debug("Sui tx %s not indexed yet: %s", digest, e)
                return None

        return await poll_until(_check, max_polls=max_polls, interval=interval)

    async def close(self) -> None:
        await self._client.aclose()


class SuiRPCError(Exception):
    """Sui RPC error."""
    def __init__(self, message: str, error_data: dict[str, Any] | None = None):
        super().__init__(message)
        self.error_data = error_data or {}


class SuiTransactionError(Exception):
    """Sui transaction execution error."""
    def __init__(self, message: str, digest: str | None = None):
        super().__init__(message)
        self.digest = digest
