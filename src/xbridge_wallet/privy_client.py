"""Privy wallet API client with P-256 request authorization.

Every wallet-action request carries a ``privy-authorization-signature``
header: base64 ECDSA P-256/SHA-256 (DER) over the canonical JSON of

  {"body": ..., "headers": {"privy-app-id": ...}, "method": "POST",
   "url": ..., "version": 1}

signed with the app's authorization key (``wallet-auth:`` + base64 PKCS#8).
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from xbridge_core.config import PrivySettings
from xbridge_core.constants import Timeouts
from xbridge_core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

AUTHORIZATION_KEY_PREFIX = "wallet-auth:"


class WalletProviderError(ExternalServiceError):
    service_name = "privy"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def load_authorization_key(key: str) -> ec.EllipticCurvePrivateKey:
    """Load a ``wallet-auth:``-prefixed base64 PKCS#8 P-256 key."""
    raw = key.removeprefix(AUTHORIZATION_KEY_PREFIX)
    private_key = serialization.load_der_private_key(base64.b64decode(raw), password=None)
    if not isinstance(private_key, ec.EllipticCurvePrivateKey):
        raise ValueError("Privy authorization key must be an EC P-256 key")
    return private_key


class PrivyClient:
    """Async HTTP client for the Privy wallet API."""

    def __init__(
        self,
        config: PrivySettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._base_url = config.api_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=Timeouts.HTTP_DEFAULT)
        self._signing_key: Optional[ec.EllipticCurvePrivateKey] = None
        # Eagerly init signing key so errors surface early
        if config.authorization_key:
            self._signing_key = load_authorization_key(config.authorization_key)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _base_headers(self) -> Dict[str, str]:
        credentials = f"{self.config.app_id}:{self.config.app_secret}".encode()
        return {
            "Authorization": f"Basic {base64.b64encode(credentials).decode()}",
            "privy-app-id": self.config.app_id,
            "Content-Type": "application/json",
        }

    def authorization_signature(self, method: str, url: str, body: Dict[str, Any]) -> str:
        if self._signing_key is None:
            raise WalletProviderError("Privy authorization key not configured")
        payload = {
            "version": 1,
            "method": method,
            "url": url,
            "body": body,
            "headers": {"privy-app-id": self.config.app_id},
        }
        signature = self._signing_key.sign(
            canonical_json(payload).encode(), ec.ECDSA(hashes.SHA256())
        )
        return base64.b64encode(signature).decode()

    # ------------------------------------------------------------------
    # Low-level HTTP
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers = self._base_headers()
        content = None
        if body is not None:
            headers["privy-authorization-signature"] = self.authorization_signature(method, url, body)
            content = canonical_json(body)

        try:
            resp = await self._client.request(method, url, params=params, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise WalletProviderError(f"Privy request failed: {e}") from e
        if not resp.is_success:
            raise WalletProviderError(
                f"Privy API error: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
        return resp.json()

    # ------------------------------------------------------------------
    # High-level helpers
    # ------------------------------------------------------------------

    async def iter_wallets(self, user_id: str, chain_type: str) -> AsyncIterator[Dict[str, Any]]:
        """Yield the user's wallets of ``chain_type``, following pagination."""
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"user_id": user_id, "chain_type": chain_type}
            if cursor:
                params["cursor"] = cursor
            page = await self._request("GET", "/v1/wallets", params=params)
            for wallet in page.get("data") or []:
                yield wallet
            cursor = page.get("next_cursor")
            if not cursor:
                return

    async def get_wallet(self, wallet_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/wallets/{wallet_id}")

    async def raw_sign(self, wallet_id: str, data: bytes, hash_function: str = "blake2b256") -> bytes:
        """Hash ``data`` with ``hash_function`` and sign it with the wallet key."""
        result = await self._request(
            "POST",
            f"/v1/wallets/{wallet_id}/raw_sign",
            body={
                "params": {
                    "bytes": base64.b64encode(data).decode(),
                    "encoding": "base64",
                    "hash_function": hash_function,
                }
            },
        )
        signature = (result.get("data") or {}).get("signature", "")
        return bytes.fromhex(signature.removeprefix("0x"))

    async def sign_solana_transaction(self, wallet_id: str, wire_tx: bytes) -> bytes:
        """Sign a base wire transaction; returns it with the wallet's slot filled."""
        result = await self._request(
            "POST",
            f"/v1/wallets/{wallet_id}/rpc",
            body={
                "method": "signTransaction",
                "params": {
                    "transaction": base64.b64encode(wire_tx).decode(),
                    "encoding": "base64",
                },
            },
        )
        signed = (result.get("data") or {}).get("signed_transaction")
        if not signed:
            raise WalletProviderError("Privy returned no signed transaction", body=str(result))
        return base64.b64decode(signed)

    async def close(self) -> None:
        await self._client.aclose()
