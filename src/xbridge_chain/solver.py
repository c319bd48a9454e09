"""Solver co-signing client."""
from __future__ import annotations

import logging

from xbridge_core.exceptions import SolverError

from .http import JsonServiceClient, decode_hex

logger = logging.getLogger(__name__)


class SolverClient(JsonServiceClient):
    service_name = "solver"
    error_class = SolverError

    async def sign(self, presign: bytes, message: bytes, chain: str = "solana") -> bytes:
        """Co-sign ``message`` against a presign. Returns the raw signature."""
        data = await self._post(
            "/api/v1/sign",
            {"presign": presign.hex(), "message": message.hex(), "chain": chain},
        )
        if not isinstance(data, dict) or data.get("success") is False:
            raise SolverError("Solver rejected sign request", body=str(data))
        try:
            signature = decode_hex(data["data"]["signature"], "signature")
        except (KeyError, TypeError, ValueError) as e:
            raise SolverError(f"Malformed solver response: {e}", body=str(data)) from e
        logger.info("Solver signature received (%d bytes)", len(signature))
        return signature
