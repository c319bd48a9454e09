"""Enclave attestation client."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from xbridge_core.exceptions import EnclaveError

from .http import JsonServiceClient, decode_hex, strip_hex_prefix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnclaveVote:
    """Attestation that a request's deposit/burn data is genuine."""
    signature: bytes
    timestamp_ms: int


@dataclass(frozen=True)
class BurnVoteRequest:
    request_id: str
    chain_id: int
    source_token: bytes
    source_decimals: int
    destination_address: bytes
    source_amount: int
    message: bytes


@dataclass(frozen=True)
class MintVoteRequest:
    request_id: str
    chain_id: int
    source_token: bytes
    source_decimals: int
    source_address: bytes
    source_amount: int
    deposit_digest: str


class EnclaveClient(JsonServiceClient):
    """Requests vote signatures over on-chain request data.

    The request fields are relayed as read from chain; the on-chain program
    verifies the resulting signature.
    """

    service_name = "enclave"
    error_class = EnclaveError

    async def vote_burn(self, request: BurnVoteRequest) -> EnclaveVote:
        data = await self._post(
            "/xbridge/vote_burn",
            {
                "request_id": strip_hex_prefix(request.request_id),
                "chain_id": request.chain_id,
                "source_token": request.source_token.hex(),
                "source_decimals": request.source_decimals,
                "destination_address": request.destination_address.hex(),
                "source_amount": str(request.source_amount),
                "message": request.message.hex(),
            },
        )
        return self._parse_vote(data)

    async def vote_mint(self, request: MintVoteRequest) -> EnclaveVote:
        data = await self._post(
            "/xbridge/vote_mint",
            {
                "request_id": strip_hex_prefix(request.request_id),
                "chain_id": request.chain_id,
                "source_token": request.source_token.hex(),
                "source_decimals": request.source_decimals,
                "source_address": request.source_address.hex(),
                "source_amount": str(request.source_amount),
                "digest": request.deposit_digest,
            },
        )
        return self._parse_vote(data)

    def _parse_vote(self, data: Any) -> EnclaveVote:
        try:
            vote = EnclaveVote(
                signature=decode_hex(data["signature"], "signature"),
                timestamp_ms=int(data["timestamp_ms"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise EnclaveError(f"Malformed enclave vote: {e}", body=str(data)) from e
        logger.info("Enclave vote received (timestamp_ms=%d)", vote.timestamp_ms)
        return vote
