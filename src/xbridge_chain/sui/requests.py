"""Creation of mint and burn requests on Sui."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from xbridge_core.exceptions import ObjectExtractionError

from .objects import ObjectTypeId, find_created_object_id
from .signing import SuiSigner, SuiTransactionExecutor
from .transactions import SuiTransaction
from .xbridge import XBridgeInbound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedRequest:
    request_id: str
    cap_id: str
    digest: str


@dataclass(frozen=True)
class MintRequestParams:
    source_chain: int
    source_token: bytes
    source_decimals: int
    source_address: bytes
    source_amount: int
    coin_type: str
    fee_amount: int = 0


@dataclass(frozen=True)
class BurnRequestParams:
    source_chain: int
    source_token: bytes
    source_decimals: int
    destination_address: bytes
    source_amount: int
    dwallet_address: bytes
    message: bytes
    nonce: bytes
    nonce_account: bytes
    nonce_authority: bytes
    destination_wallet: bytes
    destination_ata: bytes
    coin_type: str
    burn_coin_type: str
    fee_amount: int = 0


class RequestBuilder:
    """Creates, shares and hands over a request and its capability in one transaction."""

    def __init__(self, executor: SuiTransactionExecutor, inbound: XBridgeInbound) -> None:
        self.executor = executor
        self.inbound = inbound

    async def create_mint_request(self, signer: SuiSigner, params: MintRequestParams) -> CreatedRequest:
        tx = SuiTransaction(sender=signer.address)
        fee = tx.split_coins(tx.gas, [params.fee_amount])
        request, mint_cap = self.inbound.new_mint_request(
            tx,
            source_chain=params.source_chain,
            source_token=params.source_token,
            source_decimals=params.source_decimals,
            source_address=params.source_address,
            source_amount=params.source_amount,
            fee=fee,
            coin_type=params.coin_type,
        )
        self.inbound.share_mint_request(tx, request)
        tx.transfer_objects([mint_cap], signer.address)

        result = await self.executor.sign_and_execute(tx, signer, show_object_changes=True)
        digest = result["digest"]
        changes = result.get("objectChanges")
        created = _created_request(
            changes, self.inbound.mint_request_type, self.inbound.mint_cap_type, digest
        )
        logger.info("Mint request %s created (tx %s)", created.request_id, digest)
        return created

    async def create_burn_request(self, signer: SuiSigner, params: BurnRequestParams) -> CreatedRequest:
        tx = SuiTransaction(sender=signer.address)
        burn_coin = tx.coin_with_balance(params.burn_coin_type, params.source_amount)
        fee = tx.split_coins(tx.gas, [params.fee_amount])
        request, burn_cap, refund = self.inbound.new_burn_request(
            tx,
            source_chain=params.source_chain,
            source_token=params.source_token,
            source_decimals=params.source_decimals,
            destination_address=params.destination_address,
            source_amount=params.source_amount,
            dwallet_address=params.dwallet_address,
            message=params.message,
            nonce=params.nonce,
            nonce_account=params.nonce_account,
            nonce_authority=params.nonce_authority,
            destination_wallet=params.destination_wallet,
            destination_ata=params.destination_ata,
            burn_coin=burn_coin,
            fee=fee,
            coin_type=params.coin_type,
        )
        self.inbound.share_burn_request(tx, request, params.coin_type)
        tx.transfer_objects([burn_cap], signer.address)
        tx.transfer_objects([refund], signer.address)

        result = await self.executor.sign_and_execute(tx, signer, show_object_changes=True)
        digest = result["digest"]
        changes = result.get("objectChanges")
        created = _created_request(
            changes, self.inbound.burn_request_type, self.inbound.burn_cap_type, digest
        )
        logger.info("Burn request %s created (tx %s)", created.request_id, digest)
        return created


def _created_request(
    changes: Optional[list[dict[str, Any]]],
    request_type: ObjectTypeId,
    cap_type: ObjectTypeId,
    digest: str,
) -> CreatedRequest:
    request_id = find_created_object_id(changes, request_type, digest)
    try:
        cap_id = find_created_object_id(changes, cap_type, digest)
    except ObjectExtractionError as e:
        # The request is live on-chain; keep its id for recovery
        logger.error("Request %s created in %s but its cap was not found", request_id, digest)
        raise ObjectExtractionError(
            e.type_name, e.matches, digest=digest, request_id=request_id
        ) from e
    return CreatedRequest(request_id=request_id, cap_id=cap_id, digest=digest)
