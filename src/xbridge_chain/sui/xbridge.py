"""Adapter for the xbridge Move package.

Each method appends Move calls to a ``SuiTransaction``; reads go through
``SuiClient``. Function signatures of the package are treated as given.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional

from xbridge_core.config import SuiSettings
from xbridge_core.exceptions import XBridgeNotFoundError

from .client import SuiClient
from .objects import ObjectTypeId
from .transactions import Argument, SuiTransaction

logger = logging.getLogger(__name__)

MINT_MODULE = "mint"
BURN_MODULE = "burn"
PRESIGN_MODULE = "presign"
INBOUND_MODULE = "inbound"

# Chain identifiers as encoded on-chain
CHAIN_ID_SOLANA = 1
CHAIN_ID_SUI = 2


def bytes_field(value: Any) -> bytes:
    """Decode a Move ``vector<u8>`` as rendered by the JSON-RPC (list or base64)."""
    if value is None:
        return b""
    if isinstance(value, list):
        return bytes(value)
    if isinstance(value, str):
        return base64.b64decode(value)
    raise TypeError(f"Cannot decode bytes from {type(value).__name__}")


def option_id_field(value: Any) -> Optional[str]:
    """Decode ``Option<ID>``; the RPC renders it as a string, null or ``{"vec": [...]}``."""
    if value is None or isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        if "vec" in value:
            vec = value["vec"]
            return vec[0] if vec else None
        if "id" in value:
            return value["id"]
    raise TypeError(f"Cannot decode ID from {value!r}")


@dataclass(frozen=True)
class BridgeRequestData:
    """Canonical fields of a mint or burn request as stored on-chain."""

    request_id: str
    source_chain: int
    source_token: bytes
    source_decimals: int
    source_amount: int
    source_address: bytes = b""
    destination_address: bytes = b""
    message: bytes = b""
    sign_id: Optional[str] = None

    @classmethod
    def from_fields(cls, request_id: str, fields: dict[str, Any]) -> "BridgeRequestData":
        return cls(
            request_id=request_id,
            source_chain=int(fields["source_chain"]),
            source_token=bytes_field(fields.get("source_token")),
            source_decimals=int(fields["source_decimals"]),
            source_amount=int(fields["source_amount"]),
            source_address=bytes_field(fields.get("source_address")),
            destination_address=bytes_field(fields.get("destination_address")),
            message=bytes_field(fields.get("message")),
            sign_id=option_id_field(fields.get("sign_id")),
        )


@dataclass(frozen=True)
class PresignData:
    presign_cap_id: str
    presign: bytes


class PresignNotFoundError(XBridgeNotFoundError):
    def __init__(self, owner: str) -> None:
        super().__init__("PresignCap", owner)


class XBridgeInbound:
    """Builds and reads xbridge inbound requests."""

    def __init__(self, client: SuiClient, config: SuiSettings) -> None:
        self.client = client
        self.config = config

    # -- types --------------------------------------------------------------

    def _type(self, module: str, name: str) -> ObjectTypeId:
        package = self.config.effective_types_package_id or None
        return ObjectTypeId(name=name, module=module, package_id=package)

    @property
    def mint_request_type(self) -> ObjectTypeId:
        return self._type(MINT_MODULE, "MintRequest")

    @property
    def mint_cap_type(self) -> ObjectTypeId:
        return self._type(MINT_MODULE, "MintCap")

    @property
    def burn_request_type(self) -> ObjectTypeId:
        return self._type(BURN_MODULE, "BurnRequest")

    @property
    def burn_cap_type(self) -> ObjectTypeId:
        return self._type(BURN_MODULE, "BurnCap")

    @property
    def presign_cap_type(self) -> ObjectTypeId:
        return self._type(PRESIGN_MODULE, "PresignCap")

    def _target(self, module: str, function: str) -> str:
        return f"{self.config.package_id}::{module}::{function}"

    # -- mint ---------------------------------------------------------------

    def new_mint_request(
        self,
        tx: SuiTransaction,
        *,
        source_chain: int,
        source_token: bytes,
        source_decimals: int,
        source_address: bytes,
        source_amount: int,
        fee: Argument,
        coin_type: str,
    ) -> tuple[Argument, Argument]:
        """Returns ``(request, mint_cap)``."""
        result = tx.move_call(
            self._target(MINT_MODULE, "new"),
            [
                tx.shared_object(self.config.xbridge_config),
                tx.shared_object(self.config.xcore),
                tx.shared_object(self.config.registry),
                tx.pure("u8", source_chain),
                tx.pure("vector<u8>", source_token),
                tx.pure("u8", source_decimals),
                tx.pure("vector<u8>", source_address),
                tx.pure("u64", source_amount),
                fee,
            ],
            [coin_type],
        )
        return result[0], result[1]

    def share_mint_request(self, tx: SuiTransaction, request: Argument) -> None:
        tx.move_call(self._target(MINT_MODULE, "share"), [request])

    def set_mint_digest(
        self, tx: SuiTransaction, *, request_id: str, mint_cap_id: str, digest: bytes
    ) -> None:
        tx.move_call(
            self._target(MINT_MODULE, "set_digest"),
            [tx.object(request_id), tx.object(mint_cap_id), tx.pure("vector<u8>", digest)],
        )

    def vote_mint_request(
        self,
        tx: SuiTransaction,
        *,
        request_id: str,
        signature: bytes,
        timestamp_ms: int,
    ) -> None:
        tx.move_call(
            self._target(MINT_MODULE, "vote"),
            [
                tx.object(request_id),
                tx.shared_object(self.config.xbridge_inbound),
                tx.object(self.config.enclave_object_id),
                tx.pure("vector<u8>", signature),
                tx.pure("u64", timestamp_ms),
                tx.object("0x6"),
            ],
            [self.config.validator_type] if self.config.validator_type else [],
        )

    def execute_mint_request(
        self, tx: SuiTransaction, *, request_id: str, mint_cap_id: str, coin_type: str
    ) -> Argument:
        """Returns the minted coin."""
        return tx.move_call(
            self._target(MINT_MODULE, "execute"),
            [
                tx.shared_object(self.config.xbridge_inbound),
                tx.object(request_id),
                tx.object(mint_cap_id),
            ],
            [coin_type],
        )

    # -- burn ---------------------------------------------------------------

    def new_burn_request(
        self,
        tx: SuiTransaction,
        *,
        source_chain: int,
        source_token: bytes,
        source_decimals: int,
        destination_address: bytes,
        source_amount: int,
        dwallet_address: bytes,
        message: bytes,
        nonce: bytes,
        nonce_account: bytes,
        nonce_authority: bytes,
        destination_wallet: bytes,
        destination_ata: bytes,
        burn_coin: Argument,
        fee: Argument,
        coin_type: str,
    ) -> tuple[Argument, Argument, Argument]:
        """Returns ``(request, burn_cap, refund)``."""
        result = tx.move_call(
            self._target(BURN_MODULE, "new"),
            [
                tx.shared_object(self.config.xbridge_config),
                tx.shared_object(self.config.xbridge_inbound),
                tx.shared_object(self.config.xcore),
                tx.shared_object(self.config.registry),
                tx.pure("u8", source_chain),
                tx.pure("vector<u8>", source_token),
                tx.pure("u8", source_decimals),
                tx.pure("vector<u8>", destination_address),
                tx.pure("u64", source_amount),
                tx.pure("vector<u8>", dwallet_address),
                tx.pure("vector<u8>", message),
                tx.pure("vector<u8>", nonce),
                tx.pure("vector<u8>", nonce_account),
                tx.pure("vector<u8>", nonce_authority),
                tx.pure("vector<u8>", destination_wallet),
                tx.pure("vector<u8>", destination_ata),
                burn_coin,
                fee,
            ],
            [coin_type],
        )
        return result[0], result[1], result[2]

    def share_burn_request(self, tx: SuiTransaction, request: Argument, coin_type: str) -> None:
        tx.move_call(self._target(BURN_MODULE, "share"), [request], [coin_type])

    def vote_burn_request(
        self,
        tx: SuiTransaction,
        *,
        request_id: str,
        signature: bytes,
        timestamp_ms: int,
        coin_type: str,
    ) -> None:
        type_args = [coin_type]
        if self.config.validator_type:
            type_args.append(self.config.validator_type)
        tx.move_call(
            self._target(BURN_MODULE, "vote"),
            [
                tx.object(request_id),
                tx.shared_object(self.config.xbridge_inbound),
                tx.object(self.config.enclave_object_id),
                tx.pure("vector<u8>", signature),
                tx.pure("u64", timestamp_ms),
                tx.object("0x6"),
            ],
            type_args,
        )

    def execute_burn_request(
        self,
        tx: SuiTransaction,
        *,
        request_id: str,
        burn_cap_id: str,
        presign_cap_id: str,
        message_centralized_signature: bytes,
        coin_type: str,
    ) -> None:
        tx.move_call(
            self._target(BURN_MODULE, "execute"),
            [
                tx.shared_object(self.config.xbridge_inbound),
                tx.shared_object(self.config.dwallet_coordinator),
                tx.object(request_id),
                tx.object(burn_cap_id),
                tx.object(presign_cap_id),
                tx.pure("vector<u8>", message_centralized_signature),
            ],
            [coin_type],
        )

    # -- presign ------------------------------------------------------------

    def mint_presign(
        self, tx: SuiTransaction, *, chain_id: int, fee: Argument, owner: str
    ) -> None:
        presign_cap = tx.move_call(
            self._target(PRESIGN_MODULE, "mint"),
            [
                tx.shared_object(self.config.xbridge_inbound),
                tx.shared_object(self.config.dwallet_coordinator),
                tx.pure("u8", chain_id),
                fee,
            ],
            [self.config.witness_type] if self.config.witness_type else [],
        )
        tx.transfer_objects([presign_cap], owner)

    # -- reads --------------------------------------------------------------

    async def _request_fields(self, request_id: str, kind: str) -> dict[str, Any]:
        fields = await self.client.get_object_fields(request_id)
        if fields is None:
            raise XBridgeNotFoundError(kind, request_id)
        return fields

    async def get_burn_request(self, request_id: str) -> BridgeRequestData:
        return BridgeRequestData.from_fields(
            request_id, await self._request_fields(request_id, "BurnRequest")
        )

    async def get_mint_request(self, request_id: str) -> BridgeRequestData:
        return BridgeRequestData.from_fields(
            request_id, await self._request_fields(request_id, "MintRequest")
        )

    async def get_first_presign(self, owner: str) -> PresignData:
        """The first PresignCap owned by ``owner``.

        Raises:
            PresignNotFoundError: the owner holds none
        """
        page = await self.client.get_owned_objects(owner, self.presign_cap_type.struct_tag(), limit=1)
        for entry in page.get("data") or []:
            data = entry.get("data") or {}
            fields = (data.get("content") or {}).get("fields") or {}
            if data.get("objectId") and "presign" in fields:
                return PresignData(
                    presign_cap_id=data["objectId"],
                    presign=bytes_field(fields["presign"]),
                )
        raise PresignNotFoundError(owner)
