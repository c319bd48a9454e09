"""Programmable transaction recording and building.

``SuiTransaction`` records inputs and commands the way a PTB is described in
JSON. Serializing it to BCS ``TransactionData`` is delegated to a
``TransactionBuilder``; gas selection and coin resolution happen there.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import httpx

from xbridge_core.config import SharedObjectRef
from xbridge_core.constants import Timeouts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Argument:
    kind: str
    index: int = 0
    sub_index: Optional[int] = None

    def __getitem__(self, sub_index: int) -> "Argument":
        if self.kind != "Result":
            raise TypeError(f"{self.kind} arguments have no nested results")
        return Argument("NestedResult", self.index, sub_index)

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "GasCoin":
            return {"GasCoin": True}
        if self.kind == "NestedResult":
            return {"NestedResult": [self.index, self.sub_index]}
        return {self.kind: self.index}


class SuiTransaction:
    """Records a programmable transaction block."""

    def __init__(self, sender: Optional[str] = None) -> None:
        self.sender = sender
        self.inputs: list[dict[str, Any]] = []
        self.commands: list[dict[str, Any]] = []

    def set_sender(self, sender: str) -> None:
        self.sender = sender

    @property
    def gas(self) -> Argument:
        return Argument("GasCoin")

    def _input(self, entry: dict[str, Any]) -> Argument:
        self.inputs.append(entry)
        return Argument("Input", len(self.inputs) - 1)

    def _command(self, entry: dict[str, Any]) -> Argument:
        self.commands.append(entry)
        return Argument("Result", len(self.commands) - 1)

    def pure(self, type_tag: str, value: Any) -> Argument:
        if isinstance(value, (bytes, bytearray)):
            value = list(value)
        elif type_tag in ("u64", "u128", "u256"):
            value = str(value)
        return self._input({"type": "pure", "valueType": type_tag, "value": value})

    def object(self, object_id: str) -> Argument:
        return self._input({"type": "object", "objectId": object_id})

    def shared_object(self, ref: SharedObjectRef) -> Argument:
        return self._input(
            {
                "type": "sharedObject",
                "objectId": ref.object_id,
                "initialSharedVersion": str(ref.initial_shared_version),
                "mutable": ref.mutable,
            }
        )

    def move_call(
        self,
        target: str,
        arguments: Sequence[Argument] = (),
        type_arguments: Sequence[str] = (),
    ) -> Argument:
        return self._command(
            {
                "MoveCall": {
                    "target": target,
                    "typeArguments": list(type_arguments),
                    "arguments": [a.to_dict() for a in arguments],
                }
            }
        )

    def split_coins(self, coin: Argument, amounts: Sequence[int]) -> Argument:
        amount_args = [self.pure("u64", amount) for amount in amounts]
        return self._command(
            {
                "SplitCoins": {
                    "coin": coin.to_dict(),
                    "amounts": [a.to_dict() for a in amount_args],
                }
            }
        )

    def transfer_objects(self, objects: Sequence[Argument], address: str) -> Argument:
        recipient = self.pure("address", address)
        return self._command(
            {
                "TransferObjects": {
                    "objects": [o.to_dict() for o in objects],
                    "address": recipient.to_dict(),
                }
            }
        )

    def coin_with_balance(self, coin_type: str, balance: int) -> Argument:
        """A coin of ``coin_type`` holding exactly ``balance``, resolved at build time."""
        return self._command(
            {"$Intent": {"name": "CoinWithBalance", "data": {"type": coin_type, "balance": str(balance)}}}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": 2,
            "sender": self.sender,
            "inputs": list(self.inputs),
            "commands": list(self.commands),
        }


class TransactionBuilder(Protocol):
    async def build(self, tx: SuiTransaction) -> bytes: ...


class TransactionBuildError(Exception):
    """The transaction builder could not produce transaction bytes."""


class RemoteTransactionBuilder:
    """Builds transaction bytes through an HTTP transaction-building service.

    POSTs ``{"transaction": <json>}`` and expects ``{"txBytes": <base64>}``.
    """

    def __init__(
        self,
        url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = Timeouts.RPC_CALL,
    ) -> None:
        self.url = url
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def build(self, tx: SuiTransaction) -> bytes:
        if not tx.sender:
            raise TransactionBuildError("Transaction sender not set")
        resp = await self._client.post(self.url, json={"transaction": tx.to_dict()})
        if not resp.is_success:
            raise TransactionBuildError(f"Transaction build failed: {resp.status_code} - {resp.text}")
        data = resp.json()
        try:
            return base64.b64decode(data["txBytes"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransactionBuildError(f"Malformed build response: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()
