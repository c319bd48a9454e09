"""Sui integration: RPC client, transactions, xbridge package adapter, signing."""

from .client import SuiClient, SuiRPCError, SuiTransactionError
from .objects import ObjectTypeId, find_created_object_id
from .requests import BurnRequestParams, CreatedRequest, MintRequestParams, RequestBuilder
from .sign_poller import ThresholdSignPoller, extract_completed_signature
from .signing import (
    SuiSigner,
    SuiTransactionExecutor,
    extract_public_key,
    message_with_intent,
    to_serialized_signature,
)
from .transactions import Argument, RemoteTransactionBuilder, SuiTransaction, TransactionBuilder
from .xbridge import BridgeRequestData, PresignData, PresignNotFoundError, XBridgeInbound

__all__ = [
    "SuiClient",
    "SuiRPCError",
    "SuiTransactionError",
    "ObjectTypeId",
    "find_created_object_id",
    "BurnRequestParams",
    "CreatedRequest",
    "MintRequestParams",
    "RequestBuilder",
    "ThresholdSignPoller",
    "extract_completed_signature",
    "SuiSigner",
    "SuiTransactionExecutor",
    "extract_public_key",
    "message_with_intent",
    "to_serialized_signature",
    "Argument",
    "RemoteTransactionBuilder",
    "SuiTransaction",
    "TransactionBuilder",
    "BridgeRequestData",
    "PresignData",
    "PresignNotFoundError",
    "XBridgeInbound",
]
