"""Bridge endpoints: burn (Sui -> Solana), mint (Solana -> Sui) and their steps."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated, AsyncIterator, Optional, TypeVar

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from xbridge_api.authz import Principal, require_user, verify_user_match
from xbridge_chain.http import decode_hex
from xbridge_chain.orchestrator import BridgeOrchestrator, BurnParams, MintParams
from xbridge_core.exceptions import (
    NonceAccountExistsError,
    PostCreateError,
    RequestCancelledError,
    XBridgeException,
    XBridgeValidationError,
)
from xbridge_core.phases import FlowOutcome, FlowSuccess
from xbridge_core.polling import PollCancelledError

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

Byte = Annotated[int, Field(ge=0, le=255)]

DISCONNECT_CHECK_INTERVAL = 1.0


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- requests -----------------------------------------------------------------

class BurnRequest(CamelModel):
    user_id: str = Field(min_length=1)
    source_amount: int = Field(gt=0)
    destination_address: list[Byte] = Field(min_length=32, max_length=32)
    nonce_address: str = Field(min_length=1)
    coin_type: str = Field(min_length=1)


class MintRequest(CamelModel):
    user_id: str = Field(min_length=1)
    source_chain: int = Field(ge=0)
    source_token: list[Byte]
    source_decimals: int = Field(ge=0, le=255)
    source_address: list[Byte]
    source_amount: int = Field(gt=0)
    coin_type: str = Field(min_length=1)
    deposit_signature: str = Field(min_length=1)


class BroadcastBurnRequest(CamelModel):
    user_id: str = Field(min_length=1)
    request_id: str = Field(min_length=1)
    sign_id: str = Field(min_length=1)
    user_signature: str = Field(min_length=1, description="Hex encoded 64-byte signature")
    message: str = Field(min_length=1, description="Hex encoded Solana message")


class CreateNonceRequest(CamelModel):
    user_id: str = Field(min_length=1)


class VoteMintRequest(CamelModel):
    user_id: str = Field(min_length=1)
    request_id: str = Field(min_length=1)
    deposit_signature: str = Field(min_length=1)


class SetMintDigestRequest(CamelModel):
    user_id: str = Field(min_length=1)
    request_id: str = Field(min_length=1)
    mint_cap_id: str = Field(min_length=1)
    deposit_signature: str = Field(min_length=1)


class ExecuteMintRequest(CamelModel):
    user_id: str = Field(min_length=1)
    request_id: str = Field(min_length=1)
    mint_cap_id: str = Field(min_length=1)
    coin_type: Optional[str] = None


# -- responses ----------------------------------------------------------------

class BurnResponse(CamelModel):
    create_digest: str
    execute_digest: str
    request_id: str
    sign_id: str
    user_signature: str
    message: str


class MintResponse(CamelModel):
    digest: str
    request_id: str
    mint_cap_id: str
    create_digest: str


class CreateMintRequestResponse(CamelModel):
    digest: str
    request_id: str
    mint_cap_id: str


class BroadcastBurnResponse(CamelModel):
    solana_signature: str


class CreateNonceResponse(CamelModel):
    signature: Optional[str] = None
    nonce_address: str


class DigestResponse(CamelModel):
    digest: str


@dataclass
class BridgeDependencies:
    orchestrator: BridgeOrchestrator


def get_deps() -> BridgeDependencies:
    raise NotImplementedError("must be overridden")


def _unwrap(outcome: FlowOutcome[T]) -> T:
    if isinstance(outcome, FlowSuccess):
        return outcome.value
    if outcome.record is None:
        raise outcome.error
    recovery = outcome.record.to_payload()
    if isinstance(outcome.error, XBridgeException):
        recovery = {**outcome.error.details, **recovery}
    raise PostCreateError(outcome.message, recovery) from outcome.error


def _hex_field(value: str, field: str) -> bytes:
    try:
        return decode_hex(value, field)
    except ValueError as e:
        raise XBridgeValidationError(str(e), field=field) from e


@asynccontextmanager
async def _cancel_on_disconnect(request: Request) -> AsyncIterator[asyncio.Event]:
    """Yield an event that is set once the client goes away."""
    cancel = asyncio.Event()

    async def watch() -> None:
        while not cancel.is_set():
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling %s", request.url.path)
                cancel.set()
                return
            await asyncio.sleep(DISCONNECT_CHECK_INTERVAL)

    watcher = asyncio.create_task(watch())
    try:
        yield cancel
    finally:
        watcher.cancel()


@router.post("/burn", response_model=BurnResponse)
async def burn(
    req: BurnRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> BurnResponse:
    verify_user_match(principal, req.user_id)
    outcome = await deps.orchestrator.burn(
        BurnParams(
            user_id=req.user_id,
            source_amount=req.source_amount,
            destination_address=bytes(req.destination_address),
            nonce_address=req.nonce_address,
            coin_type=req.coin_type,
        )
    )
    result = _unwrap(outcome)
    return BurnResponse(
        create_digest=result.create_digest,
        execute_digest=result.execute_digest,
        request_id=result.request_id,
        sign_id=result.sign_id,
        user_signature=result.user_signature.hex(),
        message=result.message.hex(),
    )


@router.post("/broadcast-burn", response_model=BroadcastBurnResponse)
async def broadcast_burn(
    req: BroadcastBurnRequest,
    request: Request,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> BroadcastBurnResponse:
    verify_user_match(principal, req.user_id)
    user_signature = _hex_field(req.user_signature, "userSignature")
    message = _hex_field(req.message, "message")
    try:
        async with _cancel_on_disconnect(request) as cancel:
            signature = await deps.orchestrator.broadcast_burn(
                req.request_id, req.sign_id, user_signature, message, cancel=cancel
            )
    except PollCancelledError as e:
        logger.info("broadcast-burn for %s abandoned after %d polls", req.sign_id, e.polls)
        raise RequestCancelledError(
            "broadcast-burn", {"requestId": req.request_id, "signId": req.sign_id}
        ) from e
    return BroadcastBurnResponse(solana_signature=signature)


@router.post("/mint", response_model=MintResponse)
async def mint(
    req: MintRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> MintResponse:
    verify_user_match(principal, req.user_id)
    outcome = await deps.orchestrator.mint(_mint_params(req))
    result = _unwrap(outcome)
    return MintResponse(
        digest=result.digest,
        request_id=result.request_id,
        mint_cap_id=result.mint_cap_id,
        create_digest=result.create_digest,
    )


@router.post("/create-mint-request", response_model=CreateMintRequestResponse)
async def create_mint_request(
    req: MintRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> CreateMintRequestResponse:
    verify_user_match(principal, req.user_id)
    created = await deps.orchestrator.create_mint_request(_mint_params(req))
    return CreateMintRequestResponse(
        digest=created.digest, request_id=created.request_id, mint_cap_id=created.cap_id
    )


@router.post("/vote-mint", response_model=DigestResponse)
async def vote_mint(
    req: VoteMintRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> DigestResponse:
    verify_user_match(principal, req.user_id)
    digest = await deps.orchestrator.vote_mint(req.user_id, req.request_id, req.deposit_signature)
    return DigestResponse(digest=digest)


@router.post("/set-mint-digest", response_model=DigestResponse)
async def set_mint_digest(
    req: SetMintDigestRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> DigestResponse:
    verify_user_match(principal, req.user_id)
    digest = await deps.orchestrator.set_mint_digest(
        req.user_id, req.request_id, req.mint_cap_id, req.deposit_signature
    )
    return DigestResponse(digest=digest)


@router.post("/execute-mint", response_model=DigestResponse)
async def execute_mint(
    req: ExecuteMintRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> DigestResponse:
    verify_user_match(principal, req.user_id)
    digest = await deps.orchestrator.execute_mint(
        req.user_id, req.request_id, req.mint_cap_id, req.coin_type
    )
    return DigestResponse(digest=digest)


@router.post("/create-nonce", response_model=CreateNonceResponse)
async def create_nonce(
    req: CreateNonceRequest,
    principal: Principal = Depends(require_user),
    deps: BridgeDependencies = Depends(get_deps),
) -> CreateNonceResponse:
    verify_user_match(principal, req.user_id)
    result = await deps.orchestrator.create_nonce(req.user_id)
    if not result.created:
        raise NonceAccountExistsError(result.nonce_address)
    return CreateNonceResponse(signature=result.signature, nonce_address=result.nonce_address)


def _mint_params(req: MintRequest) -> MintParams:
    return MintParams(
        user_id=req.user_id,
        source_chain=req.source_chain,
        source_token=bytes(req.source_token),
        source_decimals=req.source_decimals,
        source_address=bytes(req.source_address),
        source_amount=req.source_amount,
        coin_type=req.coin_type,
        deposit_signature=req.deposit_signature,
    )
