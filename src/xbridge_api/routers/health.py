"""Liveness and downstream service probes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from xbridge_chain.enclave import EnclaveClient
from xbridge_chain.http import JsonServiceClient
from xbridge_chain.solver import SolverClient

router = APIRouter()


@dataclass
class HealthDependencies:
    enclave: EnclaveClient
    solver: SolverClient


def get_deps() -> HealthDependencies:
    raise NotImplementedError("must be overridden")


async def _probe(client: JsonServiceClient) -> JSONResponse:
    if await client.health():
        return JSONResponse({"status": "ok", "service": client.service_name})
    return JSONResponse(
        {"status": "unavailable", "service": client.service_name}, status_code=503
    )


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/health/enclave")
async def enclave_health(deps: HealthDependencies = Depends(get_deps)) -> JSONResponse:
    return await _probe(deps.enclave)


@router.get("/health/solver")
async def solver_health(deps: HealthDependencies = Depends(get_deps)) -> JSONResponse:
    return await _probe(deps.solver)
