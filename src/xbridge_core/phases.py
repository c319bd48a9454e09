"""Phase tracking for multi-transaction bridge flows.

A bridge flow commits an irreversible, capability-bearing request on-chain in
its first transaction. Any failure after that point has to hand back the ids
needed to resume, otherwise a retry from scratch would create a second,
unlinked request. ``PhaseRecoveryTracker.run`` turns the flow's outcome into
either ``FlowSuccess`` or ``FlowFailure`` and attaches a ``PhaseRecord`` to the
failure only once the request and its primary capability are known.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

POST_CREATE = "post-create"


class Phase(str, Enum):
    SETUP = "setup"
    BUILD_USER_PRESIGN = "build-user-presign"
    CREATE_REQUEST = "create-request"
    COLLECT_SIGNATURES = "collect-signatures"
    EXECUTE_REQUEST = "execute-request"
    AWAIT_THRESHOLD_SIGNATURE = "await-threshold-signature"
    ASSEMBLE_WIRE_TX = "assemble-wire-tx"
    BROADCAST = "broadcast"


@dataclass
class PhaseRecord:
    """Resume state for a flow whose request is already committed on-chain."""

    request_id: str
    cap_id: str
    cap_field: str
    phase: Phase
    presign_cap_id: Optional[str] = None
    create_digest: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "phase": POST_CREATE,
            "failedPhase": self.phase.value,
            "requestId": self.request_id,
            self.cap_field: self.cap_id,
        }
        if self.presign_cap_id:
            payload["presignCapId"] = self.presign_cap_id
        if self.create_digest:
            payload["createDigest"] = self.create_digest
        return payload


@dataclass
class FlowSuccess(Generic[T]):
    value: T


@dataclass
class FlowFailure:
    error: Exception
    record: Optional[PhaseRecord] = None

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__

    @property
    def recoverable(self) -> bool:
        return self.record is not None


FlowOutcome = Union[FlowSuccess[T], FlowFailure]


@dataclass
class PhaseRecoveryTracker:
    """Collects request/cap ids as a flow progresses.

    ``cap_field`` names the primary capability in the recovery payload
    (``burnCapId`` or ``mintCapId``).
    """

    cap_field: str
    phase: Phase = Phase.SETUP
    request_id: Optional[str] = None
    cap_id: Optional[str] = None
    presign_cap_id: Optional[str] = None
    create_digest: Optional[str] = None
    history: list[Phase] = field(default_factory=list)

    def enter(self, phase: Phase) -> None:
        self.phase = phase
        self.history.append(phase)
        logger.info(
            "Entering phase %s",
            phase.value,
            extra={"phase": phase.value, "bridge_request": self.request_id},
        )

    def record_request(self, request_id: str, cap_id: str, digest: Optional[str] = None) -> None:
        self.request_id = request_id
        self.cap_id = cap_id
        if digest:
            self.create_digest = digest

    def record_presign_cap(self, presign_cap_id: str) -> None:
        self.presign_cap_id = presign_cap_id

    @property
    def committed(self) -> bool:
        return bool(self.request_id and self.cap_id)

    def recovery_record(self) -> Optional[PhaseRecord]:
        if not self.committed:
            return None
        return PhaseRecord(
            request_id=self.request_id,
            cap_id=self.cap_id,
            cap_field=self.cap_field,
            phase=self.phase,
            presign_cap_id=self.presign_cap_id,
            create_digest=self.create_digest,
        )

    async def run(
        self, flow: Callable[["PhaseRecoveryTracker"], Awaitable[T]]
    ) -> FlowOutcome[T]:
        """Run ``flow`` with this tracker and classify its outcome."""
        try:
            value = await flow(self)
        except Exception as e:
            record = self.recovery_record()
            if record is None:
                logger.warning("Flow failed before request creation: %s", e)
            else:
                logger.error(
                    "Flow failed after request creation in phase %s: %s",
                    self.phase.value,
                    e,
                    extra={"recovery": record.to_payload()},
                    exc_info=True,
                )
            return FlowFailure(error=e, record=record)
        return FlowSuccess(value)
