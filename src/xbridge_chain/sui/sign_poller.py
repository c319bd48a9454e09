"""Polling for threshold (MPC) signatures published on Sui."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from xbridge_core.constants import Polling
from xbridge_core.exceptions import ThresholdSignatureTimeoutError
from xbridge_core.polling import PollTimeoutError, poll_until

from .client import SuiClient
from .xbridge import bytes_field

logger = logging.getLogger(__name__)


def extract_completed_signature(fields: Optional[dict[str, Any]]) -> Optional[bytes]:
    """Signature bytes if the sign session's state is ``Completed`` with a signature.

    Accepts both renderings of a Move enum: ``{"Completed": {"fields": ...}}``
    and ``{"variant": "Completed", "fields": ...}``.
    """
    if not fields:
        return None
    state = fields.get("state")
    if not isinstance(state, dict):
        return None

    completed: Any = None
    if "Completed" in state:
        completed = state["Completed"]
    elif state.get("variant") == "Completed":
        completed = state
    if not isinstance(completed, dict):
        return None

    inner = completed.get("fields", completed)
    signature = bytes_field(inner.get("signature")) if isinstance(inner, dict) else b""
    return signature or None


class ThresholdSignPoller:
    def __init__(
        self,
        client: SuiClient,
        max_polls: int = Polling.THRESHOLD_SIGN_MAX_POLLS,
        interval: float = Polling.THRESHOLD_SIGN_INTERVAL,
    ) -> None:
        self.client = client
        self.max_polls = max_polls
        self.interval = interval

    async def await_signature(
        self, sign_id: str, cancel: Optional[asyncio.Event] = None
    ) -> bytes:
        """Wait for the sign session ``sign_id`` to publish its signature.

        Raises:
            ThresholdSignatureTimeoutError: not completed after ``max_polls``;
                polling may be resumed later
            PollCancelledError: ``cancel`` was set
        """

        async def _poll() -> Optional[bytes]:
            fields = await self.client.get_object_fields(sign_id)
            return extract_completed_signature(fields)

        try:
            signature = await poll_until(
                _poll, max_polls=self.max_polls, interval=self.interval, cancel=cancel
            )
        except PollTimeoutError as e:
            logger.warning("Sign session %s not completed after %d polls", sign_id, e.polls)
            raise ThresholdSignatureTimeoutError(sign_id, e.polls) from e
        logger.info("Threshold signature for %s available", sign_id)
        return signature
