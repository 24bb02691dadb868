"""Result poller: fixed-interval polling until a batch reports completion."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable

from bloom.errors import ResultTimeoutError, ScanCancelledError
from bloom.models.haut_client import HautClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 45
DEFAULT_DELAY_MS = 2000
FACE_SKIN_FAMILY = "face_skin_metrics_3"


class PollState(str, enum.Enum):
    POLLING = "polling"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"


def is_complete(payload: Any, family: str = FACE_SKIN_FAMILY) -> bool:
    if not isinstance(payload, dict):
        return False
    block = payload.get(family)
    return isinstance(block, dict) and block.get("all_algorithms_calculated") is True


class ResultPoller:
    """Waits for a batch's results.

    Only "not ready yet" is retried here. A failed GET propagates the
    client's ``RemoteError`` on the spot. At most one GET is outstanding per
    batch, and the poller keeps no per-batch state, so one instance serves
    concurrent scans.
    """

    def __init__(
        self,
        client: HautClient,
        company_id: str,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay_ms: int = DEFAULT_DELAY_MS,
        family: str = FACE_SKIN_FAMILY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.company_id = company_id
        self.max_attempts = max_attempts
        self.delay_ms = delay_ms
        self.family = family
        self._sleep = sleep

    def results_path(self, batch_id: str) -> str:
        return f"/api/v3/companies/{self.company_id}/batches/{batch_id}/results/"

    async def poll_once(self, batch_id: str) -> tuple[PollState, Any]:
        _, payload = await self.client.request(self.results_path(batch_id), "GET")
        if is_complete(payload, self.family):
            return PollState.COMPLETE, payload
        return PollState.POLLING, payload

    async def wait_for_results(
        self,
        batch_id: str,
        *,
        max_attempts: int | None = None,
        delay_ms: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.delay_ms if delay_ms is None else delay_ms

        for attempt in range(1, attempts + 1):
            _check_cancelled(cancel_event, batch_id)
            state, payload = await self.poll_once(batch_id)
            if state is PollState.COMPLETE:
                logger.info("Batch %s complete after %d attempt(s).", batch_id, attempt)
                return payload

            logger.info(
                "Batch %s still processing (attempt %d/%d).", batch_id, attempt, attempts,
            )
            if attempt < attempts:
                _check_cancelled(cancel_event, batch_id)
                await self._sleep(delay / 1000)

        logger.warning("Batch %s %s after %d attempts.", batch_id, PollState.TIMED_OUT.value, attempts)
        raise ResultTimeoutError(
            "No completed results were received from Haut.AI within timeout",
            details={"batchId": batch_id, "attempts": attempts, "delayMs": delay},
        )


def _check_cancelled(cancel_event: asyncio.Event | None, batch_id: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Polling for batch %s abandoned by caller.", batch_id)
        raise ScanCancelledError("Scan cancelled while waiting for results", details={"batchId": batch_id})
