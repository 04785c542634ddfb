"""Batched, paced submission of peer snapshots."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Sequence, TypeVar

from btnclient.models import ABILITY_SUBMIT, AbilitySubmit, ClientPing
from btnclient.utils.exceptions import BtnHttpError, TransportError
from btnclient.utils.logging_config import correlation_id

if TYPE_CHECKING:  # pragma: no cover
    from btnclient.btn.client import BtnClient
    from btnclient.btn.pings import PingBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubmitState(str, Enum):
    """Submission cycle states."""

    IDLE = "idle"
    BUILDING = "building"
    SUBMITTING = "submitting"


@dataclass
class SubmitReport:
    """Outcome of one submission cycle."""

    submit_id: str
    pings: int = 0
    peers: int = 0
    batches: int = 0
    sent: int = 0
    failed: int = 0
    aborted: bool = False


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of ``size``; the last may be short."""
    if size < 1:
        msg = f"Batch size must be positive, got {size}"
        raise ValueError(msg)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class PingSubmitter:
    """Submits one cycle of pings to the BTN server."""

    def __init__(self, client: BtnClient, builder: PingBuilder, enabled: bool = True):
        """Initialize ping submitter.

        Args:
            client: BTN client used for the POSTs
            builder: Produces the pings of a cycle
            enabled: Local switch; when False nothing is ever submitted

        """
        self.client = client
        self.builder = builder
        self.enabled = enabled
        self.state = SubmitState.IDLE
        self.last_report: SubmitReport | None = None
        self._lock = asyncio.Lock()

    async def submit(self) -> SubmitReport | None:
        """Run one submission cycle.

        Cancellation is honoured at the pacing delay after each POST; the
        remaining pings of the cycle are dropped and CancelledError is
        re-raised.

        Returns:
            The cycle report, or None when submission is disabled or skipped

        """
        if not self.enabled:
            return None
        config = self.client.config
        if config is None or not config.has_ability(ABILITY_SUBMIT):
            return None
        if self._lock.locked():
            logger.debug("Previous submission cycle still running, skipping")
            return None
        async with self._lock:
            return await self._run_cycle(config.ability_submit)

    async def _run_cycle(self, ability: AbilitySubmit) -> SubmitReport:
        report = SubmitReport(submit_id=str(uuid.uuid4()))
        token = correlation_id.set(report.submit_id)
        try:
            self.state = SubmitState.BUILDING
            pings = await asyncio.to_thread(self.builder.build_pings, report.submit_id)
            batches = partition(pings, ability.per_batch_size)
            report.pings = len(pings)
            report.peers = sum(len(p.peers) for p in pings)
            report.batches = len(batches)
            logger.info(
                "Submitting %d peers from %d downloader(s) in %d batch(es)",
                report.peers,
                report.pings,
                report.batches,
            )

            self.state = SubmitState.SUBMITTING
            for batch_index, batch in enumerate(batches):
                for ping in batch:
                    ping.batch_index = batch_index
                    ping.batch_size = len(batches)
                    await self._post(ability.endpoint, ping, report)
                    await asyncio.sleep(ability.batch_period_seconds)
        except asyncio.CancelledError:
            report.aborted = True
            logger.info(
                "Submission cycle cancelled after %d of %d ping(s)",
                report.sent + report.failed,
                report.pings,
            )
            raise
        finally:
            self.state = SubmitState.IDLE
            self.last_report = report
            correlation_id.reset(token)
        return report

    async def _post(self, endpoint: str, ping: ClientPing, report: SubmitReport) -> None:
        try:
            resp = await self.client.post_gzip_json(endpoint, ping.to_wire())
        except TransportError as e:
            report.failed += 1
            logger.warning("BTN request failed: %s", e)
            return
        try:
            resp.raise_for_status()
        except BtnHttpError as e:
            report.failed += 1
            logger.warning("BTN request failed: %s", e)
            return
        report.sent += 1
