"""Liveness probing: periodic, non-blocking health polling of a running service."""

import asyncio
import contextlib
import logging
from collections.abc import Callable

from flotilla.definitions.types import Probe
from flotilla.ledger import LIVENESS_FAILING, LIVENESS_HEALTHY, LIVENESS_UNKNOWN
from flotilla.probes.kinds import ProbeContext, ProbeError, probe_once

logger = logging.getLogger(__name__)


class LivenessMonitor:
    """Re-evaluates a probe every ``interval`` seconds until stopped.

    Each poll reports ``healthy`` or ``failing`` through ``on_status``,
    based only on the latest attempt.
    """

    def __init__(self, probe: Probe, ctx: ProbeContext, interval: float, on_status: Callable[[str], None]):
        self.probe = probe
        self.ctx = ctx
        self.interval = interval
        self.on_status = on_status
        self.status = LIVENESS_UNKNOWN
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.active:
            return
        self._task = asyncio.create_task(self._run(), name=f"liveness-{self.ctx.name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def poll(self) -> str:
        """One evaluation; a broken probe counts as failing."""
        try:
            passed = await probe_once(self.probe, self.ctx)
        except ProbeError as e:
            logger.warning(f"Liveness probe for {self.ctx.name} is broken: {e}")
            passed = False
        status = LIVENESS_HEALTHY if passed else LIVENESS_FAILING
        if status != self.status:
            logger.info(f"{self.ctx.name} liveness: {self.status} -> {status}")
        self.status = status
        self.on_status(status)
        return status

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll()
