"""Readiness probing: block a deploy branch until a service is ready."""

import asyncio
import logging

from flotilla.definitions.types import Probe
from flotilla.errors import ReadinessProbeError, ReadinessTimeout
from flotilla.probes.kinds import ProbeContext, ProbeError, probe_once

logger = logging.getLogger(__name__)


async def await_readiness(probe: Probe, ctx: ProbeContext, interval: float) -> int:
    """Poll the probe every ``interval`` seconds, at most ``probe.retries`` times.

    Cancelling the awaiting task abandons the wait; nothing else keeps
    polling in the background.

    Returns:
        The number of attempts it took.

    Raises:
        ReadinessTimeout: every attempt failed.
        ReadinessProbeError: the probe could not be evaluated at all.
    """
    attempts = 0
    while attempts < probe.retries:
        await asyncio.sleep(interval)
        attempts += 1
        try:
            passed = await probe_once(probe, ctx)
        except ProbeError as e:
            logger.error(f"Readiness probe for {ctx.name} is broken: {e}")
            raise ReadinessProbeError(ctx.name, str(e)) from e
        if passed:
            logger.info(f"{ctx.name} is ready after {attempts} attempt(s)")
            return attempts
        logger.debug(f"{ctx.name} not ready (attempt {attempts}/{probe.retries})")
    logger.warning(f"{ctx.name} exhausted its readiness budget of {probe.retries} attempt(s)")
    raise ReadinessTimeout(ctx.name)
