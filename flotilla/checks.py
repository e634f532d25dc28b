"""Check coordination: run each precondition check at most once per deploy."""

import asyncio
import logging
from collections.abc import Callable

from flotilla.definitions.types import Check
from flotilla.errors import CheckFailed, SpawnFailed
from flotilla.shell import run_command

logger = logging.getLogger(__name__)


class CheckCoordinator:
    """Per-invocation check cache.

    A check referenced by any number of entities executes once; every
    caller awaits the same outcome. Create one coordinator per deploy.
    """

    def __init__(self, emit: Callable[[str], None], apply_fixes: bool = False):
        self.emit = emit
        self.apply_fixes = apply_fixes
        self.executions: dict[str, int] = {}
        self._outcomes: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def ensure(self, check: Check) -> None:
        """Run the check unless it already ran in this invocation.

        Raises:
            CheckFailed: the check (or its earlier run) failed.
        """
        async with self._lock:
            outcome = self._outcomes.get(check.name)
            if outcome is None:
                outcome = asyncio.create_task(self._perform(check), name=f"check-{check.name}")
                self._outcomes[check.name] = outcome
        await outcome

    async def run_all(self, checks: list[Check]) -> None:
        """Run checks in order, stopping at the first failure."""
        for check in checks:
            await self.ensure(check)

    async def _execute(self, check: Check) -> bool:
        self.executions[check.name] = self.executions.get(check.name, 0) + 1
        try:
            rc, output = await run_command(check.run, capture_output=True)
        except SpawnFailed as e:
            logger.error(f"Check {check.name} could not run: {e.message}")
            rc, output = 127, ""
        if output.strip():
            logger.debug(f"Check {check.name} output:\n{output.rstrip()}")
        passed = rc == 0
        self.emit(f"Check {check.about} ({check.name}) ({'OK' if passed else 'FAIL'})")
        return passed

    async def _perform(self, check: Check) -> None:
        if await self._execute(check):
            return

        fix = check.suggested_fix
        if fix is not None and fix.run is not None and self.apply_fixes:
            self.emit(f"Applying suggested fix for {check.about}: {fix.message}")
            try:
                rc, output = await run_command(fix.run, capture_output=True)
            except SpawnFailed as e:
                logger.error(f"Suggested fix for {check.name} could not run: {e.message}")
                rc = 1
            if rc == 0 and await self._execute(check):
                return
            logger.error(f"Suggested fix for {check.name} did not resolve the failure")

        raise CheckFailed(check.name, check.about, check.help, fix.message if fix else None)
