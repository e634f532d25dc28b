"""Daemon core: one ledger, supervisor and deployer per daemon lifetime."""

import asyncio
import logging
from collections.abc import Callable

from flotilla.config import DaemonConfig
from flotilla.definitions.loader import parse_definitions
from flotilla.deploy.orchestrate import DeployOutcome, Deployer
from flotilla.deploy.params import DeployRequest
from flotilla.errors import DefinitionError, UnknownEntity
from flotilla.ledger import Ledger, ModuleRecord, format_ps
from flotilla.supervisor.manager import Supervisor

logger = logging.getLogger(__name__)


class Daemon:
    """State owned by a running daemon.

    Deploy and stop operations are serialized; ps and module lookups read
    ledger snapshots and never wait for them.
    """

    def __init__(self, config: DaemonConfig):
        self.config = config
        self.ledger = Ledger()
        self.supervisor = Supervisor(self.ledger, config)
        self.deployer = Deployer(self.supervisor, self.ledger, config)
        self._operations = asyncio.Lock()
        self.closed = False

    async def deploy(self, documents: list[dict], request: DeployRequest, emit: Callable[[str], None]) -> DeployOutcome:
        try:
            definitions = parse_definitions(documents)
        except DefinitionError as e:
            return DeployOutcome(errors=[e])
        logger.info(f"Deploy requested: {request.names} (force={request.force}, only_selected={request.only_selected})")
        async with self._operations:
            return await self.deployer.deploy(definitions, request, emit)

    async def stop(self, names: list[str], emit: Callable[[str], None]) -> list[UnknownEntity]:
        """Stop modules by name; unknown names are reported, the rest still stop."""
        errors = []
        async with self._operations:
            for name in names:
                try:
                    status = await self.supervisor.stop(name)
                except KeyError:
                    errors.append(UnknownEntity(name))
                    continue
                emit(f"Stopping {name} ({status})")
        return errors

    async def down(self, emit: Callable[[str], None]) -> list:
        async with self._operations:
            for name in await self.supervisor.stop_all():
                emit(f"Stopping {name} (Stopped)")
        return []

    def ps(self) -> str:
        return format_ps(self.ledger.snapshot())

    def module(self, name: str) -> ModuleRecord:
        record = self.ledger.get(name)
        if record is None:
            raise UnknownEntity(name)
        return record

    async def close(self) -> None:
        """Stop every process this daemon started."""
        if self.closed:
            return
        self.closed = True
        logger.info("Shutting down, stopping all modules...")
        await self.supervisor.close()
