"""Supervisor: owns spawned processes, their exit watchers and liveness monitors."""

import asyncio
import logging
import os

from flotilla.config import DaemonConfig
from flotilla.definitions.types import Service, Task
from flotilla.ledger import EXITED, RUNNING, STOPPED, Ledger, ModuleRecord
from flotilla.probes.kinds import ProbeContext
from flotilla.probes.liveness import LivenessMonitor
from flotilla.shell import working_dir_of
from flotilla.supervisor.process import spawn_process, terminate_process

logger = logging.getLogger(__name__)

STOP_SIGNALLED = "Stopped"
STOP_ALREADY_STOPPED = "Already stopped"
STOP_ALREADY_EXITED = "Already exited"


def fingerprint(entity: Service | Task, environment: dict[str, str], log_file_path: str) -> tuple:
    """Identity of what would be spawned; a change means the module must be redeployed."""
    run = entity.process.run
    return (
        run.display,
        run.working_dir,
        tuple(sorted(environment.items())),
        log_file_path,
        entity.process.termination_signal,
    )


class Supervisor:
    """Spawns services and tasks and keeps the ledger in step with their processes."""

    def __init__(self, ledger: Ledger, config: DaemonConfig):
        self.ledger = ledger
        self.config = config
        self._watchers: set[asyncio.Task] = set()

    def log_path_for(self, entity: Service | Task) -> str:
        """Explicit log_file_path, else the daemon-managed log for this module."""
        if entity.process.log_file_path:
            return os.path.expanduser(entity.process.log_file_path)
        suffix = ".task.log" if isinstance(entity, Task) else ".log"
        return os.path.join(self.config.logs_dir, f"{entity.name}{suffix}")

    def probe_context(self, name: str, log_file_path: str, environment: dict[str, str]) -> ProbeContext:
        return ProbeContext(
            name=name,
            log_file_path=log_file_path,
            environment=environment,
            net_timeout=self.config.net_probe_timeout,
        )

    async def start(self, entity: Service | Task, environment: dict[str, str]) -> ModuleRecord:
        """Spawn the module, record it and start watching it.

        Raises:
            SpawnFailed: the process could not be started.
        """
        log_file_path = self.log_path_for(entity)
        supervised = await spawn_process(
            entity.name,
            entity.process.run,
            environment,
            log_file_path,
            termination_signal=entity.process.signal,
        )
        record = ModuleRecord(
            name=entity.name,
            kind=entity.kind,
            pid=supervised.pid,
            log_file_path=log_file_path,
            working_dir=working_dir_of(entity.process.run),
            environment=dict(environment),
            fingerprint=fingerprint(entity, environment, log_file_path),
            started_at=supervised.started_at,
            process=supervised,
        )
        self.ledger.record_spawn(record)

        watcher = asyncio.create_task(self._watch(entity.name, supervised), name=f"watch-{entity.name}")
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        if isinstance(entity, Service) and entity.liveness_probe is not None:
            pid = supervised.pid
            monitor = LivenessMonitor(
                entity.liveness_probe,
                self.probe_context(entity.name, log_file_path, environment),
                self.config.liveness_interval,
                on_status=lambda status: self.ledger.set_liveness(entity.name, pid, status),
            )
            self.ledger.attach_liveness_monitor(entity.name, pid, monitor)
            monitor.start()
        return record

    async def _watch(self, name: str, supervised) -> None:
        code = await supervised.wait()
        await self._retire(name, supervised, code)

    async def _retire(self, name: str, supervised, code: int) -> None:
        monitor = None
        current = self.ledger.process_of(name)
        if current is supervised:
            monitor = self.ledger.liveness_monitor_of(name)
        self.ledger.mark_exited(name, supervised.pid, code, stopped=supervised.stop_requested)
        if monitor is not None:
            await monitor.stop()

    async def wait_for_exit(self, name: str, supervised, timeout: float | None) -> int:
        """Wait for a process without ever killing it; TimeoutError leaves it running."""
        code = await asyncio.wait_for(asyncio.shield(supervised.wait()), timeout=timeout)
        await self._retire(name, supervised, code)
        return code

    async def stop(self, name: str) -> str:
        """Terminate a module and report what happened.

        Returns one of STOP_SIGNALLED, STOP_ALREADY_STOPPED, STOP_ALREADY_EXITED.
        Returns only once the process has exited.
        """
        record = self.ledger.get(name)
        supervised = self.ledger.process_of(name)
        if record is None or supervised is None:
            raise KeyError(name)
        if record.status == STOPPED:
            return STOP_ALREADY_STOPPED
        if record.status == EXITED:
            return STOP_ALREADY_EXITED

        monitor = self.ledger.liveness_monitor_of(name)
        if monitor is not None:
            await monitor.stop()
        signalled = await terminate_process(supervised, timeout=self.config.stop_timeout)
        self.ledger.mark_exited(name, supervised.pid, supervised.returncode, stopped=signalled)
        return STOP_SIGNALLED if signalled else STOP_ALREADY_EXITED

    async def stop_all(self) -> list[str]:
        """Stop every running module; used on daemon shutdown and 'down'."""
        names = [r.name for r in self.ledger.snapshot() if r.status == RUNNING]
        for name in names:
            await self.stop(name)
        return names

    async def close(self) -> None:
        await self.stop_all()
        for watcher in list(self._watchers):
            watcher.cancel()
        if self._watchers:
            await asyncio.gather(*self._watchers, return_exceptions=True)
