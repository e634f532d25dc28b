"""In-memory deployment ledger: what ran during this daemon lifetime and how it is doing."""

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

RUNNING = "running"
STOPPED = "stopped"
EXITED = "exited"

LIVENESS_UNKNOWN = "-"
LIVENESS_HEALTHY = "healthy"
LIVENESS_FAILING = "failing"

PS_COLUMN_WIDTH = 10


@dataclass
class ModuleRecord:
    """Latest known state of one service or task."""

    name: str
    kind: str
    pid: int
    log_file_path: str
    working_dir: str | None = None
    environment: dict[str, str] = field(default_factory=dict)
    fingerprint: tuple | None = None
    status: str = RUNNING
    liveness: str = LIVENESS_UNKNOWN
    started_at: float = field(default_factory=time.time)
    exited_at: float | None = None
    exit_code: int | None = None
    # service: spawned and ready; task: finished with exit code 0
    succeeded: bool = False
    process: object | None = field(default=None, repr=False, compare=False)
    liveness_monitor: object | None = field(default=None, repr=False, compare=False)

    @property
    def since(self) -> float:
        if self.status == RUNNING or self.exited_at is None:
            return self.started_at
        return self.exited_at

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind,
            "pid": self.pid,
            "status": self.status,
            "liveness": self.liveness,
            "since": self.since,
            "exit_code": self.exit_code,
            "log_file_path": self.log_file_path,
            "working_dir": self.working_dir,
            "environment": dict(self.environment),
        }


class Ledger:
    """Records keyed by name, guarded by a lock.

    Every mutation identifies the process by pid so that a late exit
    notification for a replaced process never clobbers the new record.
    Readers get copies, never the live records.
    """

    def __init__(self):
        self._records: dict[str, ModuleRecord] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._records

    def get(self, name: str) -> ModuleRecord | None:
        """Copy of the record for name, without runtime handles."""
        with self._lock:
            record = self._records.get(name)
            return _detached(record) if record else None

    def process_of(self, name: str):
        with self._lock:
            record = self._records.get(name)
            return record.process if record else None

    def liveness_monitor_of(self, name: str):
        with self._lock:
            record = self._records.get(name)
            return record.liveness_monitor if record else None

    def record_spawn(self, record: ModuleRecord) -> None:
        with self._lock:
            self._records[record.name] = record
        logger.debug(f"Ledger: {record.kind} {record.name} running as pid {record.pid}")

    def attach_liveness_monitor(self, name: str, pid: int, monitor) -> None:
        with self._lock:
            record = self._current(name, pid)
            if record:
                record.liveness_monitor = monitor

    def mark_succeeded(self, name: str, pid: int) -> None:
        with self._lock:
            record = self._current(name, pid)
            if record:
                record.succeeded = True

    def mark_exited(self, name: str, pid: int, exit_code: int, stopped: bool = False) -> None:
        with self._lock:
            record = self._current(name, pid)
            if record is None or record.status != RUNNING:
                return
            record.status = STOPPED if stopped else EXITED
            record.exit_code = exit_code
            record.exited_at = time.time()
            record.liveness = LIVENESS_UNKNOWN
            record.liveness_monitor = None
        logger.info(f"{name} (pid {pid}) {'stopped' if stopped else 'exited'} with code {exit_code}")

    def set_liveness(self, name: str, pid: int, liveness: str) -> None:
        with self._lock:
            record = self._current(name, pid)
            if record and record.status == RUNNING:
                record.liveness = liveness

    def snapshot(self) -> list[ModuleRecord]:
        """Consistent copy of every record, in first-deployed order."""
        with self._lock:
            return [_detached(r) for r in self._records.values()]

    def running_processes(self) -> list:
        with self._lock:
            return [r.process for r in self._records.values() if r.status == RUNNING and r.process is not None]

    def _current(self, name: str, pid: int) -> ModuleRecord | None:
        record = self._records.get(name)
        if record is None or record.pid != pid:
            return None
        return record


def _detached(record: ModuleRecord) -> ModuleRecord:
    return dataclasses.replace(record, environment=dict(record.environment), process=None, liveness_monitor=None)


def humanize_since(seconds: float) -> str:
    """'now', '1 second ago', '5 minutes ago' ..."""
    seconds = int(seconds)
    if seconds < 1:
        return "now"
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60), ("second", 1)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "now"


def format_ps(records: list[ModuleRecord], now: float | None = None) -> str:
    """Fixed-width table: pid, name, liveness, status, since."""
    now = time.time() if now is None else now
    width = PS_COLUMN_WIDTH
    name_width = max([width] + [len(r.name) + 2 for r in records])
    lines = [f"{'pid':<{width}}{'name':<{name_width}}{'liveness':<{width}}{'status':<{width}}since"]
    for r in records:
        since = humanize_since(now - r.since)
        lines.append(f"{r.pid:<{width}}{r.name:<{name_width}}{r.liveness:<{width}}{r.status:<{width}}{since}")
    return "\n".join(lines)
