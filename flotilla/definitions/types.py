"""Definition dataclass types: services, tasks, checks, groups, shells and probes."""

import shlex
import signal
from dataclasses import dataclass, field
from typing import ClassVar

TERMINATION_SIGNALS = {
    "KILL": signal.SIGKILL,
    "TERM": signal.SIGTERM,
    "INT": signal.SIGINT,
}

DEFAULT_PROBE_RETRIES = 5


@dataclass
class CommandSpec:
    """What to execute: a literal argv or a shell string, plus where."""

    command: list[str] | None = None
    shell: str | None = None
    working_dir: str | None = None

    @property
    def display(self) -> str:
        """Human-readable command line."""
        if self.shell is not None:
            return self.shell
        return shlex.join(self.command or [])


@dataclass
class ExecProbe:
    """Succeeds when the command exits with code 0."""

    type: ClassVar[str] = "exec"

    run: CommandSpec = field(default_factory=CommandSpec)
    retries: int = DEFAULT_PROBE_RETRIES


@dataclass
class NetProbe:
    """Succeeds when a TCP connection to host:port is established."""

    type: ClassVar[str] = "net"

    port: int = 0
    host: str = "127.0.0.1"
    retries: int = DEFAULT_PROBE_RETRIES


@dataclass
class LogLineProbe:
    """Succeeds once a line matching line_regex shows up in the service log."""

    type: ClassVar[str] = "log_line"

    line_regex: str = ""
    retries: int = DEFAULT_PROBE_RETRIES


Probe = ExecProbe | NetProbe | LogLineProbe


@dataclass
class ProcessSpec:
    """Everything the supervisor needs to spawn a service or task."""

    run: CommandSpec = field(default_factory=CommandSpec)
    environment: dict[str, str] = field(default_factory=dict)
    environment_sets: dict[str, dict[str, str]] = field(default_factory=dict)
    log_file_path: str | None = None
    termination_signal: str = "KILL"

    @property
    def signal(self) -> signal.Signals:
        return TERMINATION_SIGNALS[self.termination_signal]


@dataclass
class Service:
    """Long-running supervised process."""

    kind: ClassVar[str] = "Service"

    name: str
    process: ProcessSpec = field(default_factory=ProcessSpec)
    dependencies: list[str] = field(default_factory=list)
    ordered_dependencies: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)
    checks: list[str] = field(default_factory=list)
    post: list[str] = field(default_factory=list)
    readiness_probe: Probe | None = None
    liveness_probe: Probe | None = None
    always_await_readiness_probe: bool = True


@dataclass
class Task:
    """Run-to-completion process with an optional timeout in seconds."""

    kind: ClassVar[str] = "Task"

    name: str
    process: ProcessSpec = field(default_factory=ProcessSpec)
    dependencies: list[str] = field(default_factory=list)
    ordered_dependencies: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)
    checks: list[str] = field(default_factory=list)
    post: list[str] = field(default_factory=list)
    timeout: float | None = None


@dataclass
class SuggestedFix:
    message: str
    run: CommandSpec | None = None


@dataclass
class Check:
    """Precondition probe, executed at most once per deploy invocation."""

    kind: ClassVar[str] = "Check"

    name: str
    about: str
    help: str
    run: CommandSpec = field(default_factory=CommandSpec)
    suggested_fix: SuggestedFix | None = None


@dataclass
class Group:
    """Named bundle of entities deployed together. Performs no action itself."""

    kind: ClassVar[str] = "Group"

    name: str
    dependencies: list[str] = field(default_factory=list)
    checks: list[str] = field(default_factory=list)


@dataclass
class Shell:
    """Interactive shell opened for a service by the ``shell`` command. Never deployed."""

    kind: ClassVar[str] = "Shell"

    name: str
    service: str
    shell_type: str = ""
    run: CommandSpec = field(default_factory=CommandSpec)
    environment: dict[str, str] = field(default_factory=dict)


def shell_name(service: str, shell_type: str = "") -> str:
    if shell_type:
        return f"{service}-{shell_type}-service-shell"
    return f"{service}-service-shell"


Entity = Service | Task | Check | Group | Shell

ENTITY_KINDS = {cls.kind: cls for cls in (Service, Task, Check, Group, Shell)}
