"""Process supervisor: spawn, signal and reap service and task processes."""

from flotilla.supervisor.manager import (
    STOP_ALREADY_EXITED,
    STOP_ALREADY_STOPPED,
    STOP_SIGNALLED,
    Supervisor,
    fingerprint,
)
from flotilla.supervisor.process import (
    SupervisedProcess,
    spawn_process,
    terminate_process,
)

__all__ = [
    "STOP_ALREADY_EXITED",
    "STOP_ALREADY_STOPPED",
    "STOP_SIGNALLED",
    "SupervisedProcess",
    "Supervisor",
    "fingerprint",
    "spawn_process",
    "terminate_process",
]
