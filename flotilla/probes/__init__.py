"""Probe engine: readiness waits and liveness monitors."""

from flotilla.probes.kinds import ProbeContext, ProbeError, probe_once
from flotilla.probes.liveness import LivenessMonitor
from flotilla.probes.readiness import await_readiness

__all__ = [
    "LivenessMonitor",
    "ProbeContext",
    "ProbeError",
    "await_readiness",
    "probe_once",
]
