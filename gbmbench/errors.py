"""Exception types raised by the simulation backends."""
from __future__ import annotations


class SimulationError(Exception):
    """Base class for every failure surfaced by gbmbench."""


class InvalidParameters(SimulationError, ValueError):
    """Simulation parameters are out of bounds; raised before any allocation."""


class DeviceUnavailable(SimulationError, RuntimeError):
    """No compute-capable device could be acquired."""


class AllocationError(SimulationError):
    """The device rejected a buffer allocation."""


class MapError(SimulationError):
    """A host mapping of device memory failed or was invalidated."""


class KernelCompileError(SimulationError):
    """Kernel source text failed to compile."""


class DeviceBusy(SimulationError):
    """Another parallel run is already in flight on the same device handle."""
