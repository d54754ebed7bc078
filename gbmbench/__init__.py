"""Monte Carlo GBM simulation on a scalar and a data-parallel backend."""
from .benchmark import BenchmarkRunner
from .config import DT, SimulationParameters, build_default_parameters
from .device import BufferUsage, ComputeDevice, DeviceLimits
from .errors import (
    AllocationError,
    DeviceBusy,
    DeviceUnavailable,
    InvalidParameters,
    KernelCompileError,
    MapError,
    SimulationError,
)
from .history import RunHistory
from .kernels import LANE_GROUP_SIZE, KernelCache
from .parallel import ParallelSimulationEngine
from .results import BenchmarkFailure, BenchmarkRecord, BenchmarkReport, FinalPriceBuffer, PathResult
from .runtime import acquire_device
from .scalar import ScalarSimulationEngine
from .statistics import MonteCarloSummary, summarize_terminal_distribution

__all__ = [
    "DT",
    "LANE_GROUP_SIZE",
    "SimulationParameters",
    "build_default_parameters",
    "ScalarSimulationEngine",
    "ParallelSimulationEngine",
    "BenchmarkRunner",
    "ComputeDevice",
    "DeviceLimits",
    "BufferUsage",
    "KernelCache",
    "acquire_device",
    "PathResult",
    "FinalPriceBuffer",
    "BenchmarkRecord",
    "BenchmarkFailure",
    "BenchmarkReport",
    "RunHistory",
    "MonteCarloSummary",
    "summarize_terminal_distribution",
    "SimulationError",
    "InvalidParameters",
    "DeviceUnavailable",
    "AllocationError",
    "MapError",
    "KernelCompileError",
    "DeviceBusy",
]
