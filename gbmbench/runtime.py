"""Runtime helpers shared by the CLI and the interactive wizard."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import torch

from .device import ComputeDevice, DeviceLimits
from .errors import DeviceUnavailable
from .history import RunHistory
from .kernels import KernelCache
from .parallel import ParallelSimulationEngine
from .scalar import ScalarSimulationEngine


@dataclass(frozen=True)
class SimulationContext:
    """Holds the acquired device, both engines and the run history for a session."""

    device: ComputeDevice
    scalar_engine: ScalarSimulationEngine
    parallel_engine: ParallelSimulationEngine
    kernel_cache: KernelCache
    save_dir: Path
    history: RunHistory = field(default_factory=RunHistory)


def resolve_device(device_arg: str) -> torch.device:
    if device_arg == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")
    try:
        device = torch.device(device_arg)
    except RuntimeError as exc:
        raise DeviceUnavailable(f"Unknown device {device_arg!r}.") from exc
    if device.type == "cuda" and not torch.cuda.is_available():
        raise DeviceUnavailable("CUDA requested but not available.")
    if device.type not in {"cpu", "cuda"}:
        raise DeviceUnavailable(f"Device type {device.type!r} has no compute support.")
    return device


def acquire_device(device_arg: str = "auto", *, max_buffer_size: Optional[int] = None) -> ComputeDevice:
    """Return a compute-capable device handle or raise :class:`DeviceUnavailable`."""
    torch_device = resolve_device(device_arg)
    limits = DeviceLimits() if max_buffer_size is None else DeviceLimits(max_buffer_size=max_buffer_size)
    return ComputeDevice(torch_device, limits=limits)


def manual_seed_or_random(generator: torch.Generator, seed: Optional[int]) -> None:
    if seed is not None:
        generator.manual_seed(seed)
    else:
        generator.manual_seed(torch.seed())


def create_simulation_context(
    *,
    device: str | ComputeDevice = "auto",
    seed: Optional[int] = None,
    max_buffer_size: Optional[int] = None,
    map_timeout: Optional[float] = None,
    save_dir: Path = Path("figures"),
    history: Optional[RunHistory] = None,
) -> SimulationContext:
    if isinstance(device, ComputeDevice):
        compute_device = device
    else:
        compute_device = acquire_device(device, max_buffer_size=max_buffer_size)

    generator = torch.Generator()
    manual_seed_or_random(generator, seed)

    kernel_cache = KernelCache()
    return SimulationContext(
        device=compute_device,
        scalar_engine=ScalarSimulationEngine(generator=generator),
        parallel_engine=ParallelSimulationEngine(kernel_cache, map_timeout=map_timeout),
        kernel_cache=kernel_cache,
        save_dir=save_dir.expanduser(),
        history=history if history is not None else RunHistory(),
    )


def fmt(value: float) -> str:
    return f"{value:.6f}"
