"""Compute kernel source, compilation and the per-device kernel cache."""
from __future__ import annotations

from dataclasses import dataclass
import hashlib
import math
from typing import Any, Callable

import torch

from .device import ComputeDevice
from .errors import KernelCompileError

LANE_GROUP_SIZE = 64

# Grid of group_count * group_size lanes; lane i owns results[i]. The uniform
# block holds [entry_price, average_return, volatility, days] as float32.
GBM_KERNEL_SOURCE = """
def main(params: Tensor, results: Tensor, group_count: int, group_size: int):
    path_count = results.size(0)
    lanes = torch.arange(group_count * group_size, device=results.device)
    active = lanes[lanes < path_count]

    lane_seed = active.to(torch.float32)
    price = torch.zeros_like(lane_seed) + params[0]
    average_return = params[1]
    volatility = params[2]
    days = int(params[3])
    dt = 1.0 / 252.0
    sqrt_dt = dt ** 0.5

    for step in range(days):
        noise = torch.sin((lane_seed + float(step)) * 12.9898) * 43758.5453
        rand = noise - torch.floor(noise)
        growth = average_return * dt + volatility * sqrt_dt * (rand - 0.5) + 1.0
        price = price * growth

    results[active] = price
"""


def dispatch_group_count(path_count: int, group_size: int = LANE_GROUP_SIZE) -> int:
    """Number of lane groups needed so every path gets a lane."""
    if group_size < 1:
        raise ValueError("Group size must be positive.")
    return math.ceil(path_count / group_size)


def source_hash(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ComputeKernel:
    """A compiled entry point plus the launch shape it was written for."""

    function: Callable[..., Any]
    entry_point: str
    source_hash: str
    workgroup_size: int = LANE_GROUP_SIZE
    binding_count: int = 2

    def __call__(self, *bindings: torch.Tensor, group_count: int) -> None:
        self.function(*bindings, group_count, self.workgroup_size)


def compile_kernel(
    source: str,
    entry_point: str = "main",
    *,
    workgroup_size: int = LANE_GROUP_SIZE,
) -> ComputeKernel:
    """Compile TorchScript source text; raise :class:`KernelCompileError` on failure."""
    try:
        unit = torch.jit.CompilationUnit(source)
    except (RuntimeError, SyntaxError) as exc:
        raise KernelCompileError(f"Kernel failed to compile: {exc}") from exc
    function = getattr(unit, entry_point, None)
    if function is None:
        raise KernelCompileError(f"Kernel source defines no entry point {entry_point!r}.")
    return ComputeKernel(
        function=function,
        entry_point=entry_point,
        source_hash=source_hash(source),
        workgroup_size=workgroup_size,
    )


class KernelCache:
    """Compiled kernels keyed by ``(device id, source hash, entry point)``.

    Compiling is a pure function of the source text, so a racing second
    compilation stores an equivalent kernel under the same key.
    """

    def __init__(self) -> None:
        self._kernels: dict[tuple[int, str, str], ComputeKernel] = {}

    def __len__(self) -> int:
        return len(self._kernels)

    def __contains__(self, key: object) -> bool:
        return key in self._kernels

    @staticmethod
    def key_for(device: ComputeDevice, source: str, entry_point: str = "main") -> tuple[int, str, str]:
        return (device.id, source_hash(source), entry_point)

    def get_or_compile(
        self,
        device: ComputeDevice,
        source: str,
        entry_point: str = "main",
        *,
        workgroup_size: int = LANE_GROUP_SIZE,
    ) -> ComputeKernel:
        if workgroup_size > device.limits.max_workgroup_size:
            raise KernelCompileError(
                f"Workgroup size {workgroup_size} exceeds device limit {device.limits.max_workgroup_size}."
            )
        key = self.key_for(device, source, entry_point)
        kernel = self._kernels.get(key)
        if kernel is None:
            kernel = compile_kernel(source, entry_point, workgroup_size=workgroup_size)
            self._kernels[key] = kernel
        return kernel

    def evict(self, device: ComputeDevice) -> int:
        """Drop every kernel compiled for ``device``; returns how many were removed."""
        stale = [key for key in self._kernels if key[0] == device.id]
        for key in stale:
            del self._kernels[key]
        return len(stale)
