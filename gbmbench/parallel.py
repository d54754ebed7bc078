"""Data-parallel GBM backend: one lane per path, dispatched in groups of 64."""
from __future__ import annotations

import asyncio
import time
from typing import Optional

import numpy as np

from .config import SimulationParameters
from .device import BufferUsage, ComputeDevice, DeviceBuffer
from .errors import MapError
from .kernels import GBM_KERNEL_SOURCE, LANE_GROUP_SIZE, KernelCache, dispatch_group_count
from .results import FinalPriceBuffer

FLOAT32_BYTES = 4


def pack_parameters(params: SimulationParameters) -> np.ndarray:
    """Uniform block layout read by the kernel: entry price, return, volatility, days."""
    return np.array(
        [params.entry_price, params.average_return, params.volatility, params.days],
        dtype=np.float32,
    )


class ParallelSimulationEngine:
    """Runs the GBM kernel on a :class:`ComputeDevice` and reads back terminal prices.

    Only the final price of each lane leaves the device; intermediate steps
    stay in lane-local registers for the whole kernel loop.
    """

    def __init__(
        self,
        kernel_cache: KernelCache | None = None,
        *,
        map_timeout: Optional[float] = None,
        kernel_source: str = GBM_KERNEL_SOURCE,
    ) -> None:
        if map_timeout is not None and map_timeout <= 0:
            raise ValueError("Map timeout must be positive.")
        self.kernel_cache = kernel_cache if kernel_cache is not None else KernelCache()
        self.map_timeout = map_timeout
        self.kernel_source = kernel_source

    async def run(self, device: ComputeDevice, params: SimulationParameters) -> tuple[FinalPriceBuffer, float]:
        """Return one float32 terminal price per path plus the elapsed milliseconds."""
        params.validate()
        with device.exclusive():
            start = time.perf_counter()
            prices = await self._simulate(device, params)
            elapsed_ms = (time.perf_counter() - start) * 1000.0
        return FinalPriceBuffer(prices), elapsed_ms

    async def _simulate(self, device: ComputeDevice, params: SimulationParameters) -> np.ndarray:
        size = params.path_count * FLOAT32_BYTES
        transient: list[DeviceBuffer] = []
        try:
            results = device.create_buffer(
                size, BufferUsage.STORAGE | BufferUsage.COPY_SRC, label="results"
            )
            transient.append(results)
            # Allocated up front so a device lost during dispatch surfaces when mapping.
            readback = device.create_buffer(
                size, BufferUsage.MAP_READ | BufferUsage.COPY_DST, label="readback"
            )
            transient.append(readback)

            param_data = pack_parameters(params)
            param_buffer = device.create_buffer(
                param_data.nbytes, BufferUsage.UNIFORM | BufferUsage.COPY_DST, label="params"
            )
            transient.append(param_buffer)
            device.queue.write_buffer(param_buffer, 0, param_data)

            kernel = self.kernel_cache.get_or_compile(
                device, self.kernel_source, workgroup_size=LANE_GROUP_SIZE
            )

            encoder = device.create_command_encoder()
            compute = encoder.begin_compute_pass()
            compute.set_kernel(kernel)
            compute.set_binding(0, param_buffer)
            compute.set_binding(1, results)
            compute.dispatch_workgroups(dispatch_group_count(params.path_count, kernel.workgroup_size))
            compute.end()
            device.queue.submit([encoder.finish()])

            encoder = device.create_command_encoder()
            encoder.copy_buffer_to_buffer(results, 0, readback, 0, size)
            device.queue.submit([encoder.finish()])

            await self._map(readback)
            try:
                return readback.get_mapped_range().view(np.float32).copy()
            finally:
                readback.unmap()
        finally:
            for buffer in transient:
                buffer.destroy()

    async def _map(self, buffer: DeviceBuffer) -> None:
        if self.map_timeout is None:
            await buffer.map_async()
            return
        try:
            await asyncio.wait_for(buffer.map_async(), timeout=self.map_timeout)
        except asyncio.TimeoutError as exc:
            raise MapError(f"Mapping {buffer.label!r} timed out after {self.map_timeout}s.") from exc
