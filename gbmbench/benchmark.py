"""Scalar versus parallel timing comparison over several path counts."""
from __future__ import annotations

from typing import Sequence

from .config import SimulationParameters, build_default_parameters
from .device import ComputeDevice
from .errors import SimulationError
from .parallel import ParallelSimulationEngine
from .results import BenchmarkFailure, BenchmarkRecord, BenchmarkReport
from .scalar import ScalarSimulationEngine

DEFAULT_SIZES: tuple[int, ...] = (1000, 10000)


class BenchmarkRunner:
    """Times both engines, one after the other, for each requested path count."""

    def __init__(
        self,
        scalar_engine: ScalarSimulationEngine | None = None,
        parallel_engine: ParallelSimulationEngine | None = None,
        *,
        base_parameters: SimulationParameters | None = None,
    ) -> None:
        self.scalar_engine = scalar_engine or ScalarSimulationEngine()
        self.parallel_engine = parallel_engine or ParallelSimulationEngine()
        self.base_parameters = base_parameters or build_default_parameters()

    async def run(self, device: ComputeDevice, sizes: Sequence[int] = DEFAULT_SIZES) -> BenchmarkReport:
        report = BenchmarkReport()
        for size in sizes:
            backend = "parameters"
            try:
                params = self.base_parameters.with_path_count(size)
                backend = "scalar"
                _, scalar_ms = self.scalar_engine.run(params)
                backend = "parallel"
                _, parallel_ms = await self.parallel_engine.run(device, params)
            except SimulationError as exc:
                report.failures.append(BenchmarkFailure(path_count=size, backend=backend, error=str(exc)))
                continue
            report.records.append(BenchmarkRecord.from_timings(size, scalar_ms, parallel_ms))
        return report
