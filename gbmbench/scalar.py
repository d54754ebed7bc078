"""Sequential scalar GBM backend, used as the performance baseline."""
from __future__ import annotations

import math
import time

import torch

from .config import SimulationParameters
from .results import PathResult

_TWO_PI = 2.0 * math.pi


def box_muller(u1: float, u2: float) -> float:
    """Standard normal draw from two uniforms; ``u1`` must lie in (0, 1]."""
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(_TWO_PI * u2)


def _saturating_exp(x: float) -> float:
    # Finite inputs past the float range give inf, as the parallel kernel does.
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


class ScalarSimulationEngine:
    """Simulates GBM paths one price at a time with the exact log-normal step."""

    def __init__(self, generator: torch.Generator | None = None) -> None:
        if generator is None:
            generator = torch.Generator()
            generator.manual_seed(torch.seed())
        self.generator = generator

    def run(self, params: SimulationParameters) -> tuple[PathResult, float]:
        """Return every trajectory plus the elapsed milliseconds of the path loop."""
        params.validate()

        dt = params.dt
        drift = (params.average_return - 0.5 * params.volatility * params.volatility) * dt
        diffusion = params.volatility * math.sqrt(dt)
        days = params.days
        log_entry = math.log(params.entry_price)
        paths: list[list[float]] = []

        start = time.perf_counter()
        for _ in range(params.path_count):
            uniforms = torch.rand((days, 2), generator=self.generator, dtype=torch.float64).tolist()
            log_price = log_entry
            path: list[float] = []
            for u1, u2 in uniforms:
                # torch.rand samples [0, 1); reflect so log() never sees zero.
                z = box_muller(1.0 - u1, u2)
                log_price += drift + diffusion * z
                path.append(_saturating_exp(log_price))
            paths.append(path)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        prices = torch.tensor(paths, dtype=torch.float64)
        return PathResult(prices=prices, dt=dt), elapsed_ms
