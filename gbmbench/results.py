"""Result containers for the scalar and parallel backends."""
from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Iterator

import numpy as np
import torch

from .config import DT


@dataclass
class PathResult:
    """Full trajectories from the scalar backend, shaped ``(path_count, days)``."""

    prices: torch.Tensor
    dt: float = DT

    @property
    def path_count(self) -> int:
        return int(self.prices.shape[0])

    @property
    def days(self) -> int:
        return int(self.prices.shape[1])

    @property
    def terminal_prices(self) -> torch.Tensor:
        return self.prices[:, -1]

    @property
    def time_grid(self) -> torch.Tensor:
        steps = torch.arange(1, self.days + 1, dtype=self.prices.dtype)
        return steps * self.dt

    def __len__(self) -> int:
        return self.path_count


@dataclass
class FinalPriceBuffer:
    """Terminal price per lane, copied out of device memory into host memory."""

    prices: np.ndarray

    def __post_init__(self) -> None:
        if self.prices.dtype != np.float32 or self.prices.ndim != 1:
            raise ValueError("Final prices must be a flat float32 array.")

    @property
    def path_count(self) -> int:
        return int(self.prices.shape[0])

    def as_tensor(self) -> torch.Tensor:
        return torch.from_numpy(self.prices)

    def __len__(self) -> int:
        return self.path_count


@dataclass(frozen=True)
class BenchmarkRecord:
    path_count: int
    scalar_time_ms: float
    parallel_time_ms: float
    speedup_ratio: float

    @classmethod
    def from_timings(cls, path_count: int, scalar_time_ms: float, parallel_time_ms: float) -> "BenchmarkRecord":
        ratio = scalar_time_ms / parallel_time_ms if parallel_time_ms > 0 else math.inf
        return cls(
            path_count=path_count,
            scalar_time_ms=scalar_time_ms,
            parallel_time_ms=parallel_time_ms,
            speedup_ratio=ratio,
        )


@dataclass(frozen=True)
class BenchmarkFailure:
    """One benchmark size that did not complete."""

    path_count: int
    backend: str
    error: str


@dataclass
class BenchmarkReport:
    records: list[BenchmarkRecord] = field(default_factory=list)
    failures: list[BenchmarkFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __iter__(self) -> Iterator[BenchmarkRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)
