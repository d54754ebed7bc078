"""Visualization utilities for simulation and benchmark results."""
from __future__ import annotations

from typing import Tuple

import matplotlib.pyplot as plt
import numpy as np
import torch

from .results import BenchmarkReport, FinalPriceBuffer, PathResult


__all__ = (
    "project_final_prices",
    "FinalPriceRenderer",
    "plot_sample_paths",
    "plot_terminal_distribution",
    "plot_benchmark",
)

DEFAULT_PRICE_DIVISOR = 200.0


def project_final_prices(
    prices: FinalPriceBuffer | np.ndarray,
    path_count: int,
    *,
    price_divisor: float = DEFAULT_PRICE_DIVISOR,
) -> Tuple[np.ndarray, np.ndarray]:
    """Map lane ``i`` to clip space: x spreads lanes over [-1, 1), y scales price."""
    data = prices.prices if isinstance(prices, FinalPriceBuffer) else np.asarray(prices, dtype=np.float32)
    if path_count < 1:
        raise ValueError("Path count must be positive.")
    if data.shape[0] < path_count:
        raise ValueError(f"Buffer holds {data.shape[0]} prices, expected {path_count}.")
    if price_divisor <= 0:
        raise ValueError("Price divisor must be positive.")

    lanes = np.arange(path_count, dtype=np.float32)
    x = (lanes / np.float32(path_count)) * 2.0 - 1.0
    y = data[:path_count] / np.float32(price_divisor) - 1.0
    return x.astype(np.float32), y.astype(np.float32)


class FinalPriceRenderer:
    """Draws one point per lane, the way the parallel backend's output is displayed."""

    background = (0.1, 0.1, 0.1)
    point_color = (0.2, 0.8, 1.0)

    def __init__(self, *, price_divisor: float = DEFAULT_PRICE_DIVISOR, point_size: float = 2.0) -> None:
        self.price_divisor = price_divisor
        self.point_size = point_size

    def render(
        self,
        buffer: FinalPriceBuffer,
        path_count: int,
        *,
        ax: plt.Axes | None = None,
    ) -> Tuple[plt.Figure, plt.Axes]:
        if ax is None:
            fig, ax = plt.subplots()
        else:
            fig = ax.figure

        x, y = project_final_prices(buffer, path_count, price_divisor=self.price_divisor)
        fig.set_facecolor(self.background)
        ax.set_facecolor(self.background)
        ax.scatter(x, y, s=self.point_size, color=self.point_color, linewidths=0)
        ax.set_xlim(-1.0, 1.0)
        ax.set_ylim(-1.0, 1.0)
        ax.set_xticks([])
        ax.set_yticks([])
        ax.set_title(f"Terminal prices ({path_count} lanes)", color="white")
        return fig, ax


def plot_sample_paths(
    result: PathResult,
    *,
    num_paths: int = 10,
    ax: plt.Axes | None = None,
) -> Tuple[plt.Figure, plt.Axes]:
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    num_paths = min(num_paths, result.path_count)
    time = result.time_grid.detach().cpu().numpy()
    sample = result.prices[:num_paths].detach().cpu().numpy()
    for path in sample:
        ax.plot(time, path, linewidth=1.1, alpha=0.8)
    ax.set_xlabel("Time (years)")
    ax.set_ylabel("Asset price")
    ax.set_title("Sample GBM paths (scalar backend)")
    ax.grid(True, alpha=0.2)
    return fig, ax


def plot_terminal_distribution(
    terminal_prices: torch.Tensor | np.ndarray,
    *,
    bins: int = 60,
    ax: plt.Axes | None = None,
) -> Tuple[plt.Figure, plt.Axes]:
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    data = torch.as_tensor(terminal_prices).detach().cpu().numpy()
    ax.hist(data, bins=bins, alpha=0.75, color="#1f77b4", edgecolor="black")
    ax.set_xlabel("Terminal price")
    ax.set_ylabel("Frequency")
    ax.set_title("Terminal distribution (Monte Carlo)")
    ax.grid(True, alpha=0.2)
    return fig, ax


def plot_benchmark(
    report: BenchmarkReport,
    *,
    ax: plt.Axes | None = None,
) -> Tuple[plt.Figure, plt.Axes]:
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    labels = [str(record.path_count) for record in report.records]
    positions = np.arange(len(labels))
    width = 0.38
    scalar = [record.scalar_time_ms for record in report.records]
    parallel = [record.parallel_time_ms for record in report.records]
    ax.bar(positions - width / 2, scalar, width, label="scalar", color="#ff7f0e")
    ax.bar(positions + width / 2, parallel, width, label="parallel", color="#1f77b4")
    for pos, record in zip(positions, report.records):
        ax.annotate(
            f"x{record.speedup_ratio:.1f}",
            (pos, max(record.scalar_time_ms, record.parallel_time_ms)),
            ha="center",
            va="bottom",
        )
    ax.set_xticks(positions)
    ax.set_xticklabels(labels)
    ax.set_xlabel("Paths")
    ax.set_ylabel("Elapsed time (ms)")
    ax.set_title("Scalar vs parallel backend")
    ax.legend()
    ax.grid(True, axis="y", alpha=0.2)
    return fig, ax
