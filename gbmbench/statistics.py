"""Monte Carlo summary statistics over terminal prices."""
from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np
import torch


@dataclass
class MonteCarloSummary:
    mean: float
    standard_deviation: float
    quantile_05: float
    quantile_95: float
    confidence_interval: tuple[float, float]


def summarize_terminal_distribution(terminal: torch.Tensor | np.ndarray) -> MonteCarloSummary:
    """Summarise one terminal price per path; works for either backend's output."""
    values = torch.as_tensor(terminal).detach().to(device="cpu", dtype=torch.float64).reshape(-1)
    if values.numel() == 0:
        raise ValueError("Cannot summarise an empty set of terminal prices.")
    mean = values.mean()
    std = values.std(unbiased=True) if values.numel() > 1 else torch.zeros((), dtype=values.dtype)
    quantiles = torch.quantile(values, torch.tensor([0.05, 0.95], dtype=values.dtype))
    stderr = std / math.sqrt(values.numel())
    ci_low = mean - 1.96 * stderr
    ci_high = mean + 1.96 * stderr
    return MonteCarloSummary(
        mean=float(mean),
        standard_deviation=float(std),
        quantile_05=float(quantiles[0]),
        quantile_95=float(quantiles[1]),
        confidence_interval=(float(ci_low), float(ci_high)),
    )
