import matplotlib

matplotlib.use("Agg")

import pytest
import torch

from gbmbench.config import SimulationParameters
from gbmbench.device import ComputeDevice


@pytest.fixture
def cpu_device() -> ComputeDevice:
    return ComputeDevice("cpu")


@pytest.fixture
def seeded_generator() -> torch.Generator:
    generator = torch.Generator()
    generator.manual_seed(1234)
    return generator


@pytest.fixture
def small_params() -> SimulationParameters:
    return SimulationParameters(
        entry_price=100.0,
        average_return=0.1,
        volatility=0.2,
        days=20,
        path_count=50,
    )
