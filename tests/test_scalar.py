import math

import pytest
import torch

from gbmbench.config import SimulationParameters, build_default_parameters
from gbmbench.errors import InvalidParameters
from gbmbench.scalar import ScalarSimulationEngine, box_muller


def test_box_muller_known_values():
    assert box_muller(1.0, 0.3) == 0.0
    assert box_muller(math.exp(-0.5), 0.0) == pytest.approx(1.0)
    assert box_muller(math.exp(-0.5), 0.5) == pytest.approx(-1.0)


def test_box_muller_tiny_uniform_is_finite():
    assert math.isfinite(box_muller(5e-324, 0.25))


def test_paths_have_expected_shape_and_positive_prices(small_params, seeded_generator):
    result, elapsed_ms = ScalarSimulationEngine(seeded_generator).run(small_params)
    assert result.prices.shape == (small_params.path_count, small_params.days)
    assert len(result) == small_params.path_count
    assert result.days == small_params.days
    assert torch.isfinite(result.prices).all()
    assert (result.prices > 0).all()
    assert elapsed_ms >= 0.0


def test_seeded_runs_are_identical(small_params):
    first = torch.Generator()
    first.manual_seed(99)
    second = torch.Generator()
    second.manual_seed(99)
    a, _ = ScalarSimulationEngine(first).run(small_params)
    b, _ = ScalarSimulationEngine(second).run(small_params)
    assert torch.equal(a.prices, b.prices)


def test_single_path_single_day(seeded_generator):
    params = SimulationParameters(entry_price=50.0, average_return=0.05, volatility=0.3, days=1, path_count=1)
    result, _ = ScalarSimulationEngine(seeded_generator).run(params)
    assert result.prices.shape == (1, 1)
    assert result.terminal_prices.shape == (1,)
    assert result.prices[0, 0] > 0


def test_zero_volatility_follows_deterministic_drift(seeded_generator):
    params = SimulationParameters(entry_price=100.0, average_return=0.1, volatility=0.0, days=10, path_count=3)
    result, _ = ScalarSimulationEngine(seeded_generator).run(params)
    steps = torch.arange(1, 11, dtype=torch.float64)
    expected = 100.0 * torch.exp(0.1 * params.dt * steps)
    for path in result.prices:
        assert torch.allclose(path, expected, rtol=1e-12)


def test_time_grid_spans_trading_days(small_params, seeded_generator):
    result, _ = ScalarSimulationEngine(seeded_generator).run(small_params)
    grid = result.time_grid
    assert grid.shape == (small_params.days,)
    assert grid[0].item() == pytest.approx(small_params.dt)
    assert grid[-1].item() == pytest.approx(small_params.days * small_params.dt)


def test_invalid_parameters_rejected_before_running(small_params, seeded_generator):
    object.__setattr__(small_params, "days", 0)
    with pytest.raises(InvalidParameters):
        ScalarSimulationEngine(seeded_generator).run(small_params)


def test_terminal_mean_tracks_drift(seeded_generator):
    params = SimulationParameters(entry_price=100.0, average_return=0.1, volatility=0.2, days=252, path_count=2000)
    result, _ = ScalarSimulationEngine(seeded_generator).run(params)
    # E[S_T] = S_0 * exp(mu * T) = 110.5; sample std error is about 0.5.
    assert result.terminal_prices.mean().item() == pytest.approx(100.0 * math.exp(0.1), abs=3.0)


def test_stock_scenario_end_to_end(seeded_generator):
    params = build_default_parameters()
    result, elapsed_ms = ScalarSimulationEngine(seeded_generator).run(params)
    assert result.prices.shape == (10000, 252)
    assert torch.isfinite(result.prices).all()
    assert (result.prices > 0).all()
    assert elapsed_ms >= 0.0


def test_extreme_drift_saturates_to_infinity(seeded_generator):
    params = SimulationParameters(entry_price=100.0, average_return=2.0e5, volatility=0.2, days=3, path_count=2)
    result, _ = ScalarSimulationEngine(seeded_generator).run(params)
    assert torch.isinf(result.prices[:, -1]).all()
    assert (result.prices > 0).all()
