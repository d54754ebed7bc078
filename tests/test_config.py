import dataclasses
import math

import pytest

from gbmbench.config import DT, SimulationParameters, build_default_parameters
from gbmbench.errors import InvalidParameters


def test_defaults_match_stock_scenario():
    params = build_default_parameters()
    assert params.entry_price == 100.0
    assert params.average_return == 0.1
    assert params.volatility == 0.2
    assert params.days == 252
    assert params.path_count == 10000


def test_dt_is_fixed_trading_day_fraction():
    params = build_default_parameters(days=5)
    assert params.dt == DT == pytest.approx(1.0 / 252.0)


@pytest.mark.parametrize(
    "overrides",
    [
        {"days": 0},
        {"path_count": 0},
        {"path_count": -3},
        {"entry_price": 0.0},
        {"entry_price": -1.0},
        {"volatility": -0.01},
        {"average_return": math.nan},
        {"volatility": math.inf},
        {"days": 2.5},
        {"path_count": True},
    ],
)
def test_invalid_parameters_rejected(overrides):
    with pytest.raises(InvalidParameters):
        build_default_parameters(**overrides)


def test_invalid_parameters_is_value_error():
    with pytest.raises(ValueError):
        build_default_parameters(days=0)


def test_zero_volatility_allowed():
    params = build_default_parameters(volatility=0.0)
    assert params.volatility == 0.0


def test_integer_prices_coerced_to_float():
    params = SimulationParameters(entry_price=100, average_return=0, volatility=0, days=1, path_count=1)
    assert isinstance(params.entry_price, float)
    assert isinstance(params.average_return, float)


def test_parameters_are_immutable():
    params = build_default_parameters()
    with pytest.raises(dataclasses.FrozenInstanceError):
        params.days = 10


def test_with_path_count_copies_and_validates():
    params = build_default_parameters()
    resized = params.with_path_count(1000)
    assert resized.path_count == 1000
    assert resized.days == params.days
    assert params.path_count == 10000
    with pytest.raises(InvalidParameters):
        params.with_path_count(0)


def test_unknown_override_rejected():
    with pytest.raises(TypeError):
        build_default_parameters(horizon=1.0)
