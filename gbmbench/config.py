"""Simulation parameters shared by the scalar and parallel backends."""
from __future__ import annotations

from dataclasses import dataclass, replace
import math
import numbers

from .errors import InvalidParameters

TRADING_DAYS_PER_YEAR = 252
DT = 1.0 / TRADING_DAYS_PER_YEAR


def _as_float(value: float, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameters(f"{name} must be a real number, got {value!r}.")
    result = float(value)
    if not math.isfinite(result):
        raise InvalidParameters(f"{name} must be finite, got {value!r}.")
    return result


def _as_int(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameters(f"{name} must be an integer, got {value!r}.")
    return int(value)


@dataclass(frozen=True)
class SimulationParameters:
    """Immutable input contract for one Monte Carlo run.

    ``average_return`` and ``volatility`` are annualised; every step advances
    time by the fixed trading-day fraction :data:`DT`.
    """

    entry_price: float
    average_return: float
    volatility: float
    days: int
    path_count: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "entry_price", _as_float(self.entry_price, "entry_price"))
        object.__setattr__(self, "average_return", _as_float(self.average_return, "average_return"))
        object.__setattr__(self, "volatility", _as_float(self.volatility, "volatility"))
        object.__setattr__(self, "days", _as_int(self.days, "days"))
        object.__setattr__(self, "path_count", _as_int(self.path_count, "path_count"))
        self.validate()

    def validate(self) -> None:
        """Raise :class:`InvalidParameters` if any bound is violated."""
        if not self.entry_price > 0:
            raise InvalidParameters("Entry price must be positive.")
        if self.volatility < 0:
            raise InvalidParameters("Volatility must be non-negative.")
        if self.days < 1:
            raise InvalidParameters("Number of days must be at least 1.")
        if self.path_count < 1:
            raise InvalidParameters("Number of paths must be at least 1.")

    @property
    def dt(self) -> float:
        return DT

    def with_path_count(self, path_count: int) -> "SimulationParameters":
        return replace(self, path_count=path_count)


def build_default_parameters(**overrides: float) -> SimulationParameters:
    """Factory for the stock scenario: 100.0 entry, 10% drift, 20% vol, one trading year."""
    values: dict[str, float] = {
        "entry_price": 100.0,
        "average_return": 0.1,
        "volatility": 0.2,
        "days": TRADING_DAYS_PER_YEAR,
        "path_count": 10000,
    }
    unknown = set(overrides) - set(values)
    if unknown:
        raise TypeError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
    values.update(overrides)
    return SimulationParameters(**values)
