from __future__ import annotations

from enum import Enum
from typing import List, Sequence, Union


class ScenarioType(str, Enum):
    PESSIMISTIC = "pessimistic"
    BASE = "base"
    OPTIMISTIC = "optimistic"


SCENARIO_ORDER = (ScenarioType.PESSIMISTIC, ScenarioType.BASE, ScenarioType.OPTIMISTIC)


class DCFVariant(str, Enum):
    FULL = "full_dcf"
    SIMPLIFIED = "simplified_dcf"
    FORWARD_LOOKING = "forward_looking_dcf"


AnnualRate = Union[float, List[float]]


def value_for_year(rate: AnnualRate, year_index: int) -> float:
    """Return the rate for a 0-based projection year; short lists repeat their last value."""
    if isinstance(rate, (int, float)):
        return float(rate)
    values: Sequence[float] = rate
    if not values:
        raise ValueError("empty rate schedule")
    if year_index < len(values):
        return float(values[year_index])
    return float(values[-1])


def scenario_pick(scenario: ScenarioType, pessimistic: float, base: float, optimistic: float) -> float:
    if scenario == ScenarioType.PESSIMISTIC:
        return pessimistic
    if scenario == ScenarioType.OPTIMISTIC:
        return optimistic
    return base
