from __future__ import annotations

import logging
import math
from datetime import date
from typing import Callable, List, Optional

from dateutil.relativedelta import relativedelta

from ..config import DEFAULT_POLICY, EnginePolicy
from ..exceptions import ScenarioCalculationError
from ..models.assumptions import ScenarioAssumptions
from ..models.common import ScenarioType
from ..models.results import AnnualProjection

logger = logging.getLogger(__name__)


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def breakeven_margin(base_margin: float, year_index: int, breakeven_years: int) -> Optional[float]:
    """Margin on a straight path from a loss-making margin to 0%.

    Returns ``None`` when the base margin is not negative or breakeven has already been
    reached, so callers fall through to the regular glide.
    """
    if base_margin >= 0 or breakeven_years <= 0 or year_index >= breakeven_years:
        return None
    remaining = 1.0 - (year_index + 1) / breakeven_years
    return base_margin * remaining


def glide_margin(
    base_margin: float,
    target_margin: float,
    year_index: int,
    horizon_years: int,
    scenario_shift: float = 0.0,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> float:
    negative_path = breakeven_margin(base_margin, year_index, policy.breakeven_years)
    if negative_path is not None:
        return clamp(negative_path, policy.margin_floor, policy.margin_cap)

    start = max(base_margin, 0.0)
    progress = year_index / horizon_years if horizon_years else 1.0
    s_curve = 1 / (1 + math.exp(-10 * (progress - 0.5)))
    margin = start + (target_margin - start) * s_curve + scenario_shift
    return clamp(margin, policy.margin_floor, policy.margin_cap)


def margin_path(
    base_margin: float,
    target_margin: float,
    horizon_years: int,
    scenario_shift: float = 0.0,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> List[float]:
    return [
        glide_margin(base_margin, target_margin, i, horizon_years, scenario_shift, policy)
        for i in range(horizon_years)
    ]


class ScenarioProjector:
    def __init__(self, policy: EnginePolicy = DEFAULT_POLICY):
        self.policy = policy

    def project(
        self,
        scenario: ScenarioType,
        assumptions: ScenarioAssumptions,
        base_revenue: float,
        base_working_capital: Optional[float],
        years: int,
        base_date: date,
    ) -> List[AnnualProjection]:
        name = scenario.value
        self._require_positive(name, "base_revenue", base_revenue)
        wacc = self._require_positive(name, "wacc", assumptions.wacc)
        tax_rate = self._require_finite(name, "tax_rate", assumptions.tax_rate)
        if years < 1:
            raise ScenarioCalculationError(name, "projection_years", f"horizon must be at least one year, got {years}")

        previous_revenue = base_revenue
        previous_working_capital = self.opening_working_capital(scenario, assumptions, base_revenue, base_working_capital)

        projections: List[AnnualProjection] = []
        for i in range(years):
            growth = self._rate(name, "revenue_growth", assumptions.growth_for, i)
            growth = clamp(growth, self.policy.growth_floor, self.policy.growth_cap)
            revenue = previous_revenue * (1 + growth)
            self._require_positive(name, "revenue", revenue, year_index=i)

            margin = self._rate(name, "ebitda_margin", assumptions.margin_for, i)
            margin = clamp(margin, self.policy.margin_floor, self.policy.margin_cap)
            ebitda = revenue * margin

            depreciation = revenue * self.policy.depreciation_rate
            ebit = ebitda - depreciation
            tax = max(ebit, 0.0) * tax_rate
            nopat = ebit - tax

            capex_percent = self._rate(name, "capex_percent", assumptions.capex_for, i)
            capex = revenue * capex_percent

            wc_rate = self._rate(name, "working_capital_percent", assumptions.working_capital_for, i)
            working_capital = revenue * wc_rate
            working_capital_change = working_capital - previous_working_capital

            free_cash_flow = nopat + depreciation - capex - working_capital_change
            discount_factor = (1 + wacc) ** -(i + 1)
            present_value = free_cash_flow * discount_factor
            self._require_finite(name, "free_cash_flow", free_cash_flow, year_index=i)
            self._require_finite(name, "present_value", present_value, year_index=i)

            year = (base_date + relativedelta(years=i + 1)).year
            projections.append(
                AnnualProjection(
                    year=year,
                    revenue=revenue,
                    revenue_growth=growth,
                    ebitda=ebitda,
                    ebitda_margin=margin,
                    depreciation=depreciation,
                    ebit=ebit,
                    tax=tax,
                    nopat=nopat,
                    capex=capex,
                    capex_percent=capex_percent,
                    working_capital=working_capital,
                    working_capital_change=working_capital_change,
                    free_cash_flow=free_cash_flow,
                    discount_factor=discount_factor,
                    present_value=present_value,
                )
            )
            logger.debug(
                "%s %s: revenue=%.0f wc_change=%.0f fcf=%.0f pv=%.0f",
                name,
                year,
                revenue,
                working_capital_change,
                free_cash_flow,
                present_value,
                extra={"scenario": name},
            )

            previous_revenue = revenue
            previous_working_capital = working_capital

        return projections

    def opening_working_capital(
        self,
        scenario: ScenarioType,
        assumptions: ScenarioAssumptions,
        base_revenue: float,
        base_working_capital: Optional[float] = None,
    ) -> float:
        self._require_positive(scenario.value, "base_revenue", base_revenue)
        if base_working_capital is None:
            rate = self._rate(scenario.value, "working_capital_percent", assumptions.working_capital_for, 0)
            base_working_capital = base_revenue * rate
        return self._require_finite(scenario.value, "base_working_capital", base_working_capital)

    def _rate(self, scenario: str, field: str, lookup: Callable[[int], float], year_index: int) -> float:
        try:
            value = lookup(year_index)
        except (TypeError, ValueError) as exc:
            raise ScenarioCalculationError(scenario, field, f"missing value for year {year_index + 1}") from exc
        return self._require_finite(scenario, field, value, year_index=year_index)

    @staticmethod
    def _require_finite(scenario: str, field: str, value: Optional[float], year_index: Optional[int] = None) -> float:
        if value is None or not math.isfinite(value):
            where = f" in year {year_index + 1}" if year_index is not None else ""
            raise ScenarioCalculationError(scenario, field, f"non-finite value {value!r}{where}")
        return value

    @classmethod
    def _require_positive(cls, scenario: str, field: str, value: Optional[float], year_index: Optional[int] = None) -> float:
        value = cls._require_finite(scenario, field, value, year_index)
        if value <= 0:
            where = f" in year {year_index + 1}" if year_index is not None else ""
            raise ScenarioCalculationError(scenario, field, f"must be positive, got {value}{where}")
        return value
