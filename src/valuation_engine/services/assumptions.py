from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import TypeAdapter

from ..config import DEFAULT_POLICY, EnginePolicy
from ..exceptions import ScenarioCalculationError
from ..models.assumptions import BaselineFinancials, ScenarioAssumptions, VariantAssumptions, VariantConfig
from ..models.common import SCENARIO_ORDER, DCFVariant, ScenarioType, scenario_pick
from ..models.results import DCFCalculationResult
from ..models.variants import DCFInputs, ForwardLookingDCFInputs, FullDCFInputs, SimplifiedDCFInputs
from .calculator import DCFCalculator
from .projector import margin_path

logger = logging.getLogger(__name__)

DEFAULT_REVENUE = 1_000_000.0
DEFAULT_STARTUP_REVENUE = 100_000.0
DEFAULT_GROWTH = 0.20
DEFAULT_MARGIN = 0.20
TARGET_MARGIN = 0.30
STARTUP_MARGIN = -0.10
STARTUP_GROWTH = 0.25
STARTUP_GROWTH_DECAY = 0.85
BENCHMARK_GROWTH_DECAY = 0.9
STARTUP_CAPEX = 0.05
BASE_TERMINAL_GROWTH = 0.02
MAX_WACC = 0.50

SIZE_PREMIUMS = (
    (5_000_000, 0.05),
    (10_000_000, 0.04),
    (50_000_000, 0.025),
    (100_000_000, 0.01),
)

INDUSTRY_WORKING_CAPITAL_RATES = {
    "retail": 0.08,
    "software": 0.03,
    "saas": 0.02,
    "manufacturing": 0.12,
    "services": 0.04,
    "wholesale": 0.10,
    "construction": 0.15,
    "restaurant": 0.06,
    "technology": 0.05,
}

_INPUTS_ADAPTER = TypeAdapter(DCFInputs)


def parse_dcf_inputs(inputs: Union[FullDCFInputs, SimplifiedDCFInputs, ForwardLookingDCFInputs, Mapping[str, Any]]):
    if isinstance(inputs, (FullDCFInputs, SimplifiedDCFInputs, ForwardLookingDCFInputs)):
        return inputs
    return _INPUTS_ADAPTER.validate_python(inputs)


def size_premium(revenue: float) -> float:
    for threshold, premium in SIZE_PREMIUMS:
        if revenue < threshold:
            return premium
    return 0.0


def historical_cagr(revenues: Sequence[float]) -> Optional[float]:
    if len(revenues) < 2:
        return None
    start, end = revenues[0], revenues[-1]
    if start <= 0 or end <= 0:
        return None
    cagr = (end / start) ** (1 / (len(revenues) - 1)) - 1
    return cagr if math.isfinite(cagr) else None


def industry_working_capital_rate(industry: Optional[str], default: float) -> float:
    name = (industry or "").lower()
    for key, rate in INDUSTRY_WORKING_CAPITAL_RATES.items():
        if key in name:
            return rate
    return default


def last_margin(revenues: Sequence[float], ebitdas: Optional[Sequence[float]]) -> Optional[float]:
    if not revenues or not ebitdas:
        return None
    revenue = revenues[-1]
    if revenue <= 0:
        return None
    margin = ebitdas[-1] / revenue
    return margin if math.isfinite(margin) else None


class AssumptionBuilder:
    """Derives per-scenario assumptions from one of the three variant input shapes."""

    def __init__(self, policy: EnginePolicy = DEFAULT_POLICY):
        self.policy = policy

    def build(self, inputs) -> VariantAssumptions:
        inputs = parse_dcf_inputs(inputs)
        if isinstance(inputs, FullDCFInputs):
            return self._build_full(inputs)
        if isinstance(inputs, SimplifiedDCFInputs):
            return self._build_simplified(inputs)
        return self._build_forward_looking(inputs)

    def _build_full(self, inputs: FullDCFInputs) -> VariantAssumptions:
        history = inputs.historical_data
        years = inputs.projection_years or self.policy.projection_years
        base_revenue = self._last_revenue(history.revenue)
        wacc = self._wacc(inputs.market_data.wacc + size_premium(base_revenue))

        cagr = historical_cagr(history.revenue)
        if cagr is None:
            logger.info("No usable revenue history, using default growth %.0f%%", DEFAULT_GROWTH * 100)
        growth = DEFAULT_GROWTH if cagr is None else cagr

        current_margin = last_margin(history.revenue, history.ebitda)
        if current_margin is None:
            current_margin = DEFAULT_MARGIN

        capex_rate = self._historical_capex_rate(history.revenue, history.capex)
        wc_rate = self.policy.baseline_wc_rate

        assumptions: Dict[ScenarioType, ScenarioAssumptions] = {}
        for scenario in SCENARIO_ORDER:
            rate = growth * scenario_pick(scenario, 0.8, 1.0, 1.2)
            assumptions[scenario] = ScenarioAssumptions(
                revenue_growth=[rate] * years,
                ebitda_margin=margin_path(current_margin, TARGET_MARGIN, years, self._margin_shift(scenario), self.policy),
                capex_percent=capex_rate,
                working_capital_percent=wc_rate * self._wc_multiplier(scenario),
                terminal_growth=self._terminal_growth(scenario, wacc, inputs.market_data.terminal_growth),
                wacc=wacc,
                tax_rate=inputs.tax_rate,
            )
        return self._assemble(inputs, assumptions, base_revenue, wc_rate, years)

    def _build_simplified(self, inputs: SimplifiedDCFInputs) -> VariantAssumptions:
        history = inputs.limited_historical_data
        benchmark = inputs.benchmark_data
        weight = benchmark.benchmark_weight
        years = inputs.projection_years or self.policy.projection_years
        base_revenue = self._last_revenue(history.revenue)
        wacc = self._wacc(benchmark.industry_wacc + size_premium(base_revenue))

        cagr = historical_cagr(history.revenue)
        growth = benchmark.industry_growth_rate
        if cagr is not None:
            growth = weight * benchmark.industry_growth_rate + (1 - weight) * cagr

        company_margin = last_margin(history.revenue, history.ebitda)
        current_margin = benchmark.industry_ebitda_margin
        if company_margin is not None:
            current_margin = weight * benchmark.industry_ebitda_margin + (1 - weight) * company_margin
        target_margin = benchmark.industry_ebitda_margin * 1.2

        wc_rate = industry_working_capital_rate(benchmark.industry, self.policy.baseline_wc_rate)

        assumptions: Dict[ScenarioType, ScenarioAssumptions] = {}
        for scenario in SCENARIO_ORDER:
            multiplier = scenario_pick(scenario, 0.7, 1.0, 1.3)
            assumptions[scenario] = ScenarioAssumptions(
                revenue_growth=[growth * BENCHMARK_GROWTH_DECAY**i * multiplier for i in range(years)],
                ebitda_margin=margin_path(current_margin, target_margin, years, self._margin_shift(scenario), self.policy),
                capex_percent=benchmark.industry_capex_percent,
                working_capital_percent=wc_rate * self._wc_multiplier(scenario),
                terminal_growth=self._terminal_growth(scenario, wacc),
                wacc=wacc,
                tax_rate=inputs.tax_rate,
            )
        return self._assemble(inputs, assumptions, base_revenue, wc_rate, years)

    def _build_forward_looking(self, inputs: ForwardLookingDCFInputs) -> VariantAssumptions:
        years = inputs.projection_years or self.policy.early_stage_projection_years
        base_revenue = inputs.startup_metrics.current_revenue or DEFAULT_STARTUP_REVENUE
        wacc = self._wacc(inputs.venture_adjustments.risk_adjusted_wacc)
        wc_rate = self.policy.early_stage_wc_rate

        assumptions: Dict[ScenarioType, ScenarioAssumptions] = {}
        for scenario in SCENARIO_ORDER:
            shift = scenario_pick(scenario, -0.05, 0.0, 0.05)
            assumptions[scenario] = ScenarioAssumptions(
                revenue_growth=[STARTUP_GROWTH * STARTUP_GROWTH_DECAY**i + shift for i in range(years)],
                ebitda_margin=margin_path(STARTUP_MARGIN, TARGET_MARGIN, years, self._margin_shift(scenario), self.policy),
                capex_percent=STARTUP_CAPEX,
                working_capital_percent=wc_rate * self._wc_multiplier(scenario),
                terminal_growth=self._terminal_growth(scenario, wacc),
                wacc=wacc,
                tax_rate=inputs.tax_rate,
            )
        return self._assemble(inputs, assumptions, base_revenue, wc_rate, years)

    def _assemble(
        self,
        inputs,
        assumptions: Dict[ScenarioType, ScenarioAssumptions],
        base_revenue: float,
        wc_rate: float,
        years: int,
    ) -> VariantAssumptions:
        baseline = BaselineFinancials(
            revenue=base_revenue,
            working_capital=base_revenue * wc_rate,
            net_debt=inputs.net_debt,
            valuation_date=inputs.valuation_date,
        )
        config = VariantConfig(variant=DCFVariant(inputs.variant), projection_years=years)
        return VariantAssumptions(assumptions=assumptions, baseline=baseline, config=config)

    def _terminal_growth(self, scenario: ScenarioType, wacc: float, market_rate: Optional[float] = None) -> float:
        if market_rate is not None:
            growth = market_rate
        else:
            growth = BASE_TERMINAL_GROWTH + scenario_pick(scenario, -0.005, 0.0, 0.005)
            growth = min(growth, self.policy.max_terminal_growth)
        ceiling = wacc - self.policy.terminal_growth_spread
        if growth >= ceiling:
            logger.warning(
                "Terminal growth %.4f too close to WACC %.4f, using %.4f",
                growth,
                wacc,
                ceiling,
                extra={"scenario": scenario.value},
            )
            growth = ceiling
        return growth

    def _historical_capex_rate(self, revenues: List[float], capex: List[float]) -> float:
        if not revenues or not capex:
            return self.policy.sustainable_capex_rate
        # Align from the latest year; capex history may be shorter than revenue history.
        n = min(3, len(revenues), len(capex))
        pairs = list(zip(revenues[-n:], capex[-n:]))
        total = sum(c / r for r, c in pairs if r > 0)
        return total / len(pairs)

    @staticmethod
    def _last_revenue(revenues: Sequence[float]) -> float:
        if revenues and revenues[-1]:
            return revenues[-1]
        return DEFAULT_REVENUE

    @staticmethod
    def _wacc(wacc: float) -> float:
        if not math.isfinite(wacc) or wacc <= 0 or wacc > MAX_WACC:
            raise ScenarioCalculationError("all", "wacc", f"invalid WACC {wacc!r}")
        return wacc

    @staticmethod
    def _margin_shift(scenario: ScenarioType) -> float:
        return scenario_pick(scenario, -0.02, 0.0, 0.02)

    @staticmethod
    def _wc_multiplier(scenario: ScenarioType) -> float:
        return scenario_pick(scenario, 1.2, 1.0, 0.8)


def build_assumptions(inputs, policy: EnginePolicy = DEFAULT_POLICY) -> VariantAssumptions:
    return AssumptionBuilder(policy).build(inputs)


def compute_dcf_from_inputs(inputs, policy: EnginePolicy = DEFAULT_POLICY, max_workers: int = 1) -> DCFCalculationResult:
    built = build_assumptions(inputs, policy)
    return DCFCalculator(policy, max_workers).run(built.assumptions, built.baseline, built.config)
