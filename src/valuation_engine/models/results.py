from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ScenarioCalculationError, ValuationEngineError
from .assumptions import ScenarioAssumptions
from .common import SCENARIO_ORDER, DCFVariant, ScenarioType


class AnnualProjection(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    revenue: float
    revenue_growth: float
    ebitda: float
    ebitda_margin: float
    depreciation: float
    ebit: float
    tax: float
    nopat: float
    capex: float
    capex_percent: float
    working_capital: float = Field(..., description="Working capital balance at year end")
    working_capital_change: float = Field(..., description="Change in the working capital balance over the year")
    free_cash_flow: float
    discount_factor: float
    present_value: float


class TerminalValueCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_terminal_fcf: float
    terminal_fcf: float
    fcf_normalized: bool = False
    requested_growth_rate: float
    terminal_growth_rate: float
    growth_adjusted: bool = False
    wacc: float
    terminal_value: float
    terminal_pv: float
    horizon_years: int


class ValuationBridge(BaseModel):
    model_config = ConfigDict(frozen=True)

    sum_pv_fcf: float
    terminal_pv: float
    enterprise_value: float
    marketability_discount_rate: float
    marketability_discount: float
    discounted_enterprise_value: float
    net_debt: float
    equity_value: float


class DCFScenarioResult(BaseModel):
    scenario: ScenarioType
    variant: DCFVariant = DCFVariant.FULL
    assumptions: ScenarioAssumptions
    base_revenue: float
    base_working_capital: float
    projections: List[AnnualProjection]
    terminal_value: TerminalValueCalculation
    bridge: ValuationBridge

    @property
    def valuation(self) -> float:
        return self.bridge.discounted_enterprise_value


class ScenarioFailure(BaseModel):
    scenario: ScenarioType
    field: str
    message: str
    code: str = "SCENARIO_CALCULATION_ERROR"


class ValuationSummary(BaseModel):
    enterprise_values: Dict[ScenarioType, float]
    equity_values: Dict[ScenarioType, float]
    weights: Dict[ScenarioType, float]
    weighted_equity_value: float


DEFAULT_SCENARIO_WEIGHTS = {
    ScenarioType.PESSIMISTIC: 0.25,
    ScenarioType.BASE: 0.50,
    ScenarioType.OPTIMISTIC: 0.25,
}


class DCFCalculationResult(BaseModel):
    variant: DCFVariant
    valuations: Dict[ScenarioType, float] = Field(default_factory=dict)
    projections: Dict[ScenarioType, List[AnnualProjection]] = Field(default_factory=dict)
    scenarios: Dict[ScenarioType, DCFScenarioResult] = Field(default_factory=dict)
    failures: Dict[ScenarioType, ScenarioFailure] = Field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.failures and all(s in self.scenarios for s in SCENARIO_ORDER)

    def scenario(self, scenario: ScenarioType) -> DCFScenarioResult:
        """Return one scenario's result, re-raising the error that aborted it."""
        scenario = ScenarioType(scenario)
        if scenario in self.scenarios:
            return self.scenarios[scenario]
        failure = self.failures.get(scenario)
        if failure is not None:
            raise ScenarioCalculationError(scenario.value, failure.field, failure.message)
        raise KeyError(scenario.value)

    def summary(self, weights: Optional[Dict[ScenarioType, float]] = None) -> ValuationSummary:
        weights = weights or DEFAULT_SCENARIO_WEIGHTS
        available = [s for s in SCENARIO_ORDER if s in self.scenarios]
        if not available:
            raise ValuationEngineError("No scenario completed; nothing to summarise", "NO_SCENARIOS")

        used_weights = {s: weights.get(s, 0.0) for s in available}
        total_weight = sum(used_weights.values())
        if total_weight <= 0:
            raise ValuationEngineError("Scenario weights must sum to a positive number", "INVALID_WEIGHTS")
        used_weights = {s: w / total_weight for s, w in used_weights.items()}

        enterprise_values = {s: self.scenarios[s].bridge.enterprise_value for s in available}
        equity_values = {s: self.scenarios[s].bridge.equity_value for s in available}
        weighted = sum(equity_values[s] * used_weights[s] for s in available)
        return ValuationSummary(
            enterprise_values=enterprise_values,
            equity_values=equity_values,
            weights=used_weights,
            weighted_equity_value=weighted,
        )
